"""
HTTP routes for the portfolio API.

Policies in ``portfolios``/``ratings``/``users`` do the work; the handlers
here only wire collaborators in and join owner / rater display info onto
the responses.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from portfolio_backend import portfolios, ratings, users
from portfolio_backend.auth import AuthClient, AuthUser
from portfolio_backend.config import get_settings
from portfolio_backend.db import DbClient
from portfolio_backend.dependencies import (
    get_auth_client,
    get_current_user,
    get_db_client,
    get_storage_client,
)
from portfolio_backend.errors import InternalError, InvalidInputError
from portfolio_backend.schemas import (
    MessageResponse,
    MultiUploadResponse,
    MyRatingResponse,
    PortfolioPayload,
    ProfileUpdateRequest,
    ProfileUpdateResponse,
    RatingListResponse,
    RatingRequest,
    StatsResponse,
    SubmitRatingResponse,
    UploadResponse,
)
from portfolio_backend.storage import ImageStorageClient
from shared.constants import (
    ANONYMOUS_USER_NAME,
    DEFAULT_RATINGS_PAGE_SIZE,
    MAX_RATINGS_PAGE_SIZE,
)
from shared.json_utils import convert_keys
from shared.portfolio_convert import (
    portfolio_to_json,
    profile_to_document,
    profile_to_json,
    rating_to_json,
    user_info_to_json,
)
from shared.types import PortfolioRecord, RatingRecord, UploadedImage, UserInfo

logger = logging.getLogger(__name__)

router = APIRouter()


def _with_owner(
    record: PortfolioRecord,
    owner: UserInfo,
    *,
    viewer_id: Optional[str] = None,
    public: bool = False,
) -> dict:
    payload = portfolio_to_json(record)
    owner_json = user_info_to_json(owner)
    if public:
        owner_json.pop("phone", None)
    payload["owner"] = owner_json
    if viewer_id is not None:
        payload["isOwnPortfolio"] = record.owner_id == viewer_id
    return payload


def _with_owners(
    records: list[PortfolioRecord],
    db: DbClient,
    auth: AuthClient,
    *,
    viewer_id: Optional[str] = None,
    public: bool = False,
) -> list[dict]:
    owners = users.resolve_many(db, auth, (r.owner_id for r in records))
    return [
        _with_owner(r, owners[r.owner_id], viewer_id=viewer_id, public=public)
        for r in records
    ]


def _payload_dict(payload: PortfolioPayload) -> dict:
    return {**payload.model_dump(exclude_unset=True), **(payload.model_extra or {})}


def _with_raters(
    items: list[RatingRecord], db: DbClient, auth: AuthClient
) -> list[dict]:
    raters = users.resolve_many(
        db, auth, (r.rater_id for r in items), placeholder_name=ANONYMOUS_USER_NAME
    )
    return [rating_to_json(r, raters[r.rater_id]) for r in items]


# Portfolios (authenticated)


@router.get("/portfolios")
def list_portfolios(
    myPortfolios: bool = Query(False),
    featured: bool = Query(False),
    skill: Optional[str] = Query(None),
    role: Optional[str] = Query(None),
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    auth: AuthClient = Depends(get_auth_client),
):
    """
    List portfolios with owner info; `myPortfolios` narrows to the caller.
    """
    records = portfolios.list_portfolios(
        db,
        owner_id=user.uid if myPortfolios else None,
        featured_only=featured,
        skill=skill,
        role=role,
    )
    return _with_owners(records, db, auth, viewer_id=user.uid)


@router.get("/portfolios/my")
def get_my_portfolio(
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    auth: AuthClient = Depends(get_auth_client),
):
    """
    Return the caller's portfolio, or 404 with `hasPortfolio: false`.
    """
    record = portfolios.get_owned_portfolio(db, user.uid)
    owner = users.resolve_user_info(
        db, auth, user.uid, placeholder_name=ANONYMOUS_USER_NAME
    )
    payload = _with_owner(record, owner, viewer_id=user.uid)
    payload["hasPortfolio"] = True
    return payload


@router.post("/portfolios", status_code=201)
def create_portfolio(
    payload: PortfolioPayload,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    auth: AuthClient = Depends(get_auth_client),
):
    """
    Create the caller's only portfolio and make sure a profile exists.
    """
    body = _payload_dict(payload)
    record = portfolios.create_portfolio(db, user.uid, body)
    profile = users.ensure_profile(
        db, auth, user, fallback_name=record.hero_section.get("name")
    )
    owner = UserInfo(
        uid=user.uid,
        email=profile.email,
        display_name=profile.display_name or ANONYMOUS_USER_NAME,
        photo_url=profile.photo_url,
        phone=profile.phone,
    )
    result = _with_owner(record, owner, viewer_id=user.uid)
    result["hasPortfolio"] = True
    return result


@router.get("/portfolios/{portfolio_id}")
def get_portfolio(
    portfolio_id: str,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    auth: AuthClient = Depends(get_auth_client),
):
    """
    Read a portfolio, counting the view when the caller is not the owner.
    """
    record = portfolios.record_view(db, user.uid, portfolio_id)
    owner = users.resolve_user_info(db, auth, record.owner_id)
    return _with_owner(record, owner, viewer_id=user.uid)


@router.put("/portfolios/{portfolio_id}")
def update_portfolio(
    portfolio_id: str,
    payload: PortfolioPayload,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    auth: AuthClient = Depends(get_auth_client),
):
    record = portfolios.update_portfolio(
        db, user.uid, portfolio_id, _payload_dict(payload)
    )
    owner = users.resolve_user_info(
        db, auth, user.uid, placeholder_name=ANONYMOUS_USER_NAME
    )
    return _with_owner(record, owner, viewer_id=user.uid)


@router.delete("/portfolios/{portfolio_id}", response_model=MessageResponse)
def delete_portfolio(
    portfolio_id: str,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    portfolios.delete_portfolio(db, user.uid, portfolio_id)
    return MessageResponse(message="Portfolio deleted successfully")


# Portfolios (public)


@router.get("/public/portfolios")
def list_public_portfolios(
    skill: Optional[str] = Query(None),
    role: Optional[str] = Query(None),
    db: DbClient = Depends(get_db_client),
    auth: AuthClient = Depends(get_auth_client),
):
    records = portfolios.list_portfolios(db, skill=skill, role=role)
    return _with_owners(records, db, auth, public=True)


@router.get("/public/portfolios/{portfolio_id}")
def get_public_portfolio(
    portfolio_id: str,
    db: DbClient = Depends(get_db_client),
    auth: AuthClient = Depends(get_auth_client),
):
    """
    Unauthenticated read; does not count as a view.
    """
    record = portfolios.get_portfolio(db, portfolio_id)
    owner = users.resolve_user_info(db, auth, record.owner_id)
    return _with_owner(record, owner, public=True)


# Ratings


@router.post("/ratings", response_model=SubmitRatingResponse)
def submit_rating(
    payload: RatingRequest,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    auth: AuthClient = Depends(get_auth_client),
):
    """
    Create or update the caller's rating: 201 when new, 200 when updated.
    """
    rating, created = ratings.submit_rating(
        db, user.uid, payload.portfolioId, payload.rating, payload.review
    )
    rater = users.resolve_user_info(
        db, auth, user.uid, placeholder_name=ANONYMOUS_USER_NAME
    )
    body = SubmitRatingResponse(
        message="Rating added successfully" if created else "Rating updated successfully",
        rating=rating_to_json(rating, rater),
    )
    return JSONResponse(
        status_code=201 if created else 200,
        content=body.model_dump(mode="json"),
    )


def _rating_list(
    portfolio_id: str,
    page: int,
    limit: int,
    sortBy: str,
    sortOrder: str,
    db: DbClient,
    auth: AuthClient,
) -> dict:
    result = ratings.list_ratings(
        db,
        portfolio_id,
        page=page,
        page_size=limit,
        sort_by=sortBy,
        order=sortOrder,
    )
    return {
        "ratings": _with_raters(result.ratings, db, auth),
        "pagination": convert_keys(asdict(result.pagination)),
    }


@router.get("/ratings/portfolio/{portfolio_id}", response_model=RatingListResponse)
def list_ratings(
    portfolio_id: str,
    page: int = Query(1),
    limit: int = Query(DEFAULT_RATINGS_PAGE_SIZE, ge=1, le=MAX_RATINGS_PAGE_SIZE),
    sortBy: str = Query("createdAt"),
    sortOrder: str = Query("desc"),
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    auth: AuthClient = Depends(get_auth_client),
):
    return _rating_list(portfolio_id, page, limit, sortBy, sortOrder, db, auth)


@router.get(
    "/public/ratings/portfolio/{portfolio_id}", response_model=RatingListResponse
)
def list_public_ratings(
    portfolio_id: str,
    page: int = Query(1),
    limit: int = Query(DEFAULT_RATINGS_PAGE_SIZE, ge=1, le=MAX_RATINGS_PAGE_SIZE),
    sortBy: str = Query("createdAt"),
    sortOrder: str = Query("desc"),
    db: DbClient = Depends(get_db_client),
    auth: AuthClient = Depends(get_auth_client),
):
    return _rating_list(portfolio_id, page, limit, sortBy, sortOrder, db, auth)


@router.get("/ratings/my/{portfolio_id}", response_model=MyRatingResponse)
def get_my_rating(
    portfolio_id: str,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    rating = ratings.get_my_rating(db, user.uid, portfolio_id)
    if rating is None:
        return MyRatingResponse(hasRated=False, rating=None)
    return {"hasRated": True, "rating": rating_to_json(rating)}


@router.delete("/ratings/{rating_id}", response_model=MessageResponse)
def delete_rating(
    rating_id: str,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    ratings.delete_rating(db, user.uid, rating_id)
    return MessageResponse(message="Rating deleted successfully")


# Users


@router.get("/users/profile")
def get_profile(
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    auth: AuthClient = Depends(get_auth_client),
):
    """
    Return the stored profile, creating it from the auth record on first use.
    """
    return profile_to_json(users.get_profile(db, auth, user))


@router.put("/users/profile", response_model=ProfileUpdateResponse)
def update_profile(
    payload: ProfileUpdateRequest,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    auth: AuthClient = Depends(get_auth_client),
):
    profile = users.update_profile(
        db,
        auth,
        user,
        display_name=payload.displayName,
        photo_url=payload.photoURL,
    )
    return ProfileUpdateResponse(
        message="Profile updated successfully",
        profile=profile_to_document(profile),
    )


# Uploads


def _public_id() -> str:
    return f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}"


async def _read_image(upload: UploadFile) -> bytes:
    settings = get_settings()
    if upload.content_type and not upload.content_type.startswith("image/"):
        raise InvalidInputError("Only image files are allowed")
    data = await upload.read()
    if not data:
        raise InvalidInputError("No file uploaded")
    if len(data) > settings.max_upload_bytes:
        limit_mb = settings.max_upload_bytes // (1024 * 1024)
        raise InvalidInputError(f"File too large. Maximum size is {limit_mb}MB.")
    return data


async def _store_image(
    storage: ImageStorageClient, uid: str, data: bytes
) -> UploadedImage:
    folder = f"{get_settings().upload_folder}/{uid}"
    try:
        return await run_in_threadpool(
            storage.upload_image, data, folder=folder, public_id=_public_id()
        )
    except Exception as e:
        logger.exception("File upload error for %s", uid)
        raise InternalError(f"File upload failed: {e}") from e


def _image_json(image: UploadedImage) -> dict:
    return convert_keys(asdict(image))


@router.post("/upload", response_model=UploadResponse)
async def upload_image(
    image: Optional[UploadFile] = File(None),
    user: AuthUser = Depends(get_current_user),
    storage: ImageStorageClient = Depends(get_storage_client),
):
    if image is None:
        raise InvalidInputError("No file uploaded")
    data = await _read_image(image)
    result = await _store_image(storage, user.uid, data)
    return {"message": "File uploaded successfully", **_image_json(result)}


@router.post("/upload/multiple", response_model=MultiUploadResponse)
async def upload_images(
    images: Optional[list[UploadFile]] = File(None),
    user: AuthUser = Depends(get_current_user),
    storage: ImageStorageClient = Depends(get_storage_client),
):
    """
    Upload several images concurrently; any failure fails the request.
    """
    settings = get_settings()
    if not images:
        raise InvalidInputError("No files uploaded")
    if len(images) > settings.max_upload_files:
        raise InvalidInputError(
            f"Too many files. Maximum is {settings.max_upload_files} files per upload."
        )
    payloads = [await _read_image(upload) for upload in images]
    results = await asyncio.gather(
        *(_store_image(storage, user.uid, data) for data in payloads),
        return_exceptions=True,
    )
    # Every upload has settled by now; report the first failure.
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return {
        "message": "Files uploaded successfully",
        "files": [_image_json(result) for result in results],
    }


# Analytics


@router.get("/analytics/stats", response_model=StatsResponse)
def analytics_stats(
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    return convert_keys(portfolios.portfolio_stats(db, user.uid))
