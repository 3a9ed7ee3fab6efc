"""
Single-portfolio policy: each identity owns at most one portfolio document.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Optional

from portfolio_backend.db import DbClient
from portfolio_backend.errors import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
)
from shared.constants import REQUIRED_PORTFOLIO_FIELDS
from shared.portfolio_convert import PORTFOLIO_FIELDS
from shared.types import PortfolioRecord, PortfolioStatus, RatingStats

logger = logging.getLogger(__name__)

# Only the owner's content may change through an update; these are managed
# by the service itself.
PROTECTED_FIELDS = frozenset(
    {
        "id",
        "userId",
        "slug",
        "featured",
        "views",
        "averageRating",
        "totalRatings",
        "ratingDistribution",
        "createdAt",
        "updatedAt",
    }
)


def make_slug(name: str) -> str:
    """Lower-cased name with whitespace runs as dashes plus a millisecond suffix."""
    base = re.sub(r"\s+", "-", name.strip().lower())
    return f"{base}-{int(time.time() * 1000)}"


def _missing_fields(payload: dict) -> list[str]:
    return [name for name in REQUIRED_PORTFOLIO_FIELDS if not payload.get(name)]


def _hero_name(payload: dict) -> Optional[str]:
    hero = payload.get("heroSection")
    if isinstance(hero, dict):
        return hero.get("name") or None
    return None


def _get_owned(db: DbClient, owner_id: str, portfolio_id: str, action: str) -> PortfolioRecord:
    record = db.get_portfolio(portfolio_id)
    if record is None:
        raise NotFoundError("Portfolio not found")
    if record.owner_id != owner_id:
        raise ForbiddenError(
            f"Access denied - You can only {action} your own portfolio"
        )
    return record


def create_portfolio(db: DbClient, owner_id: str, payload: dict) -> PortfolioRecord:
    if db.find_portfolio_by_owner(owner_id) is not None:
        raise _already_exists()

    missing = _missing_fields(payload)
    if missing:
        raise InvalidInputError(
            "Missing required fields", extra={"missingFields": missing}
        )
    hero_section = payload["heroSection"]
    name = _hero_name(payload)
    if not name:
        raise InvalidInputError(
            "heroSection.name is required", extra={"missingFields": ["heroSection.name"]}
        )

    record = PortfolioRecord(
        portfolio_id="",
        owner_id=owner_id,
        template_id=payload["templateId"],
        hero_section=hero_section,
        about_me=payload["aboutMe"],
        skills=list(payload.get("skills") or []),
        content={
            key: value
            for key, value in payload.items()
            if key not in PORTFOLIO_FIELDS
        },
        slug=make_slug(name),
        status=PortfolioStatus.PUBLISHED,
        featured=False,
        views=0,
        stats=RatingStats(),
        seo_title=name,
        seo_description=hero_section.get("tagline"),
    )
    stored = db.insert_portfolio_if_absent(record)
    if stored is None:
        # Lost a race against a concurrent create from the same identity.
        raise _already_exists()
    logger.info("Created portfolio %s for %s", stored.portfolio_id, owner_id)
    return stored


def _already_exists() -> ConflictError:
    return ConflictError(
        "You already have a portfolio. You can only create one portfolio per account.",
        extra={"hasPortfolio": True},
    )


def update_portfolio(
    db: DbClient, owner_id: str, portfolio_id: str, payload: dict
) -> PortfolioRecord:
    existing = _get_owned(db, owner_id, portfolio_id, "update")
    if any(not key for key in payload):
        raise InvalidInputError("Field names must not be empty")

    fields = {
        key: value for key, value in payload.items() if key not in PROTECTED_FIELDS
    }
    if "status" in fields:
        try:
            fields["status"] = str(PortfolioStatus(fields["status"]))
        except ValueError as e:
            raise InvalidInputError(f"Unknown status {fields['status']!r}") from e

    new_name = _hero_name(payload)
    if new_name and new_name != existing.hero_section.get("name"):
        fields["slug"] = make_slug(new_name)

    updated = db.update_portfolio(portfolio_id, fields)
    if updated is None:
        raise NotFoundError("Portfolio not found")
    logger.info("Updated portfolio %s", portfolio_id)
    return updated


def delete_portfolio(db: DbClient, owner_id: str, portfolio_id: str) -> None:
    _get_owned(db, owner_id, portfolio_id, "delete")
    # Ratings that reference this portfolio are intentionally left in place.
    db.delete_portfolio(portfolio_id)
    logger.info("Deleted portfolio %s", portfolio_id)


def get_portfolio(db: DbClient, portfolio_id: str) -> PortfolioRecord:
    record = db.get_portfolio(portfolio_id)
    if record is None:
        raise NotFoundError("Portfolio not found")
    return record


def get_owned_portfolio(db: DbClient, owner_id: str) -> PortfolioRecord:
    record = db.find_portfolio_by_owner(owner_id)
    if record is None:
        raise NotFoundError("No portfolio found", extra={"hasPortfolio": False})
    return record


def record_view(
    db: DbClient, viewer_id: Optional[str], portfolio_id: str
) -> PortfolioRecord:
    """Read a portfolio, counting the view unless the owner is looking."""
    record = get_portfolio(db, portfolio_id)
    if viewer_id != record.owner_id:
        if not db.increment_portfolio_views(portfolio_id):
            raise NotFoundError("Portfolio not found")
        record.views += 1
    return record


def _matches_skill(record: PortfolioRecord, skill: str) -> bool:
    needle = skill.lower()
    return any(needle in str(s).lower() for s in record.skills)


def _matches_role(record: PortfolioRecord, role: str) -> bool:
    title = record.hero_section.get("title") if record.hero_section else None
    return bool(title) and role.lower() in str(title).lower()


def list_portfolios(
    db: DbClient,
    *,
    owner_id: Optional[str] = None,
    featured_only: bool = False,
    skill: Optional[str] = None,
    role: Optional[str] = None,
) -> list[PortfolioRecord]:
    records = db.list_portfolios(owner_id=owner_id, featured_only=featured_only)
    if skill:
        records = [r for r in records if _matches_skill(r, skill)]
    if role:
        records = [r for r in records if _matches_role(r, role)]
    return records


def portfolio_stats(db: DbClient, owner_id: str) -> dict:
    own = db.find_portfolio_by_owner(owner_id)
    user_stats = {"has_portfolio": False, "views": 0, "created_at": None}
    if own is not None:
        user_stats = {
            "has_portfolio": True,
            "views": own.views,
            "created_at": own.created_at,
        }
    return {"total_portfolios": db.count_portfolios(), "user_stats": user_stats}
