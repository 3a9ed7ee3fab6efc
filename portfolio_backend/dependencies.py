"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging
from typing import Optional

import firebase_admin
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from firebase_admin import credentials

from portfolio_backend.auth import (
    AuthClient,
    AuthUser,
    FirebaseAuthClient,
    InMemoryAuthClient,
)
from portfolio_backend.config import get_settings
from portfolio_backend.db import DbClient, FirestoreDbClient, InMemoryDbClient
from portfolio_backend.errors import UnauthenticatedError
from portfolio_backend.storage import (
    CloudinaryStorageClient,
    ImageStorageClient,
    InMemoryImageStorageClient,
)

logger = logging.getLogger(__name__)

_db_client: DbClient | None = None
_auth_client: AuthClient | None = None
_storage_client: ImageStorageClient | None = None

bearer_scheme = HTTPBearer(auto_error=False)


def _firebase_app() -> firebase_admin.App:
    try:
        return firebase_admin.get_app()
    except ValueError:
        settings = get_settings()
        options = (
            {"projectId": settings.firebase_project_id}
            if settings.firebase_project_id
            else None
        )
        cred = (
            credentials.Certificate(settings.firebase_credentials_path)
            if settings.firebase_credentials_path
            else None
        )
        logger.info("Initializing Firebase app")
        return firebase_admin.initialize_app(cred, options)


def _use_firebase() -> bool:
    settings = get_settings()
    return not settings.use_in_memory_backends and bool(
        settings.firebase_project_id or settings.firebase_credentials_path
    )


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so state persists across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    if _use_firebase():
        from firebase_admin import firestore

        _db_client = FirestoreDbClient(firestore.client(_firebase_app()))
    else:
        _db_client = InMemoryDbClient()
    return _db_client


def get_auth_client() -> AuthClient:
    global _auth_client
    if _auth_client:
        return _auth_client

    if _use_firebase():
        _auth_client = FirebaseAuthClient(_firebase_app())
    else:
        _auth_client = InMemoryAuthClient()
    return _auth_client


def get_storage_client() -> ImageStorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.cloudinary_configured:
        _storage_client = InMemoryImageStorageClient()
    else:
        _storage_client = CloudinaryStorageClient(
            cloud_name=settings.cloudinary_cloud_name or "",
            api_key=settings.cloudinary_api_key or "",
            api_secret=settings.cloudinary_api_secret or "",
        )
    return _storage_client


def get_current_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    auth: AuthClient = Depends(get_auth_client),
) -> AuthUser:
    if creds is None:
        raise UnauthenticatedError("No token provided")
    return auth.verify_token(creds.credentials)
