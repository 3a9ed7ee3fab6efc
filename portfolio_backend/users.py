"""
User profiles and the decorative owner / rater display info joined onto
API responses.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from portfolio_backend.auth import AuthClient, AuthUser
from portfolio_backend.db import DbClient
from shared.constants import (
    ANONYMOUS_USER_NAME,
    UNKNOWN_USER_EMAIL,
    UNKNOWN_USER_NAME,
)
from shared.types import UserInfo, UserProfile

logger = logging.getLogger(__name__)


def _profile_from_identity(
    identity: AuthUser, fallback_name: str = ANONYMOUS_USER_NAME
) -> UserProfile:
    return UserProfile(
        uid=identity.uid,
        email=identity.email,
        display_name=identity.display_name or fallback_name,
        photo_url=identity.photo_url,
        phone=identity.phone,
    )


def get_profile(db: DbClient, auth: AuthClient, identity: AuthUser) -> UserProfile:
    """Return the stored profile, creating it from the identity provider if absent."""
    profile = db.get_user(identity.uid)
    if profile is not None:
        return profile
    record = auth.get_user(identity.uid)
    logger.info("Creating profile for %s", identity.uid)
    return db.save_user(_profile_from_identity(record))


def ensure_profile(
    db: DbClient,
    auth: AuthClient,
    identity: AuthUser,
    fallback_name: Optional[str] = None,
) -> UserProfile:
    """Like get_profile, but never fails: falls back to the token's claims."""
    fallback = fallback_name or ANONYMOUS_USER_NAME
    try:
        profile = db.get_user(identity.uid)
        if profile is not None:
            return profile
        record = auth.get_user(identity.uid)
        return db.save_user(_profile_from_identity(record, fallback))
    except Exception as e:
        logger.warning("Error handling user profile for %s: %s", identity.uid, e)
        return UserProfile(
            uid=identity.uid,
            email=identity.email,
            display_name=fallback,
        )


def update_profile(
    db: DbClient,
    auth: AuthClient,
    identity: AuthUser,
    *,
    display_name: Optional[str] = None,
    photo_url: Optional[str] = None,
) -> UserProfile:
    auth.update_user(identity.uid, display_name=display_name, photo_url=photo_url)
    profile = UserProfile(
        uid=identity.uid,
        email=identity.email,
        display_name=display_name or None,
        photo_url=photo_url or None,
    )
    logger.info("Updated profile for %s", identity.uid)
    return db.save_user(profile, merge=True)


def resolve_user_info(
    db: DbClient,
    auth: AuthClient,
    uid: str,
    *,
    placeholder_name: str = UNKNOWN_USER_NAME,
) -> UserInfo:
    """Best-effort display info for ``uid``; degrades to a placeholder identity."""
    try:
        profile = db.get_user(uid)
        if profile is None:
            record = auth.get_user(uid)
            profile = _profile_from_identity(record)
        return UserInfo(
            uid=uid,
            email=profile.email,
            display_name=profile.display_name or ANONYMOUS_USER_NAME,
            photo_url=profile.photo_url,
            phone=profile.phone,
        )
    except Exception as e:
        logger.warning("Error fetching user %s: %s", uid, e)
        return UserInfo(
            uid=uid,
            email=UNKNOWN_USER_EMAIL,
            display_name=placeholder_name,
        )


def resolve_many(
    db: DbClient,
    auth: AuthClient,
    uids: Iterable[str],
    *,
    placeholder_name: str = UNKNOWN_USER_NAME,
) -> dict[str, UserInfo]:
    return {
        uid: resolve_user_info(db, auth, uid, placeholder_name=placeholder_name)
        for uid in set(uids)
    }
