"""
Identity provider abstraction for Firebase Auth and an in-memory test double.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol

from firebase_admin import auth

from portfolio_backend.errors import NotFoundError, UnauthenticatedError

logger = logging.getLogger(__name__)


@dataclass
class AuthUser:
    """An identity as resolved by the identity provider."""

    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    phone: Optional[str] = None


class AuthClient(Protocol):
    """Operations the API needs from the identity provider."""

    def verify_token(self, token: str) -> AuthUser:
        ...

    def get_user(self, uid: str) -> AuthUser:
        ...

    def update_user(
        self,
        uid: str,
        *,
        display_name: Optional[str] = None,
        photo_url: Optional[str] = None,
    ) -> None:
        ...


class FirebaseAuthClient:
    """Firebase Auth via the firebase_admin SDK."""

    def __init__(self, app=None):
        self._app = app

    def verify_token(self, token: str) -> AuthUser:
        try:
            claims = auth.verify_id_token(token, app=self._app)
        except (
            auth.InvalidIdTokenError,
            auth.RevokedIdTokenError,
            auth.UserDisabledError,
            auth.CertificateFetchError,
            ValueError,
        ) as e:
            logger.info("Rejected bearer token: %s", e)
            raise UnauthenticatedError("Invalid or expired token") from e
        return AuthUser(
            uid=claims["uid"],
            email=claims.get("email"),
            display_name=claims.get("name"),
            photo_url=claims.get("picture"),
        )

    def get_user(self, uid: str) -> AuthUser:
        try:
            record = auth.get_user(uid, app=self._app)
        except auth.UserNotFoundError as e:
            raise NotFoundError(f"User {uid} not found") from e
        return AuthUser(
            uid=record.uid,
            email=record.email,
            display_name=record.display_name,
            photo_url=record.photo_url,
            phone=record.phone_number,
        )

    def update_user(
        self,
        uid: str,
        *,
        display_name: Optional[str] = None,
        photo_url: Optional[str] = None,
    ) -> None:
        updates = {}
        if display_name:
            updates["display_name"] = display_name
        if photo_url:
            updates["photo_url"] = photo_url
        if updates:
            auth.update_user(uid, app=self._app, **updates)


@dataclass
class InMemoryAuthClient:
    """Test double: tokens map straight to registered users."""

    users: Dict[str, AuthUser] = field(default_factory=dict)
    tokens: Dict[str, str] = field(default_factory=dict)

    def add_user(self, user: AuthUser, token: Optional[str] = None) -> str:
        token = token or f"token-{user.uid}"
        self.users[user.uid] = user
        self.tokens[token] = user.uid
        return token

    def reset(self) -> None:
        self.users.clear()
        self.tokens.clear()

    def verify_token(self, token: str) -> AuthUser:
        uid = self.tokens.get(token)
        if uid is None or uid not in self.users:
            raise UnauthenticatedError("Invalid or expired token")
        return self.users[uid]

    def get_user(self, uid: str) -> AuthUser:
        user = self.users.get(uid)
        if user is None:
            raise NotFoundError(f"User {uid} not found")
        return user

    def update_user(
        self,
        uid: str,
        *,
        display_name: Optional[str] = None,
        photo_url: Optional[str] = None,
    ) -> None:
        user = self.get_user(uid)
        if display_name:
            user.display_name = display_name
        if photo_url:
            user.photo_url = photo_url
