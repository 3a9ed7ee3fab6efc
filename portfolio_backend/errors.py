"""
Error taxonomy shared by the portfolio and rating policies.

Every error carries a stable machine-readable ``kind`` and the HTTP status
the API layer renders it with.
"""

from __future__ import annotations

from typing import Any, Optional


class ServiceError(Exception):
    kind = "internal"
    status_code = 500

    def __init__(self, message: str, *, extra: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}

    def as_dict(self) -> dict:
        return {"message": self.message, "kind": self.kind, **self.extra}


class InvalidInputError(ServiceError):
    kind = "invalid_input"
    status_code = 400


class UnauthenticatedError(ServiceError):
    kind = "unauthenticated"
    status_code = 401


class ForbiddenError(ServiceError):
    kind = "forbidden"
    status_code = 403


class SelfRatingForbiddenError(ForbiddenError):
    kind = "self_rating_forbidden"


class NotFoundError(ServiceError):
    kind = "not_found"
    status_code = 404


class ConflictError(ServiceError):
    kind = "conflict"
    status_code = 409


class InternalError(ServiceError):
    kind = "internal"
    status_code = 500
