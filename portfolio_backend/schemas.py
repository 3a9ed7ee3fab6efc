"""
Pydantic schemas for the portfolio API.

Field names are camelCase to match the JSON the web client already speaks.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class PortfolioPayload(BaseModel):
    """Portfolio body; sections beyond the known ones are kept as-is."""

    model_config = ConfigDict(extra="allow")

    templateId: Optional[Any] = None
    heroSection: Optional[dict] = None
    aboutMe: Optional[Any] = None
    skills: Optional[list[str]] = None
    status: Optional[str] = None


class RatingRequest(BaseModel):
    portfolioId: Optional[str] = None
    # Range and type are checked by the rating policy so errors stay uniform.
    rating: Optional[Any] = None
    review: Optional[str] = None


class RatingUser(BaseModel):
    displayName: str
    photoURL: Optional[str] = None


class RatingResponse(BaseModel):
    id: str
    portfolioId: str
    userId: str
    rating: int
    review: Optional[str] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None
    user: Optional[RatingUser] = None


class SubmitRatingResponse(BaseModel):
    message: str
    rating: RatingResponse


class PaginationResponse(BaseModel):
    currentPage: int
    totalPages: int
    totalRatings: int
    hasNext: bool
    hasPrev: bool


class RatingListResponse(BaseModel):
    ratings: list[RatingResponse]
    pagination: PaginationResponse


class MyRatingResponse(BaseModel):
    hasRated: bool
    rating: Optional[RatingResponse] = None


class MessageResponse(BaseModel):
    message: str


class ProfileUpdateRequest(BaseModel):
    displayName: Optional[str] = Field(default=None, max_length=256)
    photoURL: Optional[str] = Field(default=None, max_length=2048)


class ProfileUpdateResponse(BaseModel):
    message: str
    profile: dict


class UploadedImageResponse(BaseModel):
    url: str
    publicId: str
    width: Optional[int] = None
    height: Optional[int] = None


class UploadResponse(UploadedImageResponse):
    message: str


class MultiUploadResponse(BaseModel):
    message: str
    files: list[UploadedImageResponse]


class UserStatsResponse(BaseModel):
    hasPortfolio: bool
    views: int
    createdAt: Optional[datetime] = None


class StatsResponse(BaseModel):
    totalPortfolios: int
    userStats: UserStatsResponse


class HealthResponse(BaseModel):
    status: Literal["OK"]
    message: str
    timestamp: str
