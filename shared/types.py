# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, Dict, List, Optional

from shared.constants import STAR_VALUES


class PortfolioStatus(StrEnum):
    DRAFT = "draft"
    PUBLISHED = "published"


class SortOrder(StrEnum):
    ASC = "asc"
    DESC = "desc"


def empty_distribution() -> Dict[int, int]:
    return {star: 0 for star in STAR_VALUES}


@dataclass
class RatingStats:
    """Denormalized rating aggregates stored on a portfolio."""

    average_rating: float = 0.0
    total_ratings: int = 0
    rating_distribution: Dict[int, int] = field(default_factory=empty_distribution)


@dataclass
class PortfolioRecord:
    portfolio_id: str
    owner_id: str
    template_id: Any
    hero_section: dict
    about_me: Any
    skills: List[str] = field(default_factory=list)
    # Client-defined sections (projects, experience, contact, ...).
    content: Dict[str, Any] = field(default_factory=dict)
    slug: str = ""
    status: PortfolioStatus = PortfolioStatus.PUBLISHED
    featured: bool = False
    views: int = 0
    stats: RatingStats = field(default_factory=RatingStats)
    seo_title: Optional[str] = None
    seo_description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class RatingRecord:
    rating_id: str
    portfolio_id: str
    rater_id: str
    stars: int
    review: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class UserProfile:
    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    phone: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class UserInfo:
    """Display info joined onto portfolios and ratings."""

    uid: str
    email: Optional[str]
    display_name: str
    photo_url: Optional[str] = None
    phone: Optional[str] = None


@dataclass
class Pagination:
    current_page: int
    total_pages: int
    total_ratings: int
    has_next: bool
    has_prev: bool


@dataclass
class RatingPage:
    ratings: List[RatingRecord]
    pagination: Pagination


@dataclass
class UploadedImage:
    url: str
    public_id: str
    width: Optional[int] = None
    height: Optional[int] = None
