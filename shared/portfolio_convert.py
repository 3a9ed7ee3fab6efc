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

"""Conversion between records and their stored / JSON (camelCase) layouts."""

from typing import Any, Optional

from shared.types import (
    PortfolioRecord,
    PortfolioStatus,
    RatingRecord,
    RatingStats,
    UserInfo,
    UserProfile,
    empty_distribution,
)

PORTFOLIO_FIELDS = frozenset(
    {
        "id",
        "userId",
        "templateId",
        "heroSection",
        "aboutMe",
        "skills",
        "slug",
        "status",
        "featured",
        "views",
        "averageRating",
        "totalRatings",
        "ratingDistribution",
        "seoTitle",
        "seoDescription",
        "createdAt",
        "updatedAt",
    }
)


def _get_value(data: dict, *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


def _with_timestamps(doc: dict, created_at, updated_at) -> dict:
    if created_at is not None:
        doc["createdAt"] = created_at
    if updated_at is not None:
        doc["updatedAt"] = updated_at
    return doc


def stats_to_document(stats: RatingStats) -> dict:
    # Firestore map keys must be strings.
    return {
        "averageRating": stats.average_rating,
        "totalRatings": stats.total_ratings,
        "ratingDistribution": {
            str(star): count for star, count in stats.rating_distribution.items()
        },
    }


def stats_from_document(data: dict) -> RatingStats:
    distribution = empty_distribution()
    for key, count in (data.get("ratingDistribution") or {}).items():
        star = int(key)
        if star in distribution:
            distribution[star] = int(count or 0)
    return RatingStats(
        average_rating=float(data.get("averageRating") or 0),
        total_ratings=int(data.get("totalRatings") or 0),
        rating_distribution=distribution,
    )


def portfolio_to_document(record: PortfolioRecord) -> dict:
    doc = {key: value for key, value in record.content.items() if key not in PORTFOLIO_FIELDS}
    doc.update(
        {
            "userId": record.owner_id,
            "templateId": record.template_id,
            "heroSection": record.hero_section,
            "aboutMe": record.about_me,
            "skills": list(record.skills),
            "slug": record.slug,
            "status": str(record.status),
            "featured": record.featured,
            "views": record.views,
            "seoTitle": record.seo_title,
            "seoDescription": record.seo_description,
        }
    )
    doc.update(stats_to_document(record.stats))
    return _with_timestamps(doc, record.created_at, record.updated_at)


def portfolio_from_document(doc_id: str, data: dict) -> PortfolioRecord:
    return PortfolioRecord(
        portfolio_id=doc_id,
        owner_id=data.get("userId") or "",
        template_id=data.get("templateId"),
        hero_section=data.get("heroSection") or {},
        about_me=data.get("aboutMe"),
        skills=list(data.get("skills") or []),
        content={key: value for key, value in data.items() if key not in PORTFOLIO_FIELDS},
        slug=data.get("slug") or "",
        status=PortfolioStatus(data.get("status") or PortfolioStatus.PUBLISHED),
        featured=bool(data.get("featured", False)),
        views=int(data.get("views") or 0),
        stats=stats_from_document(data),
        seo_title=data.get("seoTitle"),
        seo_description=data.get("seoDescription"),
        created_at=data.get("createdAt"),
        updated_at=data.get("updatedAt"),
    )


def portfolio_to_json(record: PortfolioRecord) -> dict:
    return {"id": record.portfolio_id, **portfolio_to_document(record)}


def rating_to_document(record: RatingRecord) -> dict:
    doc = {
        "portfolioId": record.portfolio_id,
        "userId": record.rater_id,
        "rating": record.stars,
        "review": record.review,
    }
    return _with_timestamps(doc, record.created_at, record.updated_at)


def rating_from_document(doc_id: str, data: dict) -> RatingRecord:
    return RatingRecord(
        rating_id=doc_id,
        portfolio_id=data.get("portfolioId") or "",
        rater_id=data.get("userId") or "",
        stars=int(data.get("rating") or 0),
        review=data.get("review"),
        created_at=data.get("createdAt"),
        updated_at=data.get("updatedAt"),
    )


def rating_to_json(record: RatingRecord, user: Optional[UserInfo] = None) -> dict:
    payload = {"id": record.rating_id, **rating_to_document(record)}
    if user is not None:
        payload["user"] = {
            "displayName": user.display_name,
            "photoURL": user.photo_url,
        }
    return payload


def profile_to_document(profile: UserProfile) -> dict:
    doc = {
        "uid": profile.uid,
        "email": profile.email,
        "displayName": profile.display_name,
        "photoURL": profile.photo_url,
        "phone": profile.phone,
    }
    doc = {key: value for key, value in doc.items() if value is not None}
    return _with_timestamps(doc, profile.created_at, profile.updated_at)


def profile_from_document(uid: str, data: dict) -> UserProfile:
    return UserProfile(
        uid=data.get("uid") or uid,
        email=data.get("email"),
        display_name=_get_value(data, "displayName", "display_name"),
        photo_url=_get_value(data, "photoURL", "photoUrl", "photo_url"),
        phone=_get_value(data, "phone", "phoneNumber"),
        created_at=data.get("createdAt"),
        updated_at=data.get("updatedAt"),
    )


def profile_to_json(profile: UserProfile) -> dict:
    return {"id": profile.uid, **profile_to_document(profile)}


def user_info_to_json(info: UserInfo) -> dict:
    return {
        "uid": info.uid,
        "email": info.email,
        "displayName": info.display_name,
        "phone": info.phone,
        "photoURL": info.photo_url,
    }
