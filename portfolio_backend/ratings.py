"""
Rating aggregator: one rating per rater per portfolio, with the portfolio's
rating statistics recomputed after every change.
"""

from __future__ import annotations

import logging
import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from portfolio_backend.db import DbClient
from portfolio_backend.errors import (
    ForbiddenError,
    InternalError,
    InvalidInputError,
    NotFoundError,
    SelfRatingForbiddenError,
)
from shared.constants import MAX_REVIEW_LENGTH, MAX_STARS, MIN_STARS
from shared.types import (
    Pagination,
    RatingPage,
    RatingRecord,
    RatingStats,
    SortOrder,
    empty_distribution,
)

logger = logging.getLogger(__name__)

SORT_FIELDS = {
    "createdAt": "createdAt",
    "stars": "stars",
    "rating": "stars",
}


def compute_rating_stats(stars: Iterable[int]) -> RatingStats:
    """Distribution, count and half-up rounded mean of a set of star values."""
    distribution = empty_distribution()
    for value in stars:
        if value in distribution:
            distribution[value] += 1
        else:
            logger.warning("Ignoring out-of-range star value %r", value)
    total = sum(distribution.values())
    if total == 0:
        return RatingStats(rating_distribution=distribution)
    score = sum(star * count for star, count in distribution.items())
    average = (Decimal(score) / Decimal(total)).quantize(
        Decimal("0.1"), rounding=ROUND_HALF_UP
    )
    return RatingStats(
        average_rating=float(average),
        total_ratings=total,
        rating_distribution=distribution,
    )


def recompute_aggregate(db: DbClient, portfolio_id: str) -> Optional[RatingStats]:
    try:
        stats = db.recompute_rating_stats(portfolio_id, compute_rating_stats)
    except Exception as e:
        logger.exception("Failed to update rating stats for %s", portfolio_id)
        raise InternalError(f"Failed to update rating statistics: {e}") from e
    if stats is None:
        logger.warning(
            "Skipped rating stats for missing portfolio %s", portfolio_id
        )
    else:
        logger.info(
            "Portfolio %s rating stats: %s ratings, average %s",
            portfolio_id,
            stats.total_ratings,
            stats.average_rating,
        )
    return stats


def _validate_stars(stars) -> int:
    # bool is an int subclass; reject it explicitly.
    if stars is None or isinstance(stars, bool):
        raise InvalidInputError("Portfolio ID and rating are required")
    if isinstance(stars, float) and stars.is_integer():
        stars = int(stars)
    if not isinstance(stars, int):
        raise InvalidInputError("Rating must be a whole number between 1 and 5")
    if stars < MIN_STARS or stars > MAX_STARS:
        raise InvalidInputError("Rating must be between 1 and 5")
    return stars


def submit_rating(
    db: DbClient,
    rater_id: str,
    portfolio_id: Optional[str],
    stars,
    review: Optional[str] = None,
) -> tuple[RatingRecord, bool]:
    """Create or overwrite the rater's rating.

    Returns the stored rating and True when it was newly created.
    """
    if not portfolio_id:
        raise InvalidInputError("Portfolio ID and rating are required")
    stars = _validate_stars(stars)
    if review is not None and len(review) > MAX_REVIEW_LENGTH:
        raise InvalidInputError(
            f"Review must be at most {MAX_REVIEW_LENGTH} characters"
        )

    portfolio = db.get_portfolio(portfolio_id)
    if portfolio is None:
        raise InvalidInputError(f"Portfolio {portfolio_id} does not exist")
    if portfolio.owner_id == rater_id:
        raise SelfRatingForbiddenError("Cannot rate your own portfolio")

    rating, created = db.upsert_rating(portfolio_id, rater_id, stars, review or None)
    logger.info(
        "%s rating %s on portfolio %s",
        "Created" if created else "Updated",
        rating.rating_id,
        portfolio_id,
    )
    recompute_aggregate(db, portfolio_id)
    return rating, created


def delete_rating(db: DbClient, rater_id: str, rating_id: str) -> None:
    rating = db.get_rating(rating_id)
    if rating is None:
        raise NotFoundError("Rating not found")
    if rating.rater_id != rater_id:
        raise ForbiddenError("Access denied - You can only delete your own ratings")
    db.delete_rating(rating_id)
    logger.info("Deleted rating %s on portfolio %s", rating_id, rating.portfolio_id)
    recompute_aggregate(db, rating.portfolio_id)


def get_my_rating(
    db: DbClient, rater_id: str, portfolio_id: str
) -> Optional[RatingRecord]:
    return db.find_rating(portfolio_id, rater_id)


def _sort_value(rating: RatingRecord, field: str):
    if field == "stars":
        return rating.stars
    # Ratings without a timestamp sort as the oldest.
    return rating.created_at.timestamp() if rating.created_at else 0.0


def sort_ratings(
    ratings: list[RatingRecord], sort_by: str = "createdAt", order: str = "desc"
) -> list[RatingRecord]:
    field = SORT_FIELDS.get(sort_by)
    if field is None:
        raise InvalidInputError(
            f"sortBy must be one of {', '.join(sorted(SORT_FIELDS))}"
        )
    try:
        direction = SortOrder(order)
    except ValueError as e:
        raise InvalidInputError("sortOrder must be 'asc' or 'desc'") from e
    # Ties keep rating-id order in both directions: sort on the id first,
    # then stable-sort on the value.
    by_id = sorted(ratings, key=lambda r: r.rating_id)
    if direction is SortOrder.DESC:
        return sorted(by_id, key=lambda r: -_sort_value(r, field))
    return sorted(by_id, key=lambda r: _sort_value(r, field))


def paginate(total: int, page: int, page_size: int) -> tuple[int, Pagination]:
    """Returns the slice offset and the pagination metadata for ``page``."""
    offset = (page - 1) * page_size
    return offset, Pagination(
        current_page=page,
        total_pages=math.ceil(total / page_size),
        total_ratings=total,
        has_next=offset + page_size < total,
        has_prev=page > 1,
    )


def list_ratings(
    db: DbClient,
    portfolio_id: str,
    *,
    page: int = 1,
    page_size: int = 10,
    sort_by: str = "createdAt",
    order: str = "desc",
) -> RatingPage:
    if page < 1:
        raise InvalidInputError("page must be at least 1")
    if page_size < 1:
        raise InvalidInputError("limit must be at least 1")
    ordered = sort_ratings(db.list_ratings(portfolio_id), sort_by, order)
    offset, pagination = paginate(len(ordered), page, page_size)
    return RatingPage(
        ratings=ordered[offset : offset + page_size], pagination=pagination
    )
