"""
Document store abstraction for Firestore and an in-memory test implementation.
"""

from __future__ import annotations

import copy
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, Optional, Protocol

from google.api_core.exceptions import NotFound
from google.cloud.firestore_v1 import (
    SERVER_TIMESTAMP,
    FieldFilter,
    Increment,
    Query,
    transactional,
)
from google.cloud.firestore_v1.field_path import FieldPath

from shared.constants import (
    PORTFOLIOS_COLLECTION,
    RATINGS_COLLECTION,
    USERS_COLLECTION,
)
from shared.portfolio_convert import (
    portfolio_from_document,
    portfolio_to_document,
    profile_from_document,
    profile_to_document,
    rating_from_document,
    stats_to_document,
)
from shared.types import PortfolioRecord, RatingRecord, RatingStats, UserProfile

StatsAggregator = Callable[[Iterable[int]], RatingStats]


class DbClient(Protocol):
    """Interface for document store access."""

    def get_portfolio(self, portfolio_id: str) -> Optional[PortfolioRecord]:
        ...

    def find_portfolio_by_owner(self, owner_id: str) -> Optional[PortfolioRecord]:
        ...

    def insert_portfolio_if_absent(
        self, record: PortfolioRecord
    ) -> Optional[PortfolioRecord]:
        """Store ``record`` unless its owner already has a portfolio.

        Returns the stored record (with its new id) or None on conflict.
        """
        ...

    def update_portfolio(
        self, portfolio_id: str, fields: dict
    ) -> Optional[PortfolioRecord]:
        ...

    def delete_portfolio(self, portfolio_id: str) -> None:
        ...

    def increment_portfolio_views(self, portfolio_id: str, amount: int = 1) -> bool:
        """Returns False when the portfolio does not exist."""
        ...

    def list_portfolios(
        self, *, owner_id: Optional[str] = None, featured_only: bool = False
    ) -> list[PortfolioRecord]:
        ...

    def count_portfolios(self) -> int:
        ...

    def get_rating(self, rating_id: str) -> Optional[RatingRecord]:
        ...

    def find_rating(
        self, portfolio_id: str, rater_id: str
    ) -> Optional[RatingRecord]:
        ...

    def upsert_rating(
        self,
        portfolio_id: str,
        rater_id: str,
        stars: int,
        review: Optional[str],
    ) -> tuple[RatingRecord, bool]:
        """Insert or overwrite the rater's rating; the flag is True on insert."""
        ...

    def delete_rating(self, rating_id: str) -> None:
        ...

    def list_ratings(self, portfolio_id: str) -> list[RatingRecord]:
        ...

    def recompute_rating_stats(
        self, portfolio_id: str, aggregate: StatsAggregator
    ) -> Optional[RatingStats]:
        """Atomically rescan ratings and persist ``aggregate`` of their stars.

        Returns None when the portfolio no longer exists.
        """
        ...

    def get_user(self, uid: str) -> Optional[UserProfile]:
        ...

    def save_user(self, profile: UserProfile, *, merge: bool = False) -> UserProfile:
        ...


class InMemoryDbClient:
    """Simple in-memory document store for development and tests.

    Every read-modify-write runs under a single re-entrant lock, so
    concurrent request threads see the same serialization a Firestore
    transaction would give them.
    """

    def __init__(self):
        self.portfolios: Dict[str, PortfolioRecord] = {}
        self.ratings: Dict[str, RatingRecord] = {}
        self.users: Dict[str, UserProfile] = {}
        self._lock = threading.RLock()
        self._last_timestamp: Optional[datetime] = None

    def _now(self) -> datetime:
        # Strictly increasing so "newest first" ordering is deterministic.
        now = datetime.now(timezone.utc)
        if self._last_timestamp and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.portfolios.clear()
            self.ratings.clear()
            self.users.clear()

    def get_portfolio(self, portfolio_id: str) -> Optional[PortfolioRecord]:
        with self._lock:
            return copy.deepcopy(self.portfolios.get(portfolio_id))

    def find_portfolio_by_owner(self, owner_id: str) -> Optional[PortfolioRecord]:
        with self._lock:
            for record in self.portfolios.values():
                if record.owner_id == owner_id:
                    return copy.deepcopy(record)
            return None

    def insert_portfolio_if_absent(
        self, record: PortfolioRecord
    ) -> Optional[PortfolioRecord]:
        with self._lock:
            if any(p.owner_id == record.owner_id for p in self.portfolios.values()):
                return None
            stored = copy.deepcopy(record)
            stored.portfolio_id = uuid.uuid4().hex
            stored.created_at = stored.updated_at = self._now()
            self.portfolios[stored.portfolio_id] = stored
            return copy.deepcopy(stored)

    def update_portfolio(
        self, portfolio_id: str, fields: dict
    ) -> Optional[PortfolioRecord]:
        with self._lock:
            existing = self.portfolios.get(portfolio_id)
            if existing is None:
                return None
            doc = portfolio_to_document(existing)
            doc.update(fields)
            doc["updatedAt"] = self._now()
            updated = portfolio_from_document(portfolio_id, doc)
            self.portfolios[portfolio_id] = updated
            return copy.deepcopy(updated)

    def delete_portfolio(self, portfolio_id: str) -> None:
        with self._lock:
            self.portfolios.pop(portfolio_id, None)

    def increment_portfolio_views(self, portfolio_id: str, amount: int = 1) -> bool:
        with self._lock:
            record = self.portfolios.get(portfolio_id)
            if record is None:
                return False
            record.views += amount
            return True

    def list_portfolios(
        self, *, owner_id: Optional[str] = None, featured_only: bool = False
    ) -> list[PortfolioRecord]:
        with self._lock:
            items = [
                copy.deepcopy(p)
                for p in self.portfolios.values()
                if (owner_id is None or p.owner_id == owner_id)
                and (not featured_only or p.featured)
            ]
        items.sort(key=lambda p: p.created_at, reverse=True)
        return items

    def count_portfolios(self) -> int:
        with self._lock:
            return len(self.portfolios)

    def get_rating(self, rating_id: str) -> Optional[RatingRecord]:
        with self._lock:
            return copy.deepcopy(self.ratings.get(rating_id))

    def find_rating(
        self, portfolio_id: str, rater_id: str
    ) -> Optional[RatingRecord]:
        with self._lock:
            for rating in self.ratings.values():
                if rating.portfolio_id == portfolio_id and rating.rater_id == rater_id:
                    return copy.deepcopy(rating)
            return None

    def upsert_rating(
        self,
        portfolio_id: str,
        rater_id: str,
        stars: int,
        review: Optional[str],
    ) -> tuple[RatingRecord, bool]:
        with self._lock:
            for rating in self.ratings.values():
                if rating.portfolio_id == portfolio_id and rating.rater_id == rater_id:
                    rating.stars = stars
                    rating.review = review
                    rating.updated_at = self._now()
                    return copy.deepcopy(rating), False
            now = self._now()
            rating = RatingRecord(
                rating_id=uuid.uuid4().hex,
                portfolio_id=portfolio_id,
                rater_id=rater_id,
                stars=stars,
                review=review,
                created_at=now,
                updated_at=now,
            )
            self.ratings[rating.rating_id] = rating
            return copy.deepcopy(rating), True

    def delete_rating(self, rating_id: str) -> None:
        with self._lock:
            self.ratings.pop(rating_id, None)

    def list_ratings(self, portfolio_id: str) -> list[RatingRecord]:
        with self._lock:
            return [
                copy.deepcopy(r)
                for r in self.ratings.values()
                if r.portfolio_id == portfolio_id
            ]

    def recompute_rating_stats(
        self, portfolio_id: str, aggregate: StatsAggregator
    ) -> Optional[RatingStats]:
        with self._lock:
            record = self.portfolios.get(portfolio_id)
            if record is None:
                return None
            stats = aggregate(
                r.stars for r in self.ratings.values() if r.portfolio_id == portfolio_id
            )
            record.stats = copy.deepcopy(stats)
            record.updated_at = self._now()
            return stats

    def get_user(self, uid: str) -> Optional[UserProfile]:
        with self._lock:
            return copy.deepcopy(self.users.get(uid))

    def save_user(self, profile: UserProfile, *, merge: bool = False) -> UserProfile:
        with self._lock:
            existing = self.users.get(profile.uid)
            if merge and existing is not None:
                doc = profile_to_document(existing)
                doc.update(profile_to_document(profile))
                stored = profile_from_document(profile.uid, doc)
            else:
                stored = copy.deepcopy(profile)
            now = self._now()
            if stored.created_at is None:
                stored.created_at = now
            if merge:
                stored.updated_at = now
            self.users[profile.uid] = stored
            return copy.deepcopy(stored)


class FirestoreDbClient:
    """
    Firestore-backed implementation. Accepts an explicit client (useful for
    tests); otherwise uses the default firebase_admin app.
    """

    def __init__(self, client=None):
        if client is None:
            from firebase_admin import firestore

            client = firestore.client()
        self._client = client
        self._portfolios = client.collection(PORTFOLIOS_COLLECTION)
        self._ratings = client.collection(RATINGS_COLLECTION)
        self._users = client.collection(USERS_COLLECTION)

    def _ratings_for(self, portfolio_id: str):
        return self._ratings.where(filter=FieldFilter("portfolioId", "==", portfolio_id))

    def _owned_by(self, owner_id: str):
        return self._portfolios.where(filter=FieldFilter("userId", "==", owner_id))

    def get_portfolio(self, portfolio_id: str) -> Optional[PortfolioRecord]:
        snapshot = self._portfolios.document(portfolio_id).get()
        if not snapshot.exists:
            return None
        return portfolio_from_document(snapshot.id, snapshot.to_dict())

    def find_portfolio_by_owner(self, owner_id: str) -> Optional[PortfolioRecord]:
        for snapshot in self._owned_by(owner_id).limit(1).stream():
            return portfolio_from_document(snapshot.id, snapshot.to_dict())
        return None

    def insert_portfolio_if_absent(
        self, record: PortfolioRecord
    ) -> Optional[PortfolioRecord]:
        doc_data = portfolio_to_document(record)
        doc_data["createdAt"] = SERVER_TIMESTAMP
        doc_data["updatedAt"] = SERVER_TIMESTAMP
        owned_query = self._owned_by(record.owner_id).limit(1)

        @transactional
        def _create_portfolio_transaction(transaction):
            if any(True for _ in transaction.get(owned_query)):
                return None
            doc_ref = self._portfolios.document()
            transaction.set(doc_ref, doc_data)
            return doc_ref

        doc_ref = _create_portfolio_transaction(self._client.transaction())
        if doc_ref is None:
            return None
        snapshot = doc_ref.get()
        return portfolio_from_document(snapshot.id, snapshot.to_dict())

    def update_portfolio(
        self, portfolio_id: str, fields: dict
    ) -> Optional[PortfolioRecord]:
        doc_ref = self._portfolios.document(portfolio_id)
        # update() reads keys as field paths; quote each one so a key like
        # "stats.total" or "`views`" names a literal top-level field.
        doc_data = {
            FieldPath(key).to_api_repr(): value for key, value in fields.items()
        }
        doc_data["updatedAt"] = SERVER_TIMESTAMP
        try:
            doc_ref.update(doc_data)
        except NotFound:
            return None
        snapshot = doc_ref.get()
        if not snapshot.exists:
            return None
        return portfolio_from_document(snapshot.id, snapshot.to_dict())

    def delete_portfolio(self, portfolio_id: str) -> None:
        self._portfolios.document(portfolio_id).delete()

    def increment_portfolio_views(self, portfolio_id: str, amount: int = 1) -> bool:
        try:
            self._portfolios.document(portfolio_id).update({"views": Increment(amount)})
        except NotFound:
            return False
        return True

    def list_portfolios(
        self, *, owner_id: Optional[str] = None, featured_only: bool = False
    ) -> list[PortfolioRecord]:
        query = self._portfolios
        if owner_id is not None:
            query = query.where(filter=FieldFilter("userId", "==", owner_id))
        if featured_only:
            query = query.where(filter=FieldFilter("featured", "==", True))
        query = query.order_by("createdAt", direction=Query.DESCENDING)
        return [
            portfolio_from_document(snapshot.id, snapshot.to_dict())
            for snapshot in query.stream()
        ]

    def count_portfolios(self) -> int:
        result = self._portfolios.count().get()
        return int(result[0][0].value)

    def get_rating(self, rating_id: str) -> Optional[RatingRecord]:
        snapshot = self._ratings.document(rating_id).get()
        if not snapshot.exists:
            return None
        return rating_from_document(snapshot.id, snapshot.to_dict())

    def find_rating(
        self, portfolio_id: str, rater_id: str
    ) -> Optional[RatingRecord]:
        query = (
            self._ratings_for(portfolio_id)
            .where(filter=FieldFilter("userId", "==", rater_id))
            .limit(1)
        )
        for snapshot in query.stream():
            return rating_from_document(snapshot.id, snapshot.to_dict())
        return None

    def upsert_rating(
        self,
        portfolio_id: str,
        rater_id: str,
        stars: int,
        review: Optional[str],
    ) -> tuple[RatingRecord, bool]:
        existing_query = (
            self._ratings_for(portfolio_id)
            .where(filter=FieldFilter("userId", "==", rater_id))
            .limit(1)
        )

        @transactional
        def _upsert_rating_transaction(transaction):
            for snapshot in transaction.get(existing_query):
                transaction.update(
                    snapshot.reference,
                    {"rating": stars, "review": review, "updatedAt": SERVER_TIMESTAMP},
                )
                return snapshot.reference, False
            doc_ref = self._ratings.document()
            transaction.set(
                doc_ref,
                {
                    "portfolioId": portfolio_id,
                    "userId": rater_id,
                    "rating": stars,
                    "review": review,
                    "createdAt": SERVER_TIMESTAMP,
                    "updatedAt": SERVER_TIMESTAMP,
                },
            )
            return doc_ref, True

        doc_ref, created = _upsert_rating_transaction(self._client.transaction())
        snapshot = doc_ref.get()
        return rating_from_document(snapshot.id, snapshot.to_dict()), created

    def delete_rating(self, rating_id: str) -> None:
        self._ratings.document(rating_id).delete()

    def list_ratings(self, portfolio_id: str) -> list[RatingRecord]:
        return [
            rating_from_document(snapshot.id, snapshot.to_dict())
            for snapshot in self._ratings_for(portfolio_id).stream()
        ]

    def recompute_rating_stats(
        self, portfolio_id: str, aggregate: StatsAggregator
    ) -> Optional[RatingStats]:
        portfolio_ref = self._portfolios.document(portfolio_id)
        ratings_query = self._ratings_for(portfolio_id)

        @transactional
        def _recompute_transaction(transaction):
            # Firestore transactions require all reads before any write.
            if not portfolio_ref.get(transaction=transaction).exists:
                return None
            stars = [
                (snapshot.to_dict() or {}).get("rating")
                for snapshot in transaction.get(ratings_query)
            ]
            stats = aggregate(stars)
            transaction.update(
                portfolio_ref,
                {**stats_to_document(stats), "updatedAt": SERVER_TIMESTAMP},
            )
            return stats

        return _recompute_transaction(self._client.transaction())

    def get_user(self, uid: str) -> Optional[UserProfile]:
        snapshot = self._users.document(uid).get()
        if not snapshot.exists:
            return None
        return profile_from_document(snapshot.id, snapshot.to_dict())

    def save_user(self, profile: UserProfile, *, merge: bool = False) -> UserProfile:
        doc_ref = self._users.document(profile.uid)
        doc_data = profile_to_document(profile)
        if profile.created_at is None and not merge:
            doc_data["createdAt"] = SERVER_TIMESTAMP
        if merge:
            doc_data["updatedAt"] = SERVER_TIMESTAMP
        doc_ref.set(doc_data, merge=merge)
        snapshot = doc_ref.get()
        return profile_from_document(snapshot.id, snapshot.to_dict())
