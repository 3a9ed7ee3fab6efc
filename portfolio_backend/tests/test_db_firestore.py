import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

from google.api_core.exceptions import NotFound
from google.cloud.firestore_v1 import SERVER_TIMESTAMP, Increment
from google.cloud.firestore_v1.field_path import FieldPath

from portfolio_backend import portfolios
from portfolio_backend.db import FirestoreDbClient
from portfolio_backend.ratings import compute_rating_stats
from shared.constants import (
    PORTFOLIOS_COLLECTION,
    RATINGS_COLLECTION,
    USERS_COLLECTION,
)
from shared.types import PortfolioRecord


def _snapshot(doc_id, data, exists=True):
    snapshot = MagicMock()
    snapshot.id = doc_id
    snapshot.exists = exists
    snapshot.to_dict.return_value = data
    return snapshot


def _run_inline(func):
    # Stands in for firestore's @transactional: call the body once with the
    # mocked transaction.
    return func


class FirestoreDbClientTests(unittest.TestCase):
    """
    Exercises the Firestore adapter against a mocked SDK client.
    """

    def setUp(self):
        self.client = MagicMock()
        self.collections = {
            name: MagicMock(name=name)
            for name in (PORTFOLIOS_COLLECTION, RATINGS_COLLECTION, USERS_COLLECTION)
        }
        self.client.collection.side_effect = self.collections.__getitem__
        self.portfolios = self.collections[PORTFOLIOS_COLLECTION]
        self.ratings = self.collections[RATINGS_COLLECTION]
        self.transaction = self.client.transaction.return_value
        self.db = FirestoreDbClient(client=self.client)

    def test_view_increment_is_atomic(self):
        self.assertTrue(self.db.increment_portfolio_views("p1"))
        self.portfolios.document.assert_called_with("p1")
        update = self.portfolios.document.return_value.update
        update.assert_called_once()
        (fields,), _ = update.call_args
        self.assertIsInstance(fields["views"], Increment)
        self.assertEqual(fields["views"].value, 1)

    def test_view_increment_on_deleted_portfolio(self):
        self.portfolios.document.return_value.update.side_effect = NotFound("gone")
        self.assertFalse(self.db.increment_portfolio_views("p1"))

    def test_get_portfolio_parses_stored_layout(self):
        created = datetime(2024, 5, 1, tzinfo=timezone.utc)
        self.portfolios.document.return_value.get.return_value = _snapshot(
            "p1",
            {
                "userId": "alice",
                "templateId": "classic",
                "heroSection": {"name": "Alice"},
                "aboutMe": "Hi",
                "skills": ["Go"],
                "projects": [{"name": "x"}],
                "views": 3,
                "averageRating": 4.5,
                "totalRatings": 2,
                "ratingDistribution": {"4": 1, "5": 1},
                "createdAt": created,
            },
        )
        record = self.db.get_portfolio("p1")
        self.assertEqual(record.owner_id, "alice")
        self.assertEqual(record.views, 3)
        self.assertEqual(record.content, {"projects": [{"name": "x"}]})
        self.assertEqual(record.stats.rating_distribution, {1: 0, 2: 0, 3: 0, 4: 1, 5: 1})
        self.assertEqual(record.created_at, created)

    def test_get_portfolio_missing(self):
        self.portfolios.document.return_value.get.return_value = _snapshot(
            "p1", None, exists=False
        )
        self.assertIsNone(self.db.get_portfolio("p1"))

    def test_find_rating_maps_fields(self):
        query = self.ratings.where.return_value.where.return_value.limit.return_value
        query.stream.return_value = iter(
            [_snapshot("r1", {"portfolioId": "p1", "userId": "bob", "rating": 4, "review": "ok"})]
        )
        rating = self.db.find_rating("p1", "bob")
        self.assertEqual(rating.rating_id, "r1")
        self.assertEqual(rating.rater_id, "bob")
        self.assertEqual(rating.stars, 4)

    def test_count_portfolios(self):
        result = MagicMock()
        result.value = 7
        self.portfolios.count.return_value.get.return_value = [[result]]
        self.assertEqual(self.db.count_portfolios(), 7)

    @patch("portfolio_backend.db.transactional", new=_run_inline)
    def test_insert_portfolio_when_owner_has_none(self):
        self.transaction.get.return_value = iter([])
        new_ref = self.portfolios.document.return_value
        new_ref.get.return_value = _snapshot(
            "p9",
            {"userId": "alice", "templateId": "classic", "heroSection": {"name": "Alice"}},
        )
        record = PortfolioRecord(
            portfolio_id="",
            owner_id="alice",
            template_id="classic",
            hero_section={"name": "Alice"},
            about_me="Hi",
        )

        stored = self.db.insert_portfolio_if_absent(record)

        self.assertEqual(stored.portfolio_id, "p9")
        self.transaction.set.assert_called_once()
        (doc_ref, doc_data), _ = self.transaction.set.call_args
        self.assertIs(doc_ref, new_ref)
        self.assertEqual(doc_data["userId"], "alice")
        self.assertIs(doc_data["createdAt"], SERVER_TIMESTAMP)
        # The existence check is read through the transaction.
        self.transaction.get.assert_called_once()

    @patch("portfolio_backend.db.transactional", new=_run_inline)
    def test_insert_portfolio_conflict_writes_nothing(self):
        self.transaction.get.return_value = iter([_snapshot("p1", {"userId": "alice"})])
        record = PortfolioRecord(
            portfolio_id="",
            owner_id="alice",
            template_id="classic",
            hero_section={"name": "Alice"},
            about_me="Hi",
        )
        self.assertIsNone(self.db.insert_portfolio_if_absent(record))
        self.transaction.set.assert_not_called()

    @patch("portfolio_backend.db.transactional", new=_run_inline)
    def test_upsert_rating_updates_existing(self):
        existing = _snapshot("r1", {"portfolioId": "p1", "userId": "bob", "rating": 2})
        existing.reference.get.return_value = _snapshot(
            "r1", {"portfolioId": "p1", "userId": "bob", "rating": 5, "review": "great"}
        )
        self.transaction.get.return_value = iter([existing])

        rating, created = self.db.upsert_rating("p1", "bob", 5, "great")

        self.assertFalse(created)
        self.assertEqual(rating.rating_id, "r1")
        self.assertEqual(rating.stars, 5)
        self.transaction.update.assert_called_once_with(
            existing.reference,
            {"rating": 5, "review": "great", "updatedAt": SERVER_TIMESTAMP},
        )
        self.transaction.set.assert_not_called()

    @patch("portfolio_backend.db.transactional", new=_run_inline)
    def test_upsert_rating_inserts_new(self):
        self.transaction.get.return_value = iter([])
        new_ref = self.ratings.document.return_value
        new_ref.get.return_value = _snapshot(
            "r2", {"portfolioId": "p1", "userId": "bob", "rating": 4, "review": None}
        )

        rating, created = self.db.upsert_rating("p1", "bob", 4, None)

        self.assertTrue(created)
        self.assertEqual(rating.rating_id, "r2")
        (doc_ref, doc_data), _ = self.transaction.set.call_args
        self.assertIs(doc_ref, new_ref)
        self.assertEqual(doc_data["portfolioId"], "p1")
        self.assertEqual(doc_data["userId"], "bob")
        self.assertEqual(doc_data["rating"], 4)
        self.transaction.update.assert_not_called()

    @patch("portfolio_backend.db.transactional", new=_run_inline)
    def test_recompute_reads_before_writing(self):
        portfolio_ref = self.portfolios.document.return_value
        portfolio_ref.get.return_value = _snapshot("p1", {"userId": "alice"})
        self.transaction.get.return_value = iter(
            [_snapshot("r1", {"rating": 5}), _snapshot("r2", {"rating": 3})]
        )

        stats = self.db.recompute_rating_stats("p1", compute_rating_stats)

        self.assertEqual(stats.total_ratings, 2)
        self.assertEqual(stats.average_rating, 4.0)
        portfolio_ref.get.assert_called_once_with(transaction=self.transaction)
        self.assertEqual(
            [name for name, _, _ in self.transaction.method_calls], ["get", "update"]
        )
        (doc_ref, fields), _ = self.transaction.update.call_args
        self.assertIs(doc_ref, portfolio_ref)
        self.assertEqual(fields["totalRatings"], 2)
        self.assertEqual(fields["averageRating"], 4.0)
        self.assertEqual(
            fields["ratingDistribution"], {"1": 0, "2": 0, "3": 1, "4": 0, "5": 1}
        )
        self.assertIs(fields["updatedAt"], SERVER_TIMESTAMP)

    @patch("portfolio_backend.db.transactional", new=_run_inline)
    def test_recompute_on_deleted_portfolio_is_noop(self):
        portfolio_ref = self.portfolios.document.return_value
        portfolio_ref.get.return_value = _snapshot("p1", None, exists=False)

        self.assertIsNone(self.db.recompute_rating_stats("p1", compute_rating_stats))
        self.transaction.get.assert_not_called()
        self.transaction.update.assert_not_called()

    def test_update_portfolio_writes_literal_field_names(self):
        doc_ref = self.portfolios.document.return_value
        doc_ref.get.return_value = _snapshot("p1", {"userId": "alice", "aboutMe": "New"})

        self.db.update_portfolio(
            "p1", {"aboutMe": "New", "contact.email": "a@b.c", "`views`": 10}
        )

        (fields,), _ = doc_ref.update.call_args
        self.assertEqual(
            set(fields),
            {
                "aboutMe",
                "`contact.email`",
                FieldPath("`views`").to_api_repr(),
                "updatedAt",
            },
        )
        self.assertNotIn("views", fields)
        self.assertEqual(fields["`contact.email`"], "a@b.c")

    def test_update_portfolio_cannot_reach_protected_fields(self):
        doc_ref = self.portfolios.document.return_value
        doc_ref.get.return_value = _snapshot(
            "p1",
            {"userId": "alice", "templateId": "classic", "heroSection": {"name": "Alice"}},
        )

        portfolios.update_portfolio(
            self.db,
            "alice",
            "p1",
            {
                "`views`": 1000000,
                "`userId`": "mallory",
                "`averageRating`": 5.0,
                "ratingDistribution.5": 999,
                "views": 7,
            },
        )

        (fields,), _ = doc_ref.update.call_args
        for name in ("views", "userId", "averageRating", "ratingDistribution"):
            self.assertNotIn(name, fields)
        self.assertIn("`ratingDistribution.5`", fields)
        self.assertEqual(
            set(fields),
            {
                FieldPath("`views`").to_api_repr(),
                FieldPath("`userId`").to_api_repr(),
                FieldPath("`averageRating`").to_api_repr(),
                "`ratingDistribution.5`",
                "updatedAt",
            },
        )

    def test_update_portfolio_deleted_concurrently(self):
        doc_ref = self.portfolios.document.return_value
        doc_ref.update.side_effect = NotFound("gone")
        self.assertIsNone(self.db.update_portfolio("p1", {"aboutMe": "New"}))


if __name__ == "__main__":
    unittest.main()
