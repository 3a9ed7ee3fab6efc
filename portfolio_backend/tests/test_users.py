import unittest
from unittest.mock import MagicMock

from portfolio_backend import users
from portfolio_backend.auth import AuthUser, InMemoryAuthClient
from portfolio_backend.db import InMemoryDbClient
from portfolio_backend.errors import NotFoundError
from shared.types import UserProfile


class UserProfileTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.auth = InMemoryAuthClient()
        self.alice = AuthUser(uid="alice", email="alice@example.com", display_name="Alice")
        self.auth.add_user(self.alice)

    def test_profile_created_lazily(self):
        self.assertIsNone(self.db.get_user("alice"))
        profile = users.get_profile(self.db, self.auth, self.alice)
        self.assertEqual(profile.display_name, "Alice")
        self.assertIsNotNone(profile.created_at)
        self.assertIsNotNone(self.db.get_user("alice"))

    def test_profile_defaults_to_anonymous_name(self):
        nameless = AuthUser(uid="nameless", email="n@example.com")
        self.auth.add_user(nameless)
        profile = users.get_profile(self.db, self.auth, nameless)
        self.assertEqual(profile.display_name, "Anonymous User")

    def test_get_profile_propagates_unknown_identity(self):
        with self.assertRaises(NotFoundError):
            users.get_profile(self.db, self.auth, AuthUser(uid="ghost"))

    def test_update_profile_merges(self):
        users.get_profile(self.db, self.auth, self.alice)
        profile = users.update_profile(
            self.db, self.auth, self.alice, display_name="Alice L.", photo_url=None
        )
        self.assertEqual(profile.display_name, "Alice L.")
        self.assertEqual(profile.email, "alice@example.com")
        self.assertIsNotNone(profile.updated_at)
        self.assertEqual(self.auth.get_user("alice").display_name, "Alice L.")

    def test_ensure_profile_falls_back_when_provider_fails(self):
        auth = MagicMock()
        auth.get_user.side_effect = RuntimeError("provider down")
        profile = users.ensure_profile(
            self.db, auth, AuthUser(uid="zed", email="z@example.com"), "Zed"
        )
        self.assertEqual(profile.display_name, "Zed")
        self.assertEqual(profile.email, "z@example.com")


class ResolveUserInfoTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.auth = InMemoryAuthClient()

    def test_prefers_stored_profile(self):
        self.db.save_user(UserProfile(uid="u1", email="u1@example.com", display_name="Stored"))
        self.auth.add_user(AuthUser(uid="u1", display_name="From auth"))
        info = users.resolve_user_info(self.db, self.auth, "u1")
        self.assertEqual(info.display_name, "Stored")

    def test_falls_back_to_identity_provider(self):
        self.auth.add_user(AuthUser(uid="u2", email="u2@example.com", photo_url="http://p"))
        info = users.resolve_user_info(self.db, self.auth, "u2")
        self.assertEqual(info.display_name, "Anonymous User")
        self.assertEqual(info.photo_url, "http://p")

    def test_unknown_user_gets_placeholder(self):
        info = users.resolve_user_info(self.db, self.auth, "ghost")
        self.assertEqual(info.display_name, "Unknown User")
        self.assertEqual(info.email, "Unknown")
        rater = users.resolve_user_info(
            self.db, self.auth, "ghost", placeholder_name="Anonymous User"
        )
        self.assertEqual(rater.display_name, "Anonymous User")

    def test_resolve_many_deduplicates(self):
        db = MagicMock(wraps=self.db)
        result = users.resolve_many(db, self.auth, ["a", "a", "b"])
        self.assertEqual(set(result), {"a", "b"})
        self.assertEqual(db.get_user.call_count, 2)


if __name__ == "__main__":
    unittest.main()
