import unittest

from shared.json_utils import convert_keys, snake_to_camel


class ConvertKeysTests(unittest.TestCase):
    def test_snake_to_camel(self):
        self.assertEqual(snake_to_camel("total_ratings"), "totalRatings")
        self.assertEqual(snake_to_camel("views"), "views")

    def test_nested_keys_are_renamed(self):
        data = {
            "user_stats": {"has_portfolio": True, "created_at": None},
            "rating_distribution": {5: 2, 4: 1},
            "files": [{"public_id": "x"}],
        }
        self.assertEqual(
            convert_keys(data),
            {
                "userStats": {"hasPortfolio": True, "createdAt": None},
                "ratingDistribution": {5: 2, 4: 1},
                "files": [{"publicId": "x"}],
            },
        )


if __name__ == "__main__":
    unittest.main()
