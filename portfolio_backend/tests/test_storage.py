import unittest
from unittest.mock import patch

from portfolio_backend.storage import CloudinaryStorageClient, InMemoryImageStorageClient


class ImageStorageTests(unittest.TestCase):
    def test_in_memory_upload(self):
        storage = InMemoryImageStorageClient()
        result = storage.upload_image(b"png", folder="portfolio-app/users/u1", public_id="1-2")
        self.assertEqual(result.public_id, "portfolio-app/users/u1/1-2")
        self.assertTrue(result.url.endswith("portfolio-app/users/u1/1-2"))
        self.assertEqual(storage.stored_objects[result.public_id], b"png")

    @patch("portfolio_backend.storage.cloudinary.uploader.upload")
    @patch("portfolio_backend.storage.cloudinary.config")
    def test_cloudinary_upload(self, mock_config, mock_upload):
        mock_upload.return_value = {
            "secure_url": "https://res.cloudinary.com/demo/image/upload/x.png",
            "public_id": "portfolio-app/users/u1/1-2",
            "width": 640,
            "height": 480,
        }
        storage = CloudinaryStorageClient(cloud_name="demo", api_key="k", api_secret="s")
        mock_config.assert_called_once()

        result = storage.upload_image(b"png", folder="portfolio-app/users/u1", public_id="1-2")
        mock_upload.assert_called_once_with(
            b"png",
            folder="portfolio-app/users/u1",
            public_id="1-2",
            resource_type="image",
        )
        self.assertEqual(result.width, 640)
        self.assertEqual(result.url, "https://res.cloudinary.com/demo/image/upload/x.png")


if __name__ == "__main__":
    unittest.main()
