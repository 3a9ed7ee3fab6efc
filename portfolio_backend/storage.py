"""
Image storage abstraction for Cloudinary and in-memory testing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

import cloudinary
import cloudinary.uploader

from shared.types import UploadedImage


class ImageStorageClient(Protocol):
    """Defines the operations the API needs from the image host."""

    def upload_image(self, data: bytes, *, folder: str, public_id: str) -> UploadedImage:
        ...


@dataclass
class InMemoryImageStorageClient:
    """Test double for image uploads."""

    base_url: str = "https://example.test/images"
    stored_objects: dict = field(default_factory=dict)

    def upload_image(self, data: bytes, *, folder: str, public_id: str) -> UploadedImage:
        path = f"{folder}/{public_id}"
        self.stored_objects[path] = bytes(data)
        return UploadedImage(url=f"{self.base_url}/{path}", public_id=path)


@dataclass
class CloudinaryStorageClient:
    """
    Cloudinary-backed image host.
    """

    cloud_name: str
    api_key: str
    api_secret: str

    def __post_init__(self):
        cloudinary.config(
            cloud_name=self.cloud_name,
            api_key=self.api_key,
            api_secret=self.api_secret,
            secure=True,
        )

    def upload_image(self, data: bytes, *, folder: str, public_id: str) -> UploadedImage:
        result = cloudinary.uploader.upload(
            data,
            folder=folder,
            public_id=public_id,
            resource_type="image",
        )
        return UploadedImage(
            url=result["secure_url"],
            public_id=result["public_id"],
            width=result.get("width"),
            height=result.get("height"),
        )
