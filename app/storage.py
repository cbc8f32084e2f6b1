"""Physical storage of member photos.

Photos go to Cloudinary when ``CLOUDINARY_URL`` is configured and to a
local directory otherwise. Storage is best-effort: a failed upload may
leave an orphaned asset behind and a missing asset on delete is only
logged.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader

from .core import get_settings
from .errors import PersistenceFailure

logger = logging.getLogger(__name__)
settings = get_settings()

if settings.CLOUDINARY_URL:
    cloudinary.config(cloudinary_url=settings.CLOUDINARY_URL)


@dataclass
class StoredPhoto:
    """Location of a stored asset."""

    url: str
    public_id: str


class PhotoStorage(ABC):
    """Interface of the photo storage collaborator."""

    @abstractmethod
    def save(self, content: bytes, filename: str) -> StoredPhoto:
        """Store the payload and return where it lives."""

    @abstractmethod
    def delete(self, public_id: str) -> None:
        """Remove a stored asset; a missing asset is not an error."""


class LocalPhotoStorage(PhotoStorage):
    """Store photos as files under a directory served at ``base_url``."""

    def __init__(self, root: str | Path, base_url: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def save(self, content: bytes, filename: str) -> StoredPhoto:
        """
        Write the payload to a new file.

        A partially written file is removed before the error propagates.

        Args:
            content (bytes): Image payload.
            filename (str): Original file name, used for its extension.

        Returns:
            StoredPhoto: URL and storage reference of the new file.
        """
        self.root.mkdir(parents=True, exist_ok=True)
        public_id = f"{uuid.uuid4().hex}{Path(filename).suffix.lower()}"
        target = self.root / public_id
        try:
            with open(target, "wb") as fh:
                fh.write(content)
        except OSError:
            logger.warning("Failed to write photo %s, removing partial file", public_id)
            target.unlink(missing_ok=True)
            raise
        return StoredPhoto(url=f"{self.base_url}/{public_id}", public_id=public_id)

    def delete(self, public_id: str) -> None:
        try:
            (self.root / public_id).unlink()
        except FileNotFoundError:
            logger.warning("Photo file %s already missing", public_id)


class CloudinaryPhotoStorage(PhotoStorage):
    """Store photos in Cloudinary, cropped to a square around the face."""

    def __init__(self, folder: str = "dating_photos"):
        self.folder = folder

    def save(self, content: bytes, filename: str) -> StoredPhoto:
        upload_result = cloudinary.uploader.upload(
            content,
            folder=self.folder,
            transformation=[
                {"height": 500, "width": 500, "crop": "fill", "gravity": "face"}
            ],
        )
        url = upload_result.get("secure_url")
        public_id = upload_result.get("public_id")
        if not url or not public_id:
            raise PersistenceFailure("Failed to upload photo")
        return StoredPhoto(url=url, public_id=public_id)

    def delete(self, public_id: str) -> None:
        try:
            result = cloudinary.uploader.destroy(public_id)
        except cloudinary.exceptions.Error as exc:
            logger.warning("Cloudinary could not delete %s: %s", public_id, exc)
            return
        if result.get("result") != "ok":
            logger.warning("Cloudinary could not delete %s: %s", public_id, result)


def get_photo_storage() -> PhotoStorage:
    """
    Return the configured photo storage.

    This function is used as a FastAPI dependency.
    """
    if settings.CLOUDINARY_URL:
        return CloudinaryPhotoStorage()
    return LocalPhotoStorage(settings.MEDIA_ROOT, settings.MEDIA_URL)
