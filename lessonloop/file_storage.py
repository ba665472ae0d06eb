"""
File storage for class materials.

The resource store only keeps metadata; the bytes go to a ``FileStorage``
backend that returns a URL for them. ``LocalFileStorage`` writes under
``paths.upload_dir`` and is served by the API at ``/uploads/resources``.
"""

import logging
import os
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass

logger = logging.getLogger(__name__)

RESOURCE_URL_PREFIX = "/uploads/resources"


@dataclass(frozen=True)
class StoredFile:
    url: str
    size: int


class FileStorage(ABC):
    """Abstract base class for blob storage backends."""

    @abstractmethod
    def save(self, file_obj, filename, content_type=None):
        """Store an uploaded file.

        Args:
            file_obj: Object with a ``save(path)`` method (werkzeug FileStorage)
                or a readable binary stream.
            filename: Client-supplied name; only its extension is kept.
            content_type: MIME type reported by the client.

        Returns:
            StoredFile with the public URL and stored size in bytes.
        """
        pass


class LocalFileStorage(FileStorage):
    """Stores files on local disk under UUID names."""

    def __init__(self, upload_dir, url_prefix=RESOURCE_URL_PREFIX):
        self.upload_dir = os.path.abspath(upload_dir)
        self.url_prefix = url_prefix.rstrip("/")

    def path_for(self, stored_name):
        return os.path.join(self.upload_dir, stored_name)

    def save(self, file_obj, filename, content_type=None):
        os.makedirs(self.upload_dir, exist_ok=True)
        ext = os.path.splitext(filename or "")[1].lower()
        stored_name = f"{uuid.uuid4().hex}{ext}"
        path = self.path_for(stored_name)
        if hasattr(file_obj, "save"):
            file_obj.save(path)
        else:
            with open(path, "wb") as f:
                f.write(file_obj.read())
        size = os.path.getsize(path)
        logger.info("Stored %s (%d bytes, %s) as %s", filename, size, content_type, stored_name)
        return StoredFile(url=f"{self.url_prefix}/{stored_name}", size=size)


def get_file_storage(config):
    """Build the storage backend from config (``paths.upload_dir``)."""
    upload_dir = config.get("paths", {}).get("upload_dir", "uploads/resources")
    return LocalFileStorage(upload_dir)
