from __future__ import annotations
"""Durable storage for generated media.

``LocalStorage`` keeps objects on the media volume (paths are relative to
MEDIA_VOLUME) and issues HMAC-signed, expiring URLs served by ``/media``.
"""

import asyncio
import hashlib
import hmac
import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from urllib.parse import quote, urlencode

from storyreel.config import get_settings
from storyreel.errors import NotFound, UpstreamServiceError

logger = logging.getLogger(__name__)


class StorageNotFound(NotFound):
    message = "Stored object not found"


class StorageError(UpstreamServiceError):
    message = "Storage error"


@dataclass
class StoredObject:
    path: str
    size: int
    content_type: str


class BaseStorage(ABC):
    """Abstract storage collaborator."""

    @abstractmethod
    async def upload(self, data: bytes, path: str, content_type: str) -> StoredObject:
        ...

    @abstractmethod
    async def download(self, path: str) -> bytes:
        """Return the object's bytes or raise StorageNotFound."""

    @abstractmethod
    async def delete_file(self, path: str) -> bool:
        """Delete an object; returns False if it did not exist."""

    @abstractmethod
    def signed_url(self, path: str, ttl_seconds: int) -> str:
        ...


class LocalStorage(BaseStorage):
    """Media volume on local disk."""

    def __init__(self, root: str, signing_key: str, url_prefix: str = "/media"):
        self.root = os.path.abspath(root)
        self._key = signing_key.encode("utf-8")
        self.url_prefix = url_prefix.rstrip("/")

    def _full_path(self, path: str) -> str:
        full = os.path.abspath(os.path.join(self.root, path))
        if os.path.commonpath([self.root, full]) != self.root:
            raise StorageNotFound()
        return full

    async def upload(self, data: bytes, path: str, content_type: str) -> StoredObject:
        full = self._full_path(path)
        try:
            await asyncio.to_thread(_write_file, full, data)
        except OSError as e:
            logger.error("Storage upload failed for %s: %s", path, e)
            raise StorageError("Failed to store generated media") from e
        return StoredObject(path=path, size=len(data), content_type=content_type)

    async def download(self, path: str) -> bytes:
        full = self._full_path(path)
        try:
            return await asyncio.to_thread(_read_file, full)
        except FileNotFoundError as e:
            raise StorageNotFound() from e
        except OSError as e:
            logger.error("Storage download failed for %s: %s", path, e)
            raise StorageError("Failed to read stored media") from e

    async def delete_file(self, path: str) -> bool:
        full = self._full_path(path)
        try:
            await asyncio.to_thread(os.remove, full)
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error("Storage delete failed for %s: %s", path, e)
            raise StorageError("Failed to delete stored media") from e
        return True

    def signed_url(self, path: str, ttl_seconds: int) -> str:
        expires = int(time.time()) + ttl_seconds
        query = urlencode({"expires": expires, "signature": self._sign(path, expires)})
        return f"{self.url_prefix}/{quote(path)}?{query}"

    def verify(self, path: str, expires: int, signature: str) -> bool:
        """Check a signed URL's signature and expiry."""
        if expires < int(time.time()):
            return False
        return hmac.compare_digest(self._sign(path, expires), signature)

    def resolve(self, path: str) -> str:
        """Absolute path of an existing object, for streaming responses."""
        full = self._full_path(path)
        if not os.path.isfile(full):
            raise StorageNotFound()
        return full

    def _sign(self, path: str, expires: int) -> str:
        payload = f"{path}:{expires}".encode("utf-8")
        return hmac.new(self._key, payload, hashlib.sha256).hexdigest()


def _write_file(full_path: str, data: bytes) -> None:
    os.makedirs(os.path.dirname(full_path), exist_ok=True)
    with open(full_path, "wb") as f:
        f.write(data)


def _read_file(full_path: str) -> bytes:
    with open(full_path, "rb") as f:
        return f.read()


_storage: LocalStorage | None = None


def get_storage() -> LocalStorage:
    """Return the storage singleton rooted at MEDIA_VOLUME."""
    global _storage
    if _storage is None:
        settings = get_settings()
        _storage = LocalStorage(settings.MEDIA_VOLUME, settings.STORAGE_SIGNING_KEY)
    return _storage
