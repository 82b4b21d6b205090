"""Storage adapter interface and the artifact store built on it."""
from abc import ABC, abstractmethod
import asyncio
import logging
import os
import re
import time
from pathlib import Path
from typing import Optional

from panorama_api.settings import settings

logger = logging.getLogger(__name__)

ORIGINALS = "originals"
THUMBNAILS = "thumbnails"
STAGING = ".staging"


class StorageAdapter(ABC):
    """Abstract storage adapter interface (S3-style keys)."""

    @abstractmethod
    async def save(self, key: str, data: bytes) -> str:
        """
        Save data to storage and return its key.

        Args:
            key: Storage key/path (e.g., "originals/1700000000000_pano.jpg")
            data: Binary data to save
        """
        pass

    @abstractmethod
    async def get(self, key: str) -> bytes:
        """
        Retrieve data from storage.

        Raises:
            FileNotFoundError: If the key does not exist
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """
        Delete data from storage.

        Returns:
            True if deleted, False if not found
        """
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check if key exists in storage."""
        pass

    @abstractmethod
    async def move(self, src_key: str, dst_key: str) -> str:
        """Move data between keys, replacing the destination. Returns dst_key."""
        pass

    @abstractmethod
    async def ensure_prefix(self, prefix: str) -> None:
        """Make sure keys under prefix can be written (idempotent)."""
        pass


class LocalStorageAdapter(StorageAdapter):
    """Local filesystem storage adapter."""

    def __init__(self, base_path: str = None):
        self.base_path = Path(base_path or settings.UPLOADS_DIR)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_full_path(self, key: str) -> Path:
        """Get full filesystem path for a key."""
        # Sanitize key to prevent directory traversal
        key = key.lstrip("/")
        full_path = (self.base_path / key).resolve()
        if self.base_path.resolve() not in full_path.parents:
            raise ValueError(f"Key escapes storage root: {key}")
        return full_path

    async def save(self, key: str, data: bytes) -> str:
        full_path = self._get_full_path(key)
        full_path.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(full_path.write_bytes, data)
        return key

    async def get(self, key: str) -> bytes:
        full_path = self._get_full_path(key)
        if not full_path.exists():
            raise FileNotFoundError(f"Key not found: {key}")
        return await asyncio.to_thread(full_path.read_bytes)

    async def delete(self, key: str) -> bool:
        full_path = self._get_full_path(key)
        try:
            full_path.unlink()
        except FileNotFoundError:
            return False
        return True

    async def exists(self, key: str) -> bool:
        return self._get_full_path(key).exists()

    async def move(self, src_key: str, dst_key: str) -> str:
        dst_path = self._get_full_path(dst_key)
        dst_path.parent.mkdir(parents=True, exist_ok=True)
        os.replace(self._get_full_path(src_key), dst_path)
        return dst_key

    async def ensure_prefix(self, prefix: str) -> None:
        self._get_full_path(prefix).mkdir(parents=True, exist_ok=True)


def make_stored_filename(original_name: Optional[str], timestamp_ms: Optional[int] = None) -> str:
    """Build "<epoch-ms>_<name>" with whitespace runs collapsed to underscores."""
    if timestamp_ms is None:
        timestamp_ms = time.time_ns() // 1_000_000
    # Drop any client-supplied directory parts
    name = os.path.basename((original_name or "image").replace("\\", "/")) or "image"
    safe_name = re.sub(r"\s+", "_", name)
    return f"{timestamp_ms}_{safe_name}"


class ArtifactStore:
    """
    Original and thumbnail artifacts for image records.

    Artifacts are first written under the staging prefix and only moved to
    their public location once the owning record exists, so a failed record
    insert never leaves files behind.
    """

    def __init__(self, adapter: StorageAdapter, url_prefix: str = None):
        self.adapter = adapter
        self.url_prefix = (url_prefix or settings.UPLOADS_URL_PREFIX).rstrip("/")

    @staticmethod
    def _key(kind: str, filename: str, staged: bool = False) -> str:
        return f"{STAGING}/{kind}/{filename}" if staged else f"{kind}/{filename}"

    def original_url(self, filename: str) -> str:
        return f"{self.url_prefix}/{ORIGINALS}/{filename}"

    def thumbnail_url(self, filename: str) -> str:
        return f"{self.url_prefix}/{THUMBNAILS}/{filename}"

    async def ensure_directories(self) -> None:
        await asyncio.gather(
            self.adapter.ensure_prefix(ORIGINALS),
            self.adapter.ensure_prefix(THUMBNAILS),
            self.adapter.ensure_prefix(f"{STAGING}/{ORIGINALS}"),
            self.adapter.ensure_prefix(f"{STAGING}/{THUMBNAILS}"),
        )

    async def make_filename(self, original_name: Optional[str]) -> str:
        """Unique stored filename; bumps the timestamp while the name is taken."""
        timestamp_ms = time.time_ns() // 1_000_000
        while True:
            filename = make_stored_filename(original_name, timestamp_ms)
            taken = await asyncio.gather(
                self.adapter.exists(self._key(ORIGINALS, filename)),
                self.adapter.exists(self._key(ORIGINALS, filename, staged=True)),
            )
            if not any(taken):
                return filename
            timestamp_ms += 1

    async def stage(self, filename: str, original: bytes, thumbnail: bytes) -> None:
        """Write both artifacts to staging; the two writes run concurrently."""
        await asyncio.gather(
            self.adapter.save(self._key(ORIGINALS, filename, staged=True), original),
            self.adapter.save(self._key(THUMBNAILS, filename, staged=True), thumbnail),
        )

    async def commit(self, filename: str) -> None:
        """Move staged artifacts to their public locations."""
        await self.adapter.move(self._key(ORIGINALS, filename, staged=True), self._key(ORIGINALS, filename))
        await self.adapter.move(self._key(THUMBNAILS, filename, staged=True), self._key(THUMBNAILS, filename))

    async def discard(self, filename: str) -> None:
        """Drop staged artifacts of a failed upload."""
        for kind in (ORIGINALS, THUMBNAILS):
            try:
                await self.adapter.delete(self._key(kind, filename, staged=True))
            except OSError:
                logger.warning("Could not discard staged %s artifact %s", kind, filename, exc_info=True)

    async def remove(self, filename: str) -> None:
        """Best-effort delete of both public artifacts; missing files are fine."""
        for kind in (ORIGINALS, THUMBNAILS):
            try:
                await self.adapter.delete(self._key(kind, filename))
            except OSError:
                logger.warning("Could not delete %s artifact %s", kind, filename, exc_info=True)

    async def read_original(self, filename: str) -> bytes:
        return await self.adapter.get(self._key(ORIGINALS, filename))


def get_storage_adapter() -> StorageAdapter:
    """Factory function to get the storage adapter based on settings."""
    return LocalStorageAdapter(settings.UPLOADS_DIR)


def get_artifact_store() -> ArtifactStore:
    """Dependency for FastAPI to get the artifact store."""
    return ArtifactStore(get_storage_adapter())
