"""Abstract object store interface for baseline and artifact blobs."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vislens.config.settings import Settings


class ObjectStore(ABC):
    """Abstract base class for object/blob storage."""

    @abstractmethod
    async def put(self, key: str, data: bytes) -> None:
        """Store binary data at the given key, replacing any previous value."""

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """Retrieve binary data by key. Returns None if not found."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete the object at the given key. Missing keys are ignored."""

    @abstractmethod
    async def list_keys(self, prefix: str = "") -> list[str]:
        """List all keys matching the given prefix, sorted."""

    async def exists(self, key: str) -> bool:
        """Whether an object is stored at ``key``."""
        return await self.get(key) is not None


def create_object_store(settings: Settings | None = None) -> ObjectStore:
    """Factory: create the appropriate ObjectStore based on settings."""
    if settings is None:
        from vislens.config.settings import get_settings

        settings = get_settings()

    if settings.use_s3:
        from vislens.storage.s3_store import S3ObjectStore

        return S3ObjectStore(
            bucket=settings.s3_bucket or "",
            endpoint_url=settings.s3_endpoint_url,
            access_key_id=settings.s3_access_key_id,
            secret_access_key=settings.s3_secret_access_key,
            region=settings.s3_region,
        )

    from pathlib import Path

    from vislens.storage.local_store import LocalObjectStore

    return LocalObjectStore(base_dir=Path(settings.artifacts_dir).expanduser())
