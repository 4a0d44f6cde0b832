"""Baseline persistence with per-name write serialization."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, NamedTuple

import structlog
from pydantic import ValidationError

from vislens.constants import META_SUFFIX
from vislens.exceptions import BaselineWriteConflictError, StorageError
from vislens.models.buffer import PixelBuffer
from vislens.models.domain import BaselineRecord
from vislens.storage.artifacts import artifact_key, names_from_keys, namespace
from vislens.types import ArtifactRole

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from vislens.storage.object_store import ObjectStore

logger = structlog.get_logger(__name__)


class BaselineLookup(NamedTuple):
    buffer: PixelBuffer
    created: bool


def _image_key(name: str) -> str:
    return artifact_key(ArtifactRole.BASELINE, name)


def _meta_key(name: str) -> str:
    return artifact_key(ArtifactRole.BASELINE, name, META_SUFFIX)


@dataclass
class _NameLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class BaselineStore:
    """Owns reference images, keyed by test name.

    Writes for the same name are serialized through an ``asyncio.Lock`` per
    name; a second writer waits up to ``lock_timeout`` seconds and then fails
    with :class:`BaselineWriteConflictError`. ``lock_timeout=0`` fails fast,
    ``None`` waits indefinitely. Reads take no lock: backends replace blobs
    atomically, so a reader sees either the old or the new image. A lock is
    dropped once no writer holds or waits on it.

    A write stores the image and then its metadata sidecar. If the sidecar
    cannot be written the previous image is put back (or the new one removed)
    before the error propagates, so image and metadata never disagree.
    """

    def __init__(self, store: ObjectStore, lock_timeout: float | None = 10.0) -> None:
        self._store = store
        self._lock_timeout = lock_timeout
        self._locks: dict[str, _NameLock] = {}

    @property
    def active_locks(self) -> int:
        """Names that currently have a writer holding or waiting on their lock."""
        return len(self._locks)

    @asynccontextmanager
    async def _write_lock(self, name: str, operation: str) -> AsyncIterator[None]:
        entry = self._locks.get(name)
        if entry is None:
            entry = self._locks[name] = _NameLock()
        if entry.lock.locked() and self._lock_timeout == 0:
            raise BaselineWriteConflictError(
                f"Baseline '{name}' is being written", operation=operation, target=name
            )
        entry.users += 1
        try:
            try:
                async with asyncio.timeout(self._lock_timeout):
                    await entry.lock.acquire()
            except TimeoutError as e:
                raise BaselineWriteConflictError(
                    f"Timed out after {self._lock_timeout}s waiting to write baseline '{name}'",
                    operation=operation,
                    target=name,
                    cause=e,
                ) from e
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            entry.users -= 1
            # Only drop the lock once nobody holds or waits on it
            if entry.users == 0 and self._locks.get(name) is entry:
                del self._locks[name]

    async def _write(
        self,
        name: str,
        buffer: PixelBuffer,
        created_at: datetime | None,
        previous_png: bytes | None,
    ) -> BaselineRecord:
        now = datetime.now(UTC)
        record = BaselineRecord(
            name=name,
            width=buffer.width,
            height=buffer.height,
            sha256=buffer.sha256(),
            created_at=created_at or now,
            updated_at=now,
        )
        data = await asyncio.to_thread(buffer.to_png)
        image_key = _image_key(name)
        await self._store.put(image_key, data)
        try:
            await self._store.put(_meta_key(name), record.model_dump_json().encode())
        except Exception:
            # Image and sidecar change together or not at all
            logger.warning("baseline_write_rolled_back", name=name)
            if previous_png is None:
                await self._store.delete(image_key)
            else:
                await self._store.put(image_key, previous_png)
            raise
        return record

    async def _read(self, name: str) -> PixelBuffer | None:
        data = await self._store.get(_image_key(name))
        if data is None:
            return None
        return await asyncio.to_thread(PixelBuffer.from_encoded, data)

    async def get_or_create(self, name: str, current: PixelBuffer) -> BaselineLookup:
        """Return the stored baseline, or persist ``current`` as the new one."""
        async with self._write_lock(name, "get_or_create"):
            existing = await self._read(name)
            if existing is not None:
                return BaselineLookup(existing, created=False)
            await self._write(name, current, created_at=None, previous_png=None)
        logger.info("baseline_created", name=name, width=current.width, height=current.height)
        return BaselineLookup(current, created=True)

    async def update(self, name: str, buffer: PixelBuffer) -> BaselineRecord:
        """Replace (or create) the baseline for ``name``."""
        async with self._write_lock(name, "update"):
            previous = await self.info(name)
            previous_png = await self._store.get(_image_key(name))
            record = await self._write(
                name,
                buffer,
                created_at=previous.created_at if previous else None,
                previous_png=previous_png,
            )
        logger.info("baseline_updated", name=name, width=buffer.width, height=buffer.height)
        return record

    async def get(self, name: str) -> PixelBuffer | None:
        return await self._read(name)

    async def info(self, name: str) -> BaselineRecord | None:
        """Metadata for a baseline, or None when it has no sidecar."""
        data = await self._store.get(_meta_key(name))
        if data is None:
            return None
        try:
            return BaselineRecord.model_validate_json(data)
        except ValidationError as e:
            raise StorageError(
                f"Corrupt metadata for baseline '{name}'", operation="info", target=name, cause=e
            ) from e

    async def list_names(self) -> set[str]:
        keys = await self._store.list_keys(namespace(ArtifactRole.BASELINE))
        return set(names_from_keys(keys, ArtifactRole.BASELINE))

    async def delete(self, name: str) -> bool:
        """Remove a baseline and its metadata. Returns False if none existed."""
        async with self._write_lock(name, "delete"):
            existed = await self._store.exists(_image_key(name))
            await self._store.delete(_image_key(name))
            await self._store.delete(_meta_key(name))
        if existed:
            logger.info("baseline_deleted", name=name)
        return existed
