"""Namespaced storage for current captures and diff artifacts.

Keys follow ``<namespace>/<name>.png`` with one namespace per
:class:`~vislens.types.ArtifactRole`. Names are expected to be validated
before they reach this layer.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from vislens.constants import BASELINE_PREFIX, CURRENT_PREFIX, DIFF_PREFIX, IMAGE_SUFFIX
from vislens.models.buffer import PixelBuffer
from vislens.types import ArtifactRole

if TYPE_CHECKING:
    from vislens.storage.object_store import ObjectStore

logger = structlog.get_logger(__name__)

_PREFIXES: dict[ArtifactRole, str] = {
    ArtifactRole.BASELINE: BASELINE_PREFIX,
    ArtifactRole.CURRENT: CURRENT_PREFIX,
    ArtifactRole.DIFF: DIFF_PREFIX,
}


def namespace(role: ArtifactRole) -> str:
    return f"{_PREFIXES[role]}/"


def artifact_key(role: ArtifactRole, name: str, suffix: str = IMAGE_SUFFIX) -> str:
    """Build the storage key for ``name`` within the role's namespace."""
    return f"{_PREFIXES[role]}/{name}{suffix}"


def names_from_keys(keys: list[str], role: ArtifactRole) -> list[str]:
    """Strip namespace and image suffix, ignoring sidecars and nested keys."""
    prefix = namespace(role)
    names = []
    for key in keys:
        if not key.startswith(prefix) or not key.endswith(IMAGE_SUFFIX):
            continue
        name = key[len(prefix) : -len(IMAGE_SUFFIX)]
        if name and "/" not in name:
            names.append(name)
    return sorted(names)


class ArtifactStore:
    """Stores current captures and diff visualizations as PNG blobs."""

    def __init__(self, store: ObjectStore) -> None:
        self._store = store

    async def save(self, role: ArtifactRole, name: str, buffer: PixelBuffer) -> str:
        """Encode and store a buffer. Returns the key used."""
        key = artifact_key(role, name)
        data = await asyncio.to_thread(buffer.to_png)
        await self._store.put(key, data)
        logger.debug("artifact_saved", role=str(role), key=key, size=len(data))
        return key

    async def load(self, role: ArtifactRole, name: str) -> PixelBuffer | None:
        data = await self._store.get(artifact_key(role, name))
        if data is None:
            return None
        return await asyncio.to_thread(PixelBuffer.from_encoded, data)

    async def save_current(self, name: str, buffer: PixelBuffer) -> str:
        return await self.save(ArtifactRole.CURRENT, name, buffer)

    async def save_diff(self, name: str, buffer: PixelBuffer) -> str:
        return await self.save(ArtifactRole.DIFF, name, buffer)

    async def delete(self, role: ArtifactRole, name: str) -> bool:
        """Delete an artifact. Returns False when nothing was stored."""
        key = artifact_key(role, name)
        if not await self._store.exists(key):
            return False
        await self._store.delete(key)
        logger.info("artifact_deleted", role=str(role), key=key)
        return True

    async def list_names(self, role: ArtifactRole) -> list[str]:
        keys = await self._store.list_keys(namespace(role))
        return names_from_keys(keys, role)
