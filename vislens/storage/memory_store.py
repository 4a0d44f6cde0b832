"""In-process object store, used for tests and ephemeral runs."""

from __future__ import annotations

from vislens.storage.object_store import ObjectStore


class MemoryObjectStore(ObjectStore):
    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}

    async def put(self, key: str, data: bytes) -> None:
        self._blobs[key] = bytes(data)

    async def get(self, key: str) -> bytes | None:
        return self._blobs.get(key)

    async def delete(self, key: str) -> None:
        self._blobs.pop(key, None)

    async def list_keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._blobs if k.startswith(prefix))

    async def exists(self, key: str) -> bool:
        return key in self._blobs
