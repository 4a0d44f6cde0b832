"""Local filesystem object store implementation."""

from __future__ import annotations

import asyncio
import os
import pathlib  # noqa: TC003 - used at runtime for Path operations
import tempfile

import structlog

from vislens.exceptions import StorageError
from vislens.storage.object_store import ObjectStore

logger = structlog.get_logger(__name__)


def _atomic_write(path: pathlib.Path, data: bytes) -> None:
    """Write through a temp file and rename so readers never see a partial blob."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp, path)
    except BaseException:
        pathlib.Path(tmp).unlink(missing_ok=True)
        raise


class LocalObjectStore(ObjectStore):
    """Object store backed by local filesystem with path traversal protection."""

    def __init__(self, base_dir: pathlib.Path) -> None:
        self._base = base_dir.resolve()
        self._base.mkdir(parents=True, exist_ok=True)

    @property
    def base_dir(self) -> pathlib.Path:
        return self._base

    def _resolve_path(self, key: str) -> pathlib.Path:
        """Resolve key to an absolute path inside the base directory."""
        path = (self._base / key).resolve()
        if not path.is_relative_to(self._base):
            raise StorageError(f"Path traversal detected: {key}", operation="resolve", target=key)
        return path

    async def put(self, key: str, data: bytes) -> None:
        path = self._resolve_path(key)
        try:
            await asyncio.to_thread(_atomic_write, path, data)
        except OSError as e:
            raise StorageError(
                f"Failed to write {key}: {e}", operation="put", target=key, cause=e
            ) from e
        logger.debug("local_store_put", key=key, size=len(data))

    async def get(self, key: str) -> bytes | None:
        path = self._resolve_path(key)
        if not path.is_file():
            return None
        return await asyncio.to_thread(path.read_bytes)

    async def delete(self, key: str) -> None:
        path = self._resolve_path(key)
        if path.is_file():
            await asyncio.to_thread(path.unlink)
            logger.debug("local_store_delete", key=key)

    async def list_keys(self, prefix: str = "") -> list[str]:
        base = self._resolve_path(prefix) if prefix else self._base
        if not base.exists():
            return []

        def _list() -> list[str]:
            return sorted(
                f.relative_to(self._base).as_posix()
                for f in base.rglob("*")
                if f.is_file() and not f.name.endswith(".tmp")
            )

        return await asyncio.to_thread(_list)

    async def exists(self, key: str) -> bool:
        return self._resolve_path(key).is_file()
