from pathlib import Path

import pytest

from vislens.config.settings import Settings
from vislens.exceptions import StorageError
from vislens.storage.local_store import LocalObjectStore
from vislens.storage.memory_store import MemoryObjectStore
from vislens.storage.object_store import create_object_store
from vislens.storage.s3_store import S3ObjectStore


@pytest.mark.unit
class TestLocalObjectStore:
    @pytest.fixture()
    def store(self, tmp_path: Path) -> LocalObjectStore:
        return LocalObjectStore(base_dir=tmp_path)

    @pytest.mark.asyncio
    async def test_put_get(self, store: LocalObjectStore) -> None:
        await store.put("baselines/home.png", b"data")
        assert await store.get("baselines/home.png") == b"data"
        assert await store.exists("baselines/home.png") is True

    @pytest.mark.asyncio
    async def test_get_missing(self, store: LocalObjectStore) -> None:
        assert await store.get("nope.png") is None
        assert await store.exists("nope.png") is False

    @pytest.mark.asyncio
    async def test_put_overwrites_without_temp_leftovers(self, store, tmp_path) -> None:
        await store.put("a/b.png", b"one")
        await store.put("a/b.png", b"two")
        assert await store.get("a/b.png") == b"two"
        assert [p.name for p in (tmp_path / "a").iterdir()] == ["b.png"]

    @pytest.mark.asyncio
    async def test_list_keys_with_prefix(self, store: LocalObjectStore) -> None:
        await store.put("baselines/b.png", b"x")
        await store.put("baselines/a.png", b"x")
        await store.put("current/a.png", b"x")
        assert await store.list_keys("baselines") == ["baselines/a.png", "baselines/b.png"]
        assert len(await store.list_keys()) == 3
        assert await store.list_keys("diffs") == []

    @pytest.mark.asyncio
    async def test_delete(self, store: LocalObjectStore) -> None:
        await store.put("x.png", b"x")
        await store.delete("x.png")
        await store.delete("x.png")
        assert await store.get("x.png") is None

    @pytest.mark.asyncio
    async def test_path_traversal_blocked(self, store: LocalObjectStore) -> None:
        with pytest.raises(StorageError, match="traversal"):
            await store.put("../escape.png", b"x")


@pytest.mark.unit
class TestMemoryObjectStore:
    @pytest.mark.asyncio
    async def test_roundtrip_and_prefix(self) -> None:
        store = MemoryObjectStore()
        await store.put("baselines/a.png", b"1")
        await store.put("current/a.png", b"2")
        assert await store.get("baselines/a.png") == b"1"
        assert await store.list_keys("current/") == ["current/a.png"]
        await store.delete("baselines/a.png")
        assert await store.exists("baselines/a.png") is False


@pytest.mark.unit
class TestCreateObjectStore:
    def test_local_by_default(self, tmp_path: Path) -> None:
        store = create_object_store(Settings(artifacts_dir=str(tmp_path)))
        assert isinstance(store, LocalObjectStore)
        assert store.base_dir == tmp_path.resolve()

    def test_s3_when_enabled(self) -> None:
        store = create_object_store(Settings(use_s3=True, s3_bucket="shots"))
        assert isinstance(store, S3ObjectStore)
