import asyncio

import pytest

from vislens.exceptions import BaselineWriteConflictError, StorageError
from vislens.storage.baselines import BaselineStore
from vislens.storage.memory_store import MemoryObjectStore


class BlockingStore(MemoryObjectStore):
    """Memory store whose puts for keys containing ``block_on`` wait for a release."""

    def __init__(self, block_on: str) -> None:
        super().__init__()
        self.block_on = block_on
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def put(self, key: str, data: bytes) -> None:
        if self.block_on in key:
            self.entered.set()
            await self.release.wait()
        await super().put(key, data)


@pytest.mark.unit
class TestBaselineStore:
    @pytest.fixture()
    def store(self, memory_store: MemoryObjectStore) -> BaselineStore:
        return BaselineStore(memory_store)

    @pytest.mark.asyncio
    async def test_get_or_create_creates_on_first_call(self, store, make_buffer) -> None:
        current = make_buffer(4, 4)
        lookup = await store.get_or_create("home", current)
        assert lookup.created is True
        assert lookup.buffer == current
        assert await store.get("home") == current

    @pytest.mark.asyncio
    async def test_get_or_create_returns_existing(self, store, make_buffer) -> None:
        first = make_buffer(4, 4)
        second = make_buffer(4, 4, (0, 0, 0, 255))
        await store.get_or_create("home", first)
        lookup = await store.get_or_create("home", second)
        assert lookup.created is False
        assert lookup.buffer == first

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, store) -> None:
        assert await store.get("missing") is None
        assert await store.info("missing") is None

    @pytest.mark.asyncio
    async def test_update_replaces_and_keeps_created_at(self, store, make_buffer) -> None:
        await store.get_or_create("home", make_buffer(2, 2))
        created = await store.info("home")
        replacement = make_buffer(3, 3, (0, 0, 0, 255))
        record = await store.update("home", replacement)
        assert await store.get("home") == replacement
        assert record.created_at == created.created_at
        assert record.updated_at >= created.updated_at
        assert (record.width, record.height) == (3, 3)
        assert record.sha256 == replacement.sha256()

    @pytest.mark.asyncio
    async def test_update_creates_when_missing(self, store, make_buffer) -> None:
        record = await store.update("fresh", make_buffer(2, 2))
        assert record.created_at == record.updated_at
        assert await store.get("fresh") is not None

    @pytest.mark.asyncio
    async def test_list_names(self, store, make_buffer) -> None:
        await store.update("a", make_buffer(1, 1))
        await store.update("b", make_buffer(1, 1))
        assert await store.list_names() == {"a", "b"}

    @pytest.mark.asyncio
    async def test_delete(self, store, memory_store, make_buffer) -> None:
        await store.update("a", make_buffer(1, 1))
        assert await store.delete("a") is True
        assert await store.get("a") is None
        assert await memory_store.list_keys() == []
        assert await store.delete("a") is False

    @pytest.mark.asyncio
    async def test_concurrent_get_or_create_creates_once(self, store, make_buffer) -> None:
        buffers = [make_buffer(2, 2, (i, i, i, 255)) for i in range(5)]
        lookups = await asyncio.gather(*(store.get_or_create("race", b) for b in buffers))
        assert sum(lookup.created for lookup in lookups) == 1
        winner = next(lookup.buffer for lookup in lookups if lookup.created)
        assert all(lookup.buffer == winner for lookup in lookups)
        assert await store.get("race") == winner

    @pytest.mark.asyncio
    async def test_second_writer_fails_fast_with_zero_timeout(self, make_buffer) -> None:
        backend = BlockingStore(block_on="home")
        store = BaselineStore(backend, lock_timeout=0)
        first = asyncio.create_task(store.update("home", make_buffer(2, 2)))
        await backend.entered.wait()
        with pytest.raises(BaselineWriteConflictError) as exc_info:
            await store.update("home", make_buffer(2, 2))
        assert exc_info.value.target == "home"
        backend.release.set()
        await first

    @pytest.mark.asyncio
    async def test_second_writer_times_out(self, make_buffer) -> None:
        backend = BlockingStore(block_on="home")
        store = BaselineStore(backend, lock_timeout=0.05)
        first = asyncio.create_task(store.update("home", make_buffer(2, 2)))
        await backend.entered.wait()
        with pytest.raises(BaselineWriteConflictError, match="Timed out"):
            await store.get_or_create("home", make_buffer(2, 2))
        backend.release.set()
        await first

    @pytest.mark.asyncio
    async def test_second_writer_waits_then_succeeds(self, make_buffer) -> None:
        backend = BlockingStore(block_on="home")
        store = BaselineStore(backend, lock_timeout=None)
        first = asyncio.create_task(store.update("home", make_buffer(2, 2)))
        await backend.entered.wait()
        later = make_buffer(2, 2, (0, 0, 0, 255))
        second = asyncio.create_task(store.update("home", later))
        await asyncio.sleep(0.01)
        assert not second.done()
        backend.release.set()
        await asyncio.gather(first, second)
        assert await store.get("home") == later

    @pytest.mark.asyncio
    async def test_different_names_do_not_block(self, make_buffer) -> None:
        backend = BlockingStore(block_on="slow")
        store = BaselineStore(backend, lock_timeout=0)
        first = asyncio.create_task(store.update("slow", make_buffer(2, 2)))
        await backend.entered.wait()
        await store.update("fast", make_buffer(2, 2))
        assert await store.get("fast") is not None
        backend.release.set()
        await first


class FailingMetaStore(MemoryObjectStore):
    """Memory store that rejects metadata sidecar writes while ``fail_meta`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_meta = False

    async def put(self, key: str, data: bytes) -> None:
        if self.fail_meta and key.endswith(".json"):
            raise StorageError("disk full", operation="put", target=key)
        await super().put(key, data)


@pytest.mark.unit
class TestBaselineLocks:
    @pytest.mark.asyncio
    async def test_locks_released_after_writes(self, memory_store, make_buffer) -> None:
        store = BaselineStore(memory_store)
        for i in range(50):
            await store.get_or_create(f"page_{i}", make_buffer(1, 1))
            await store.delete(f"page_{i}")
        assert store.active_locks == 0

    @pytest.mark.asyncio
    async def test_lock_kept_while_writer_waits(self, make_buffer) -> None:
        backend = BlockingStore(block_on="home")
        store = BaselineStore(backend, lock_timeout=None)
        first = asyncio.create_task(store.update("home", make_buffer(2, 2)))
        await backend.entered.wait()
        second = asyncio.create_task(store.update("home", make_buffer(2, 2)))
        await asyncio.sleep(0.01)
        assert store.active_locks == 1
        backend.release.set()
        await asyncio.gather(first, second)
        assert store.active_locks == 0

    @pytest.mark.asyncio
    async def test_lock_released_after_conflict(self, make_buffer) -> None:
        backend = BlockingStore(block_on="home")
        store = BaselineStore(backend, lock_timeout=0.05)
        first = asyncio.create_task(store.update("home", make_buffer(2, 2)))
        await backend.entered.wait()
        with pytest.raises(BaselineWriteConflictError):
            await store.update("home", make_buffer(2, 2))
        backend.release.set()
        await first
        assert store.active_locks == 0


@pytest.mark.unit
class TestBaselineWriteRollback:
    @pytest.mark.asyncio
    async def test_failed_update_restores_previous_image(self, make_buffer) -> None:
        backend = FailingMetaStore()
        store = BaselineStore(backend)
        original = make_buffer(2, 2)
        await store.update("home", original)
        before = await store.info("home")

        backend.fail_meta = True
        with pytest.raises(StorageError, match="disk full"):
            await store.update("home", make_buffer(3, 3, (0, 0, 0, 255)))

        assert await store.get("home") == original
        after = await store.info("home")
        assert after == before
        assert after.sha256 == original.sha256()

    @pytest.mark.asyncio
    async def test_failed_create_leaves_no_image(self, make_buffer) -> None:
        backend = FailingMetaStore()
        backend.fail_meta = True
        store = BaselineStore(backend)
        with pytest.raises(StorageError):
            await store.get_or_create("home", make_buffer(2, 2))
        assert await store.get("home") is None
        assert await backend.list_keys() == []
        assert store.active_locks == 0
