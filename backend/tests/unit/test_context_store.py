"""Tests for the context stores, status merging and validated writes."""

import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from om_intel.core.config import StoreConfig
from om_intel.core.exceptions import ConfigurationError, StorageError
from om_intel.documents.models import Chunk, DocumentContext, DocumentMeta, StatusRecord
from om_intel.store import ContextStoreFactory, ContextWriter, InMemoryContextStore, RedisContextStore
from om_intel.store.keys import context_key, deal_points_key, status_key
from tests.conftest import FlakyStore


def make_context(document_id="mem-1", owner_id="owner-a", count=3) -> DocumentContext:
    return DocumentContext(
        document_id=document_id,
        owner_id=owner_id,
        chunks=[Chunk(id=f"chunk-{i}", text=f"text {i}", page=i + 1, chunk_index=i) for i in range(count)],
        meta=DocumentMeta(pages_indexed=count, content_hash="abc"),
    )


async def no_sleep(_delay: float) -> None:
    return None


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestKeys:
    def test_key_layout(self):
        assert context_key("mem-1") == "mem:ctx:mem-1"
        assert status_key("mem-1") == "mem:ctx:mem-1:status"
        assert deal_points_key("abc") == "dealPoints:abc"


class TestStatusMerge:
    """Monotonic status records."""

    def test_parts_and_pages_never_decrease(self):
        record = StatusRecord("mem-1", "processing", parts=3, pages_indexed=6)

        merged = record.merge("processing", parts=2, pages_indexed=4)

        assert merged.parts == 3
        assert merged.pages_indexed == 6

    def test_terminal_status_is_final(self):
        record = StatusRecord("mem-1", "ready", parts=1, pages_indexed=15)

        assert record.merge("error", "late failure").status == "ready"
        assert record.merge("processing").status == "ready"

    def test_error_message_only_on_error(self):
        failed = StatusRecord("mem-1").merge("error", "boom")
        assert failed.error_message == "boom"
        assert StatusRecord("mem-1").merge("ready").error_message is None

    def test_unset_fields_are_kept(self):
        record = StatusRecord("mem-1", "ready", content_hash="h1", background_processing=True)
        merged = record.merge("ready", background_processing=False)
        assert merged.content_hash == "h1"
        assert merged.background_processing is False


class TestInMemoryContextStore:
    """Test cases for InMemoryContextStore."""

    @pytest.mark.asyncio
    async def test_status_round_trip(self, store):
        await store.set_status("mem-1", "processing")
        await store.set_status("mem-1", "ready", parts=1, pages_indexed=15, content_hash="h")

        status = await store.get_status("mem-1")

        assert status.status == "ready"
        assert status.parts == 1
        assert status.pages_indexed == 15

    @pytest.mark.asyncio
    async def test_unknown_status_is_none(self, store):
        assert await store.get_status("mem-missing") is None

    @pytest.mark.asyncio
    async def test_concurrent_merges_are_monotonic(self, store):
        await store.set_status("mem-1", "processing")
        await asyncio.gather(
            *(store.set_status("mem-1", "processing", parts=p, pages_indexed=p * 2) for p in range(10))
        )

        status = await store.get_status("mem-1")

        assert status.parts == 9
        assert status.pages_indexed == 18

    @pytest.mark.asyncio
    async def test_context_isolated_by_owner(self, store):
        await store.set_context("mem-1", "owner-a", make_context())

        assert await store.get_context("mem-1", "owner-b") is None
        assert len((await store.get_context("mem-1", "owner-a")).chunks) == 3

    @pytest.mark.asyncio
    async def test_oldest_context_evicted(self):
        store = InMemoryContextStore(max_contexts=2)
        for i in range(3):
            await store.set_context(f"mem-{i}", "o", make_context(f"mem-{i}", "o"))

        assert await store.get_context("mem-0", "o") is None
        assert await store.get_context("mem-2", "o") is not None

    @pytest.mark.asyncio
    async def test_expired_entries_vanish(self):
        store = InMemoryContextStore(ttl_seconds=1)
        await store.set_item("k", {"v": 1}, ttl_ms=1)
        await asyncio.sleep(0.01)
        assert await store.get_item("k") is None

    @pytest.mark.asyncio
    async def test_expired_items_swept_on_write(self):
        clock = FakeClock()
        store = InMemoryContextStore(ttl_seconds=1, clock=clock)
        for i in range(1000):
            await store.set_status(f"mem-{i}", "ready")
            await store.set_item(deal_points_key(f"hash-{i}"), {"bullets": []}, ttl_ms=1000)

        clock.now += 3600
        await store.set_status("mem-new", "processing")

        assert len(store._items) == 1
        assert (await store.get_status("mem-new")).status == "processing"

    @pytest.mark.asyncio
    async def test_items_capped_oldest_first(self):
        store = InMemoryContextStore(max_items=3)
        for i in range(5):
            await store.set_item(f"k{i}", i)

        assert await store.get_item("k0") is None
        assert await store.get_item("k1") is None
        assert [await store.get_item(f"k{i}") for i in (2, 3, 4)] == [2, 3, 4]

    @pytest.mark.asyncio
    async def test_rewritten_status_is_not_evicted_first(self):
        store = InMemoryContextStore(max_items=2)
        await store.set_status("mem-a", "processing")
        await store.set_item("k", 1)
        await store.set_status("mem-a", "ready")
        await store.set_item("k2", 2)

        assert (await store.get_status("mem-a")).status == "ready"
        assert await store.get_item("k") is None

    @pytest.mark.asyncio
    async def test_items_round_trip(self, store):
        await store.set_item("dealPoints:h", {"bullets": ["a"]})
        assert await store.get_item("dealPoints:h") == {"bullets": ["a"]}


class TestContextStoreFactory:
    def test_backends_registered(self):
        assert {"in_memory", "redis"} <= set(ContextStoreFactory.available_backends())

    def test_create_in_memory(self):
        store = ContextStoreFactory.create(StoreConfig(backend="in_memory", max_contexts=5))
        assert isinstance(store, InMemoryContextStore)
        assert store.max_contexts == 5

    def test_unknown_backend(self):
        with pytest.raises(ConfigurationError):
            ContextStoreFactory.create(StoreConfig(backend="dynamo"))


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the non-transactional paths."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.data: dict[str, str] = {}
        self.set_calls: list[dict] = []

    async def get(self, key):
        if self.failures:
            self.failures -= 1
            raise RedisConnectionError("connection reset")
        return self.data.get(key)

    async def set(self, key, value, ex=None, px=None):
        self.set_calls.append({"key": key, "ex": ex, "px": px})
        self.data[key] = value
        return True

    async def ping(self):
        return True

    async def aclose(self):
        pass


class TestRedisContextStore:
    """Test cases for RedisContextStore against a fake client."""

    def make_store(self, client: FakeRedis) -> RedisContextStore:
        store = RedisContextStore("redis://localhost:6379/0", ttl_seconds=60, retry_delay_seconds=0)
        store._client = client
        return store

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self):
        client = FakeRedis(failures=2)
        store = self.make_store(client)
        client.data[status_key("mem-1")] = (
            '{"documentId": "mem-1", "status": "ready", "parts": 1, "pagesIndexed": 3}'
        )

        status = await store.get_status("mem-1")

        assert status.status == "ready"
        assert status.pages_indexed == 3

    @pytest.mark.asyncio
    async def test_context_owner_check(self):
        store = self.make_store(FakeRedis())

        assert await store.set_context("mem-1", "owner-a", make_context())
        assert await store.get_context("mem-1", "owner-b") is None
        assert (await store.get_context("mem-1", "owner-a")).meta.content_hash == "abc"

    @pytest.mark.asyncio
    async def test_item_ttl_in_milliseconds(self):
        client = FakeRedis()
        store = self.make_store(client)

        await store.set_item("dealPoints:h", {"bullets": []}, ttl_ms=5000)
        await store.set_item("other", {"x": 1})

        assert client.set_calls[0]["px"] == 5000
        assert client.set_calls[1]["ex"] == 60

    @pytest.mark.asyncio
    async def test_is_strongly_consistent(self):
        assert RedisContextStore.weakly_consistent is False
        assert await self.make_store(FakeRedis()).is_available()


class TestContextWriter:
    """Test cases for read-after-write validation."""

    @pytest.mark.asyncio
    async def test_verified_write(self, store):
        assert await ContextWriter(store, sleep=no_sleep).write(make_context()) is True

    @pytest.mark.asyncio
    async def test_weak_store_recovers_on_retry(self):
        store = FlakyStore(drop_writes=2)

        assert await ContextWriter(store, sleep=no_sleep).write(make_context()) is True
        assert store.context_writes == 3

    @pytest.mark.asyncio
    async def test_weak_store_degrades_to_warning(self):
        store = FlakyStore(drop_writes=5)

        assert await ContextWriter(store, sleep=no_sleep).write(make_context()) is False
        assert store.context_writes == 3

    @pytest.mark.asyncio
    async def test_strong_store_fails_fast(self):
        store = FlakyStore(drop_writes=1, weakly_consistent=False)

        with pytest.raises(StorageError):
            await ContextWriter(store, sleep=no_sleep).write(make_context())
        assert store.context_writes == 1

    @pytest.mark.asyncio
    async def test_append_reindexes(self, store):
        writer = ContextWriter(store, sleep=no_sleep)
        await writer.write(make_context(count=2))
        new_chunks = [Chunk(id="chunk-0", text="late page", page=16, chunk_index=0)]

        updated = await writer.append("mem-1", "owner-a", new_chunks, pages_indexed=16)

        assert [c.id for c in updated.chunks] == ["chunk-0", "chunk-1", "chunk-2"]
        assert updated.chunks[-1].chunk_index == 2
        assert updated.meta.pages_indexed == 16
        stored = await store.get_context("mem-1", "owner-a")
        assert len(stored.chunks) == 3

    @pytest.mark.asyncio
    async def test_append_to_missing_context(self, store):
        writer = ContextWriter(store, sleep=no_sleep)
        assert await writer.append("mem-x", "owner-a", [], pages_indexed=3) is None
