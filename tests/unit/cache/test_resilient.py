"""Tests for the failure-containing cache facade."""

import asyncio

import pytest

from edustride.cache.resilient import ResilientCache
from edustride.cache.store import CacheStore, InMemoryCacheStore
from edustride.errors import CacheFailure


class BrokenStore(CacheStore):
    """Store whose every operation raises."""

    async def get(self, key: str) -> bytes | None:
        raise ConnectionError("cache down")

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        raise ConnectionError("cache down")

    async def delete(self, key: str) -> None:
        raise ConnectionError("cache down")

    async def delete_pattern(self, pattern: str) -> int:
        raise ConnectionError("cache down")


class SlowStore(InMemoryCacheStore):
    """Store that answers after the caller gave up."""

    async def get(self, key: str) -> bytes | None:
        await asyncio.sleep(1)
        return await super().get(key)


class TestResilientCache:
    """Test get/set on a healthy store."""

    @pytest.fixture
    def cache(self) -> ResilientCache:
        """Create a cache over an in-memory store."""
        return ResilientCache(InMemoryCacheStore(), timeout=0.5)

    async def test_miss(self, cache: ResilientCache) -> None:
        """An absent key is a clean miss."""
        result = await cache.get("portfolio:p1")
        assert result.ok
        assert not result.hit
        assert result.value is None

    async def test_set_then_hit(self, cache: ResilientCache) -> None:
        """Values round-trip through JSON."""
        await cache.set("portfolio:p1", {"id": "p1", "tags": ["a"]}, 60)
        result = await cache.get("portfolio:p1")
        assert result.hit
        assert result.value == {"id": "p1", "tags": ["a"]}

    async def test_cached_null_is_a_hit(self, cache: ResilientCache) -> None:
        """A cached JSON null is told apart from a miss."""
        await cache.set("k", None, 60)
        result = await cache.get("k")
        assert result.hit
        assert result.value is None

    async def test_unserializable_value_is_contained(self, cache: ResilientCache) -> None:
        """Encoding failures are reported, not raised."""
        result = await cache.set("k", object(), 60)
        assert not result.ok
        assert result.error is not None
        assert result.error.operation == "encode"

    async def test_undecodable_entry_is_discarded(self, cache: ResilientCache) -> None:
        """Corrupt bytes read as a miss and are deleted."""
        await cache.store.set("k", b"{not json", 60)
        result = await cache.get("k")
        assert not result.hit
        assert await cache.store.get("k") is None

    async def test_delete_pattern_reports_count(self, cache: ResilientCache) -> None:
        """Pattern deletes return how many keys went."""
        await cache.set("skills:u1:a", 1, 60)
        await cache.set("skills:u1:b", 2, 60)
        result = await cache.delete_pattern("skills:u1:*")
        assert result.ok
        assert result.value == 2


class TestFailureContainment:
    """Test that store failures never escape."""

    @pytest.fixture
    def cache(self) -> ResilientCache:
        """Create a cache over a broken store."""
        return ResilientCache(BrokenStore(), timeout=0.5)

    async def test_get_failure_is_a_miss(self, cache: ResilientCache) -> None:
        """A failing read is a miss carrying the error."""
        result = await cache.get("portfolio:p1")
        assert not result.hit
        assert isinstance(result.error, CacheFailure)
        assert result.error.operation == "get"
        assert isinstance(result.error.cause, ConnectionError)

    async def test_set_failure_is_a_noop(self, cache: ResilientCache) -> None:
        """A failing write is reported, not raised."""
        result = await cache.set("k", {"a": 1}, 60)
        assert not result.ok

    async def test_delete_failures_are_reported(self, cache: ResilientCache) -> None:
        """Failing deletes are reported, not raised."""
        assert not (await cache.delete("k")).ok
        assert not (await cache.delete_pattern("skills:*")).ok
        assert not (await cache.invalidate_user("u1")).ok

    async def test_timeout_is_a_miss(self) -> None:
        """A read slower than the timeout is a miss."""
        cache = ResilientCache(SlowStore(), timeout=0.01)
        result = await cache.get("k")
        assert not result.hit
        assert result.error is not None
        assert isinstance(result.error.cause, TimeoutError)
