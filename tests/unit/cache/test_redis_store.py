"""Tests for the Redis cache store."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from edustride.cache.redis import RedisCacheStore, glob_escape


def scanning(keys: list[bytes]):
    """Stand-in for scan_iter yielding the given keys."""

    async def scan_iter(match: str, count: int):
        for key in keys:
            yield key

    return MagicMock(side_effect=scan_iter)


class TestRedisCacheStore:
    """Test Redis store command mapping."""

    @pytest.fixture
    def client(self) -> AsyncMock:
        """Create a mock Redis client."""
        client = AsyncMock()
        client.get = AsyncMock(return_value=None)
        client.setex = AsyncMock()
        client.delete = AsyncMock(return_value=1)
        return client

    @pytest.fixture
    def store(self, client: AsyncMock) -> RedisCacheStore:
        """Create a store with a fixed prefix."""
        return RedisCacheStore(client, prefix="edu")

    async def test_get_uses_prefixed_key(self, store: RedisCacheStore, client: AsyncMock) -> None:
        """Reads go to the namespaced key."""
        client.get.return_value = b"payload"
        assert await store.get("portfolio:p1") == b"payload"
        client.get.assert_awaited_once_with("edu:portfolio:p1")

    async def test_set_uses_setex(self, store: RedisCacheStore, client: AsyncMock) -> None:
        """Writes carry the TTL."""
        await store.set("portfolio:p1", b"v", 60)
        client.setex.assert_awaited_once_with("edu:portfolio:p1", 60, b"v")

    async def test_zero_ttl_deletes(self, store: RedisCacheStore, client: AsyncMock) -> None:
        """A zero TTL removes the key instead of calling SETEX."""
        await store.set("portfolio:p1", b"v", 0)
        client.setex.assert_not_awaited()
        client.delete.assert_awaited_once_with("edu:portfolio:p1")

    async def test_negative_ttl_rejected(self, store: RedisCacheStore) -> None:
        """Negative TTLs are an error."""
        with pytest.raises(ValueError):
            await store.set("k", b"v", -5)

    async def test_delete_pattern_scans_and_deletes(
        self, store: RedisCacheStore, client: AsyncMock
    ) -> None:
        """Matching keys are found with SCAN and deleted in a batch."""
        client.scan_iter = scanning([b"edu:skills:u1:a", b"edu:skills:u1:b"])
        client.delete.return_value = 2

        assert await store.delete_pattern("skills:u1:*") == 2
        client.scan_iter.assert_called_once_with(match="edu:skills:u1:*", count=500)
        client.delete.assert_awaited_once_with(b"edu:skills:u1:a", b"edu:skills:u1:b")

    async def test_delete_pattern_without_matches(
        self, store: RedisCacheStore, client: AsyncMock
    ) -> None:
        """No matches means no DEL."""
        client.scan_iter = scanning([])
        assert await store.delete_pattern("skills:u1:*") == 0
        client.delete.assert_not_awaited()

    async def test_health_check(self, store: RedisCacheStore, client: AsyncMock) -> None:
        """Health follows PING."""
        client.ping = AsyncMock(return_value=True)
        assert await store.health_check() is True
        client.ping = AsyncMock(side_effect=ConnectionError("down"))
        assert await store.health_check() is False


class TestGlobEscape:
    """Test SCAN pattern escaping."""

    def test_special_characters_are_escaped(self) -> None:
        """Glob metacharacters in literals are escaped."""
        assert glob_escape("a*b?c[d]") == "a\\*b\\?c\\[d\\]"

    def test_plain_text_unchanged(self) -> None:
        """Ordinary keys pass through."""
        assert glob_escape("edu:skills:u1:") == "edu:skills:u1:"
