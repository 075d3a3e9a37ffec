"""Tests for Redis cache wrapper."""

from unittest.mock import AsyncMock, patch

import pytest

from life_connections.cache import Cache, make_cache_key


class TestCache:
    """Tests for Cache class."""

    @pytest.fixture
    def mock_redis(self):
        with patch("life_connections.cache.Redis") as mock:
            mock_instance = AsyncMock()
            mock.from_url.return_value = mock_instance
            yield mock_instance

    @pytest.mark.asyncio
    async def test_connect(self, mock_redis):
        """Test connection."""
        cache = Cache("redis://localhost")
        await cache.connect()

        assert cache.redis is not None
        cache.redis.ping.assert_called_once()

    @pytest.mark.asyncio
    async def test_set_get(self, mock_redis):
        """Test set and get."""
        cache = Cache("redis://localhost")
        await cache.connect()

        await cache.set("key", "value")
        cache.redis.set.assert_called_with("key", "value", ex=None)

        mock_redis.get.return_value = "value"
        assert await cache.get("key") == "value"

    @pytest.mark.asyncio
    async def test_json_round_trip(self, mock_redis):
        """JSON helpers encode on write and decode on read."""
        cache = Cache("redis://localhost")
        await cache.connect()

        await cache.set_json("narrative:1", {"title": "Sleep"}, expire=60)
        mock_redis.set.assert_called_with("narrative:1", '{"title": "Sleep"}', ex=60)

        mock_redis.get.return_value = '{"title": "Sleep"}'
        assert await cache.get_json("narrative:1") == {"title": "Sleep"}

    @pytest.mark.asyncio
    async def test_get_json_missing(self, mock_redis):
        """Missing keys return None."""
        cache = Cache("redis://localhost")
        await cache.connect()
        mock_redis.get.return_value = None
        assert await cache.get_json("narrative:none") is None

    @pytest.mark.asyncio
    async def test_corrupt_entry_discarded(self, mock_redis):
        """Unparseable entries are deleted and treated as a miss."""
        cache = Cache("redis://localhost")
        await cache.connect()
        mock_redis.get.return_value = "{not json"

        assert await cache.get_json("narrative:bad") is None
        mock_redis.delete.assert_called_once_with("narrative:bad")

    @pytest.mark.asyncio
    async def test_close(self, mock_redis):
        """Closing releases the client."""
        cache = Cache("redis://localhost")
        await cache.connect()
        await cache.close()
        mock_redis.aclose.assert_called_once()

    @pytest.mark.asyncio
    async def test_not_connected(self):
        """Test error when not connected."""
        cache = Cache("redis://localhost")
        with pytest.raises(RuntimeError):
            await cache.get("key")


class TestMakeCacheKey:
    """Tests for cache key construction."""

    def test_key_ignores_field_order(self):
        """Equal payloads give equal keys."""
        assert make_cache_key("n", {"a": 1, "b": 2}) == make_cache_key("n", {"b": 2, "a": 1})

    def test_key_namespaced(self):
        """Keys carry their namespace and differ by payload."""
        key = make_cache_key("narrative", {"a": 1})
        assert key.startswith("narrative:")
        assert key != make_cache_key("narrative", {"a": 2})
