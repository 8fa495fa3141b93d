"""Tests for the in-memory listing cache."""

import asyncio
from unittest.mock import patch

from server.package_cache import InMemoryPackageCache


class TestInMemoryPackageCache:
    """Tests for InMemoryPackageCache."""

    def test_set_get_invalidate(self):
        cache = InMemoryPackageCache()

        async def _run():
            await cache.set_package_data("foo", b"listing")
            hit = await cache.get_package_data("foo")
            await cache.invalidate_package_data("foo")
            return hit, await cache.get_package_data("foo")

        assert asyncio.run(_run()) == (b"listing", None)

    def test_entries_expire_with_ttl(self):
        cache = InMemoryPackageCache(ttl=10)

        async def _run():
            with patch("server.package_cache.time.time", return_value=1000.0):
                await cache.set_package_data("foo", b"listing")
            with patch("server.package_cache.time.time", return_value=1005.0):
                fresh = await cache.get_package_data("foo")
            with patch("server.package_cache.time.time", return_value=1011.0):
                stale = await cache.get_package_data("foo")
            return fresh, stale

        assert asyncio.run(_run()) == (b"listing", None)
        assert cache.stats()["total_entries"] == 0

    def test_byte_tracking_add_remove(self):
        """Byte accounting stays accurate across replace and invalidate."""
        cache = InMemoryPackageCache()

        async def _run():
            await cache.set_package_data("a", b"hello")
            await cache.set_package_data("b", b"world!")
            assert cache.stats()["current_bytes"] == 11
            await cache.set_package_data("a", b"hi")
            assert cache.stats()["current_bytes"] == 8
            await cache.invalidate_package_data("b")
            assert cache.stats()["current_bytes"] == 2

        asyncio.run(_run())

    def test_entry_limit_evicts_oldest(self):
        cache = InMemoryPackageCache(max_entries=2)

        async def _run():
            for i, name in enumerate(("a", "b", "c")):
                with patch("server.package_cache.time.time", return_value=100.0 + i):
                    await cache.set_package_data(name, b"x")
            return [await cache.get_package_data(n) for n in ("a", "b", "c")]

        assert asyncio.run(_run()) == [None, b"x", b"x"]

    def test_oversized_listing_not_cached(self):
        cache = InMemoryPackageCache(max_bytes=100)

        async def _run():
            await cache.set_package_data("big", b"x" * 11)
            return await cache.get_package_data("big")

        assert asyncio.run(_run()) is None

    def test_clear(self):
        cache = InMemoryPackageCache()
        asyncio.run(cache.set_package_data("foo", b"x"))
        cache.clear()
        assert cache.stats()["total_entries"] == 0
        assert cache.stats()["current_bytes"] == 0
