"""Tests for the TTL profile cache."""

import asyncio

import pytest

from mentor_chat.websockets.profile_cache import ProfileCache


class TestProfileCache:
    @pytest.mark.asyncio
    async def test_serves_from_cache_within_ttl(self, user_store, fake_clock):
        cache = ProfileCache(user_store, ttl_seconds=300, clock=fake_clock)

        first = await cache.get_profile("u1")
        fake_clock.advance(299.9)
        second = await cache.get_profile("u1")

        assert first["name"] == "Alice"
        assert second is first
        assert user_store.calls == ["u1"]
        cache.close()

    @pytest.mark.asyncio
    async def test_refetches_at_ttl(self, user_store, fake_clock):
        cache = ProfileCache(user_store, ttl_seconds=300, clock=fake_clock)

        await cache.get_profile("u1")
        fake_clock.advance(300)
        await cache.get_profile("u1")

        assert user_store.calls == ["u1", "u1"]
        cache.close()

    @pytest.mark.asyncio
    async def test_reads_do_not_extend_ttl(self, user_store, fake_clock):
        cache = ProfileCache(user_store, ttl_seconds=300, clock=fake_clock)

        await cache.get_profile("u1")
        for _ in range(5):
            fake_clock.advance(59)
            await cache.get_profile("u1")
        assert user_store.calls == ["u1"]

        fake_clock.advance(5)
        await cache.get_profile("u1")
        assert user_store.calls == ["u1", "u1"]
        cache.close()

    @pytest.mark.asyncio
    async def test_missing_user_is_not_cached(self, user_store, fake_clock):
        cache = ProfileCache(user_store, ttl_seconds=300, clock=fake_clock)

        assert await cache.get_profile("ghost") is None
        assert await cache.get_profile("ghost") is None

        assert user_store.calls == ["ghost", "ghost"]
        assert "ghost" not in cache

    @pytest.mark.asyncio
    async def test_store_error_degrades_to_none(self, user_store, fake_clock):
        user_store.error = RuntimeError("connection refused")
        cache = ProfileCache(user_store, ttl_seconds=300, clock=fake_clock)

        assert await cache.get_profile("u1") is None
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_slow_store_times_out(self, fake_clock):
        class SlowStore:
            async def fetch_user_profile(self, user_id):
                await asyncio.sleep(1)
                return {"_id": user_id, "name": "Late"}

        cache = ProfileCache(SlowStore(), ttl_seconds=300, timeout=0.01, clock=fake_clock)

        assert await cache.get_profile("u1") is None

    @pytest.mark.asyncio
    async def test_eviction_timer_removes_entry(self, user_store):
        cache = ProfileCache(user_store, ttl_seconds=0.02)

        await cache.get_profile("u1")
        assert "u1" in cache

        await asyncio.sleep(0.1)

        assert "u1" not in cache
        assert cache.peek("u1") is None

    @pytest.mark.asyncio
    async def test_close_cancels_timers(self, user_store, fake_clock):
        cache = ProfileCache(user_store, ttl_seconds=300, clock=fake_clock)
        await cache.get_profile("u1")
        await cache.get_profile("u2")

        cache.close()

        assert len(cache) == 0
        assert cache._timers == {}
