"""Tests for the tenant connection cache.

Covers:
- concurrent first lookups share one engine
- URL composition and missing configuration
- failed connections are not cached
- capacity and idle eviction dispose engines
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.app.core.connections import TenantConnectionCache
from src.app.core.database import build_engine
from src.app.core.errors import ConfigurationError


def _fake_engine() -> MagicMock:
    engine = MagicMock()
    engine.dispose = AsyncMock()
    return engine


class _Ticker:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


# ── Lookup ────────────────────────────────────────────────────────────────


class TestLookup:
    async def test_concurrent_first_lookups_share_one_engine(self, tmp_path):
        created = []

        def factory(url):
            engine = build_engine(url)
            created.append(engine)
            return engine

        cache = TenantConnectionCache(base_url=f"sqlite+aiosqlite:///{tmp_path}", engine_factory=factory)
        try:
            engines = await asyncio.gather(*(cache.get_connection("school_a") for _ in range(10)))
        finally:
            await cache.dispose_all()

        assert len(created) == 1
        assert all(e is engines[0] for e in engines)

    async def test_distinct_names_get_distinct_engines(self):
        cache = TenantConnectionCache(
            base_url="postgresql+asyncpg://u:p@db:5432",
            engine_factory=lambda url: _fake_engine(),
            verify_connection=False,
        )
        a = await cache.get_connection("school_a")
        b = await cache.get_connection("school_b")

        assert a is not b
        assert await cache.get_connection("school_a") is a
        assert len(cache) == 2
        assert "school_b" in cache

    def test_build_url(self):
        cache = TenantConnectionCache(base_url="postgresql+asyncpg://u:p@db:5432/")
        assert cache.build_url("school_a") == "postgresql+asyncpg://u:p@db:5432/school_a"

    async def test_missing_base_url_raises(self):
        cache = TenantConnectionCache(base_url="")
        with pytest.raises(ConfigurationError):
            await cache.get_connection("school_a")
        assert len(cache) == 0

    async def test_failed_connection_is_not_cached(self):
        attempts = []

        def flaky_factory(url):
            attempts.append(url)
            if len(attempts) == 1:
                raise OSError("connection refused")
            return _fake_engine()

        cache = TenantConnectionCache(
            base_url="postgresql+asyncpg://u:p@db:5432",
            engine_factory=flaky_factory,
            verify_connection=False,
        )
        with pytest.raises(OSError):
            await cache.get_connection("school_a")
        assert "school_a" not in cache

        engine = await cache.get_connection("school_a")
        assert await cache.get_connection("school_a") is engine
        assert len(attempts) == 2

    async def test_failed_verification_disposes_engine(self):
        broken = _fake_engine()
        broken.connect = MagicMock(side_effect=OSError("unreachable"))

        cache = TenantConnectionCache(base_url="postgresql+asyncpg://u:p@db:5432", engine_factory=lambda url: broken)
        with pytest.raises(OSError):
            await cache.get_connection("school_a")

        broken.dispose.assert_awaited_once()
        assert len(cache) == 0


# ── Eviction ──────────────────────────────────────────────────────────────


class TestEviction:
    async def test_capacity_evicts_least_recently_used(self):
        engines = {}

        def factory(url):
            engines[url.rsplit("/", 1)[-1]] = engine = _fake_engine()
            return engine

        cache = TenantConnectionCache(
            base_url="postgresql+asyncpg://u:p@db:5432",
            engine_factory=factory,
            max_connections=2,
            verify_connection=False,
        )
        await cache.get_connection("a")
        await cache.get_connection("b")
        await cache.get_connection("a")  # b is now least recently used
        await cache.get_connection("c")

        assert "b" not in cache
        assert "a" in cache and "c" in cache
        engines["b"].dispose.assert_awaited_once()
        engines["a"].dispose.assert_not_awaited()

    async def test_eviction_drops_the_name_lock(self):
        ticker = _Ticker()
        cache = TenantConnectionCache(
            base_url="postgresql+asyncpg://u:p@db:5432",
            engine_factory=lambda url: _fake_engine(),
            max_connections=1,
            idle_ttl_seconds=60,
            verify_connection=False,
            clock=ticker,
        )
        await cache.get_connection("a")
        await cache.get_connection("b")  # a evicted for capacity
        assert set(cache._locks) == {"b"}

        ticker.now += 61
        await cache.get_connection("c")  # b expired
        assert set(cache._locks) == {"c"}

    async def test_idle_engines_expire(self):
        ticker = _Ticker()
        first = _fake_engine()
        cache = TenantConnectionCache(
            base_url="postgresql+asyncpg://u:p@db:5432",
            engine_factory=MagicMock(side_effect=[first, _fake_engine()]),
            idle_ttl_seconds=60,
            verify_connection=False,
            clock=ticker,
        )
        assert await cache.get_connection("a") is first

        ticker.now += 61
        second = await cache.get_connection("a")

        assert second is not first
        first.dispose.assert_awaited_once()

    async def test_dispose_all(self):
        made = []
        cache = TenantConnectionCache(
            base_url="postgresql+asyncpg://u:p@db:5432",
            engine_factory=lambda url: made.append(_fake_engine()) or made[-1],
            verify_connection=False,
        )
        await cache.get_connection("a")
        await cache.get_connection("b")

        await cache.dispose_all()

        assert len(cache) == 0
        for engine in made:
            engine.dispose.assert_awaited_once()
