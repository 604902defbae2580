from __future__ import annotations

import dataclasses
from typing import Any, Callable

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from config import Settings
from services.cache import CacheService, MemoryStore


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedis:
    """In-memory stand-in for ``redis.asyncio.Redis`` (string values, no expiry)."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.down = False
        self.closed = False

    def _check(self) -> None:
        if self.down:
            raise RedisConnectionError("connection refused")

    async def ping(self) -> bool:
        self._check()
        return True

    async def get(self, key: str) -> str | None:
        self._check()
        return self.data.get(key)

    async def setex(self, key: str, ttl: int, value: str) -> None:
        self._check()
        self.data[key] = value
        self.ttls[key] = ttl

    async def delete(self, key: str) -> int:
        self._check()
        return 1 if self.data.pop(key, None) is not None else 0

    async def exists(self, key: str) -> int:
        self._check()
        return 1 if key in self.data else 0

    async def flushdb(self) -> None:
        self._check()
        self.data.clear()

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    def factory(**overrides: Any) -> Settings:
        defaults = {
            "llm_api_key": "test-key",
            "llm_api_base": "https://api.anthropic.com",
            "github_token": None,
            "stackoverflow_key": None,
            "cache_enabled": False,
            "cache_stale_ttl": 7 * 24 * 3600,
            "max_concurrency": 4,
        }
        defaults.update(overrides)
        return dataclasses.replace(Settings(), **defaults)

    return factory


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def cache(clock) -> CacheService:
    """Memory-only cache driven by the fake clock."""
    return CacheService(MemoryStore(max_size=256, clock=clock), stale_ttl=7 * 24 * 3600)
