"""Two-tier cache: Redis as the durable shared store, an in-process TTL map as fallback.

Caching is an optimisation, never a correctness dependency: every failure
talking to Redis is logged and swallowed here, and callers fall through to
the in-memory tier.  The two tiers are independent mirrors with their own
expiry; they are not kept in lock-step.
"""

from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Callable

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from config import Settings
from utils.errors import CacheError

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

STALE_PREFIX = "stale:"


class MemoryStore:
    """Process-local key/value store with per-entry TTL and bounded size.

    When full, the oldest inserted entry is evicted first.
    """

    def __init__(self, max_size: int = 2048, clock: Clock = time.monotonic) -> None:
        self._max_size = max_size
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return value

    def set(self, key: str, value: Any, ttl: int) -> None:
        self._entries.pop(key, None)
        if len(self._entries) >= self._max_size:
            self._purge_expired()
        while len(self._entries) >= self._max_size:
            oldest = next(iter(self._entries))
            self._entries.pop(oldest, None)
        self._entries[key] = (value, self._clock() + ttl)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def _purge_expired(self) -> None:
        now = self._clock()
        for key in [k for k, (_, exp) in self._entries.items() if now >= exp]:
            del self._entries[key]


class RedisStore:
    """Thin async wrapper over a Redis client that tracks connection readiness.

    A connection failure marks the store as not ready; the next operation
    after ``retry_interval`` seconds retries with a PING before giving up
    again.  All Redis errors are re-raised as :class:`CacheError`.
    """

    def __init__(
        self,
        client: Any,
        retry_interval: float = 30.0,
        clock: Clock = time.monotonic,
    ) -> None:
        self._client = client
        self._retry_interval = retry_interval
        self._clock = clock
        self._ready = False
        self._last_attempt: float | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedisStore":
        client = aioredis.from_url(
            settings.redis_url,
            password=settings.redis_password or None,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        return cls(client)

    @property
    def ready(self) -> bool:
        return self._ready

    async def connect(self) -> bool:
        self._last_attempt = self._clock()
        try:
            await self._client.ping()
        except (RedisError, OSError) as exc:
            logger.warning("Redis unavailable, using in-memory cache: %s", exc)
            self._ready = False
        else:
            if not self._ready:
                logger.info("Redis connection ready")
            self._ready = True
        return self._ready

    async def available(self) -> bool:
        if self._ready:
            return True
        if (
            self._last_attempt is not None
            and self._clock() - self._last_attempt < self._retry_interval
        ):
            return False
        return await self.connect()

    async def get(self, key: str) -> str | None:
        return await self._call("GET", self._client.get, key)

    async def set(self, key: str, value: str, ttl: int) -> None:
        await self._call("SETEX", self._client.setex, key, ttl, value)

    async def delete(self, key: str) -> None:
        await self._call("DEL", self._client.delete, key)

    async def exists(self, key: str) -> bool:
        return bool(await self._call("EXISTS", self._client.exists, key))

    async def flush(self) -> None:
        await self._call("FLUSHDB", self._client.flushdb)

    async def close(self) -> None:
        try:
            await self._client.aclose()
        except (RedisError, OSError) as exc:
            logger.warning("Error closing Redis connection: %s", exc)
        self._ready = False

    async def _call(self, op: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return await fn(*args)
        except (RedisConnectionError, RedisTimeoutError, OSError) as exc:
            self._ready = False
            self._last_attempt = self._clock()
            raise CacheError(f"{op} failed: {exc}") from exc
        except RedisError as exc:
            raise CacheError(f"{op} failed: {exc}") from exc


class CacheService:
    """Durable-first cache with an always-written in-memory mirror."""

    def __init__(
        self,
        memory: MemoryStore,
        durable: RedisStore | None = None,
        stale_ttl: int = 0,
    ) -> None:
        self._memory = memory
        self._durable = durable
        self._stale_ttl = stale_ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> "CacheService":
        durable = RedisStore.from_settings(settings) if settings.redis_enabled else None
        if durable is None:
            logger.info("Redis disabled; caching in memory only")
        return cls(
            MemoryStore(max_size=settings.cache_max_size),
            durable,
            stale_ttl=settings.cache_stale_ttl,
        )

    @property
    def durable(self) -> RedisStore | None:
        return self._durable

    async def connect(self) -> None:
        if self._durable is not None:
            await self._durable.connect()

    async def close(self) -> None:
        if self._durable is not None:
            await self._durable.close()

    async def get(self, key: str) -> Any | None:
        if self._durable is not None and await self._durable.available():
            try:
                raw = await self._durable.get(key)
            except CacheError as exc:
                logger.warning("Cache get %r failed: %s", key, exc)
            else:
                if raw is not None:
                    try:
                        return json.loads(raw)
                    except ValueError:
                        logger.warning("Discarding undecodable cache entry %r", key)
        return self._memory.get(key)

    async def get_stale(self, key: str) -> Any | None:
        """Return the live entry for *key*, or its long-lived shadow copy."""
        value = await self.get(key)
        if value is None and self._stale_ttl > 0:
            value = await self.get(STALE_PREFIX + key)
        return value

    async def set(self, key: str, value: Any, ttl: int) -> None:
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as exc:
            logger.warning("Cache set %r skipped, value not serialisable: %s", key, exc)
            return

        entries = [(key, ttl)]
        if self._stale_ttl > 0:
            entries.append((STALE_PREFIX + key, max(self._stale_ttl, ttl)))

        for k, t in entries:
            # Stored as a decoded copy so callers cannot mutate a cached entry.
            self._memory.set(k, json.loads(payload), t)

        if self._durable is not None and await self._durable.available():
            for k, t in entries:
                try:
                    await self._durable.set(k, payload, t)
                except CacheError as exc:
                    logger.warning("Cache set %r failed: %s", k, exc)
                    break

    async def delete(self, key: str) -> None:
        self._memory.delete(key)
        if self._durable is not None and await self._durable.available():
            try:
                await self._durable.delete(key)
            except CacheError as exc:
                logger.warning("Cache delete %r failed: %s", key, exc)

    async def exists(self, key: str) -> bool:
        if self._durable is not None and await self._durable.available():
            try:
                if await self._durable.exists(key):
                    return True
            except CacheError as exc:
                logger.warning("Cache exists %r failed: %s", key, exc)
        return self._memory.has(key)

    async def clear(self) -> None:
        self._memory.clear()
        if self._durable is not None and await self._durable.available():
            try:
                await self._durable.flush()
            except CacheError as exc:
                logger.warning("Cache flush failed: %s", exc)
        logger.info("All cache entries cleared")

    def stats(self) -> dict[str, Any]:
        if self._durable is None:
            redis_state = "disabled"
        else:
            redis_state = "connected" if self._durable.ready else "disconnected"
        return {"memory_entries": len(self._memory), "redis": redis_state}

    # -- key builders ---------------------------------------------------------

    @staticmethod
    def github_key(repo: str, kind: str = "metrics") -> str:
        return f"github:{repo.lower()}:{kind}"

    @staticmethod
    def resolve_key(source: str, tool: str) -> str:
        return f"resolve:{source}:{tool}"

    @staticmethod
    def docs_key(tool: str, kind: str = "content") -> str:
        return f"docs:{tool}:{kind}"

    @staticmethod
    def community_key(tool: str, source: str) -> str:
        return f"community:{tool}:{source}"

    @staticmethod
    def analysis_key(raw_input: str, analysis_type: str) -> str:
        normalized = re.sub(r"\s+", "-", raw_input.lower().strip())
        return f"analysis:{analysis_type}:{normalized}"
