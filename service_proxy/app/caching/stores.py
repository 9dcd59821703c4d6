"""
Cache store adapters.

Both backends serialize values to JSON so they behave identically: a value
that no longer decodes is a miss, and a failing backend never raises to the
caller (reads miss, writes are dropped).
"""

from __future__ import annotations

import asyncio
import json
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Callable, NamedTuple, Optional

import redis.asyncio as redis
from cachetools import TLRUCache
from pydantic import BaseModel

from shared.config import BaseConfig
from shared.errors import CacheStoreError
from shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class CacheStats(BaseModel):
    """Uniform statistics shape reported by every backend."""

    backend: str
    ready: bool
    keys: int
    max_entries: Optional[int] = None
    hits: int
    misses: int
    hit_rate: float


class CacheStore(ABC):
    """Key-value store with per-entry TTL."""

    backend: str = "abstract"

    def __init__(self, default_ttl: int, *, metrics: Optional["MetricsCollector"] = None):
        self.default_ttl = default_ttl
        self.metrics = metrics
        self.logger = get_logger(f"proxy.cache.store.{self.backend}")
        self._ready = False
        self._hits = 0
        self._misses = 0

    @property
    def ready(self) -> bool:
        return self._ready

    async def start(self) -> None:
        """Establish the backend connection."""
        self._ready = True

    async def stop(self) -> None:
        """Release backend resources."""
        self._ready = False

    async def start_within(self, timeout: float) -> bool:
        """
        Start the backend, waiting at most ``timeout`` seconds.

        Returns False when the store is not ready in time; the service then
        keeps running without cache benefit.
        """
        try:
            await asyncio.wait_for(self.start(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            self.logger.warning("Cache store not ready in time, continuing degraded", timeout=timeout)
        except CacheStoreError as exc:
            self.logger.warning("Cache store failed to start, continuing degraded", error=exc.message)
        return False

    async def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on a miss or backend failure."""
        try:
            raw = await self._get_raw(key)
        except Exception as exc:
            self._record_failure("get", exc, key)
            return None

        if raw is None:
            self._misses += 1
            return None

        try:
            value = json.loads(raw)
        except (TypeError, ValueError):
            self.logger.warning("Discarding undecodable cache entry", key=key)
            self._misses += 1
            return None

        self._hits += 1
        return value

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        """Store a value; best effort, returns False when nothing was written."""
        ttl = self.default_ttl if ttl_seconds is None else int(ttl_seconds)
        if ttl <= 0:
            return False

        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as exc:
            self.logger.error("Cache value is not serializable", key=key, error=str(exc))
            return False

        try:
            await self._set_raw(key, payload, ttl)
        except Exception as exc:
            self._record_failure("set", exc, key)
            return False

        self.logger.debug("Cached value", key=key, ttl=ttl)
        return True

    async def stats(self) -> CacheStats:
        """Return backend statistics in the uniform shape."""
        try:
            keys = await self._count_keys()
        except Exception as exc:
            self._record_failure("stats", exc)
            keys = 0

        total = self._hits + self._misses
        return CacheStats(
            backend=self.backend,
            ready=self._ready,
            keys=keys,
            max_entries=self._max_entries(),
            hits=self._hits,
            misses=self._misses,
            hit_rate=(self._hits / total) if total else 0.0,
        )

    async def health_check(self) -> bool:
        return self._ready

    def _record_failure(self, operation: str, exc: Exception, key: Optional[str] = None) -> None:
        self.logger.error("Cache store operation failed", operation=operation, key=key, error=str(exc))
        if self.metrics:
            self.metrics.increment_counter(
                "cache_store_errors_total",
                backend=self.backend,
                operation=operation,
            )

    def _max_entries(self) -> Optional[int]:
        return None

    @abstractmethod
    async def _get_raw(self, key: str) -> Optional[str]:
        """Fetch the serialized value."""

    @abstractmethod
    async def _set_raw(self, key: str, payload: str, ttl: int) -> None:
        """Write the serialized value with a TTL in seconds."""

    @abstractmethod
    async def _count_keys(self) -> int:
        """Number of live keys."""


class _MemoryEntry(NamedTuple):
    payload: str
    ttl: int


class MemoryCacheStore(CacheStore):
    """Bounded in-process store with per-entry expiry; the oldest entries go first when full."""

    backend = "memory"

    def __init__(
        self,
        default_ttl: int,
        *,
        max_entries: int = 1024,
        timer: Callable[[], float] = time.monotonic,
        metrics: Optional["MetricsCollector"] = None,
    ):
        super().__init__(default_ttl, metrics=metrics)
        self.max_entries = max_entries
        self._cache: TLRUCache = TLRUCache(
            maxsize=max_entries,
            ttu=lambda _key, entry, now: now + entry.ttl,
            timer=timer,
        )

    async def _get_raw(self, key: str) -> Optional[str]:
        entry = self._cache.get(key)
        return entry.payload if entry is not None else None

    async def _set_raw(self, key: str, payload: str, ttl: int) -> None:
        self._cache[key] = _MemoryEntry(payload, ttl)

    async def _count_keys(self) -> int:
        self._cache.expire()
        return len(self._cache)

    def _max_entries(self) -> Optional[int]:
        return self.max_entries


class RedisCacheStore(CacheStore):
    """Networked store backed by Redis."""

    backend = "redis"

    def __init__(
        self,
        redis_url: str,
        default_ttl: int,
        *,
        key_prefix: str = "proxy:",
        connect_timeout: float = 2.0,
        metrics: Optional["MetricsCollector"] = None,
    ):
        super().__init__(default_ttl, metrics=metrics)
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.connect_timeout = connect_timeout
        self._redis: Optional[redis.Redis] = None

    def _client(self) -> redis.Redis:
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=self.connect_timeout,
                socket_timeout=self.connect_timeout,
                health_check_interval=30,
            )
        return self._redis

    async def start(self) -> None:
        """Connect and ping Redis."""
        try:
            await self._client().ping()
        except Exception as e:
            self.logger.error("Failed to start Redis cache", error=str(e))
            raise CacheStoreError(str(e), {"redis_url": self.redis_url})

        self._ready = True
        self.logger.info("Redis cache started")

    async def stop(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            self.logger.info("Redis cache stopped")
        self._ready = False

    async def health_check(self) -> bool:
        try:
            await self._client().ping()
            return True
        except Exception:
            return False

    async def _get_raw(self, key: str) -> Optional[str]:
        return await self._client().get(f"{self.key_prefix}{key}")

    async def _set_raw(self, key: str, payload: str, ttl: int) -> None:
        await self._client().setex(f"{self.key_prefix}{key}", ttl, payload)

    async def _count_keys(self) -> int:
        count = 0
        async for _ in self._client().scan_iter(match=f"{self.key_prefix}*"):
            count += 1
        return count


def create_cache_store(config: BaseConfig, metrics: Optional["MetricsCollector"] = None) -> CacheStore:
    """Select the store backend configured for this process."""
    backend = config.cache_backend.lower()
    if backend == "redis":
        return RedisCacheStore(
            config.redis_url,
            config.cache_default_ttl,
            connect_timeout=config.cache_ready_timeout,
            metrics=metrics,
        )
    if backend == "memory":
        return MemoryCacheStore(
            config.cache_default_ttl,
            max_entries=config.cache_max_entries,
            metrics=metrics,
        )
    raise ValueError(f"Unknown cache backend '{config.cache_backend}'")
