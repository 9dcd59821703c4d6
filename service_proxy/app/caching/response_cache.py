"""
Response caching stage for routes without date or report semantics.

The stage computes the key and rule before calling the handler, then decides
from the handler's return value whether the response is stored.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional

from shared.logging import get_logger

from .stores import CacheStore
from .ttl_rules import TTLPolicy, TTLRuleEngine

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


CACHE_HIT = "HIT"
CACHE_MISS = "MISS"
CACHE_SKIP = "SKIP"

_BASE64 = "base64"


@dataclass
class CachedResponse:
    """
    A response as produced by a handler or read back from the store.

    ``body`` is either a JSON-compatible value or raw bytes; bytes are stored
    base64 encoded. ``ttl`` is the duration the response was stored under,
    None when it was not stored.
    """

    status: int
    body: Any
    ttl: Optional[int] = None
    headers: Dict[str, str] = field(default_factory=dict)
    cache_status: str = CACHE_MISS

    def to_entry(self) -> Dict[str, Any]:
        entry: Dict[str, Any] = {"status": self.status, "ttl": self.ttl}
        if isinstance(self.body, (bytes, bytearray)):
            entry["body"] = base64.b64encode(bytes(self.body)).decode("ascii")
            entry["encoding"] = _BASE64
        else:
            entry["body"] = self.body
        if self.headers:
            entry["headers"] = dict(self.headers)
        return entry

    def skipped(self) -> "CachedResponse":
        """Mark a response that bypassed the cache; it carries no TTL."""
        self.ttl = None
        self.cache_status = CACHE_SKIP
        return self

    @classmethod
    def from_entry(cls, entry: Any) -> Optional["CachedResponse"]:
        """Rebuild a cached response; anything not shaped like an entry is a miss."""
        if not isinstance(entry, dict) or "body" not in entry:
            return None
        status = entry.get("status")
        if not isinstance(status, int):
            return None

        body = entry["body"]
        if entry.get("encoding") == _BASE64:
            try:
                body = base64.b64decode(body, validate=True)
            except (TypeError, ValueError):
                return None

        return cls(
            status=status,
            body=body,
            ttl=entry.get("ttl"),
            headers=dict(entry.get("headers") or {}),
            cache_status=CACHE_HIT,
        )


Handler = Callable[[], Awaitable[CachedResponse]]


async def lookup(
    store: CacheStore,
    key: str,
    *,
    cache_name: str,
    metrics: Optional["MetricsCollector"] = None,
) -> Optional[CachedResponse]:
    """Read ``key`` from the store and count the lookup."""
    cached = CachedResponse.from_entry(await store.get(key))
    if metrics:
        metrics.increment_counter(
            "cache_lookups_total",
            cache=cache_name,
            result="hit" if cached is not None else "miss",
        )
    return cached


class ResponseCacheStage:
    """Serve GET responses from the store, storing fresh ones per the TTL rules."""

    cache_name = "response"

    def __init__(
        self,
        store: CacheStore,
        rule_engine: TTLRuleEngine,
        *,
        enabled: bool = True,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store
        self.rule_engine = rule_engine
        self.enabled = enabled
        self.metrics = metrics
        self.logger = get_logger("proxy.cache.response")

    @staticmethod
    def decide_ttl(status: int, policy: TTLPolicy) -> Optional[int]:
        """TTL to store a response with ``status`` under, or None to skip storing."""
        if 200 <= status < 300:
            return policy.success
        if 400 <= status < 500 and policy.failure is not None:
            return policy.failure
        return None

    async def run(self, method: str, key: str, path: str, handler: Handler) -> CachedResponse:
        if method.upper() != "GET" or not self.enabled:
            return (await handler()).skipped()

        cached = await lookup(self.store, key, cache_name=self.cache_name, metrics=self.metrics)
        if cached is not None:
            self.logger.info("Cache hit", key=key)
            return cached

        self.logger.info("Cache miss", key=key)
        policy = self.rule_engine.ttl_for(path)
        response = await handler()
        response.cache_status = CACHE_MISS

        ttl = self.decide_ttl(response.status, policy)
        if ttl:
            response.ttl = ttl
            await self.store.set(key, response.to_entry(), ttl)
            self.logger.info("Cached response", key=key, status=response.status, ttl=ttl, rule=policy.rule_name)

        return response
