"""
Date-gated fetch orchestration for date-keyed resources.

Each request moves through CHECK_FUTURE -> CHECK_CACHE -> FETCHING and ends
in SUCCESS, NOT_FOUND or OTHER_ERROR:

- a date that has not begun anywhere on Earth is rejected before the store
  or the upstream API is touched
- successes are stored under the rule's success TTL
- not-found results are stored under the rule's failure TTL, extended while
  the date has not yet begun everywhere (content may still be published)
- any other upstream failure propagates and is never stored
"""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

from shared.errors import FutureDateError, UpstreamError
from shared.logging import get_logger

from ..domain.dates import Clock, DateValidityWindow, utc_now
from .response_cache import CachedResponse, lookup
from .stores import CacheStore
from .ttl_rules import TTLPolicy, TTLRuleEngine

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


Fetcher = Callable[[], Awaitable[Any]]


class DateGatedFetcher:
    """Fetch-or-serve for resources identified by a calendar date."""

    cache_name = "date_gated"

    def __init__(
        self,
        store: CacheStore,
        rule_engine: TTLRuleEngine,
        *,
        future_tz: str = "Pacific/Kiritimati",
        backfill_tz: str = "Etc/GMT+12",
        clock: Clock = utc_now,
        enabled: bool = True,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store
        self.rule_engine = rule_engine
        self.future_tz = future_tz
        self.backfill_tz = backfill_tz
        self.clock = clock
        self.enabled = enabled
        self.metrics = metrics
        self.logger = get_logger("proxy.cache.date_gated")

    def window_for(self, day: date) -> DateValidityWindow:
        return DateValidityWindow.for_date(day, self.future_tz, self.backfill_tz)

    @staticmethod
    def not_found_ttl(
        policy: TTLPolicy,
        window: Optional[DateValidityWindow],
        now: datetime,
    ) -> Optional[int]:
        """Failure TTL, extended to the end of the date's ambiguity window when longer."""
        if policy.failure is None:
            return None

        ttl = policy.failure
        if window is not None:
            remaining = window.seconds_until_settled(now)
            if remaining > ttl:
                ttl = remaining
        return ttl

    async def fetch(
        self,
        key: str,
        path: str,
        fetcher: Fetcher,
        day: Optional[date] = None,
    ) -> CachedResponse:
        now = self.clock()
        window = self.window_for(day) if day is not None else None

        if window is not None and window.is_future(now):
            self.logger.info("Rejected future date", date=day.isoformat(), opens_at=window.opens_at.isoformat())
            raise FutureDateError(day.isoformat())

        if self.enabled:
            cached = await lookup(self.store, key, cache_name=self.cache_name, metrics=self.metrics)
            if cached is not None:
                self.logger.info("Cache hit", key=key, status=cached.status)
                return cached
            self.logger.info("Cache miss", key=key)

        policy = self.rule_engine.ttl_for(path)
        try:
            body = await fetcher()
        except UpstreamError as exc:
            if not exc.is_not_found:
                raise
            return await self._store_not_found(key, policy, window, now, day)

        response = CachedResponse(status=200, body=body, ttl=policy.success)
        if not self.enabled:
            return response.skipped()
        await self.store.set(key, response.to_entry(), policy.success)
        return response

    async def _store_not_found(
        self,
        key: str,
        policy: TTLPolicy,
        window: Optional[DateValidityWindow],
        now: datetime,
        day: Optional[date],
    ) -> CachedResponse:
        message = f"No data available for {day.isoformat()}" if day else "Requested resource was not found"
        ttl = self.not_found_ttl(policy, window, now)
        response = CachedResponse(status=404, body={"error": message}, ttl=ttl)

        self.logger.info("Upstream not found", key=key, ttl=ttl, flat_ttl=policy.failure)
        if not self.enabled:
            return response.skipped()
        if ttl:
            await self.store.set(key, response.to_entry(), ttl)
        return response
