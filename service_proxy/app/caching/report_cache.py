"""
Report response cache with content-dependent TTL.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable, Optional

from shared.logging import get_logger

from ..domain.dates import Clock, seconds_until, utc_now
from ..domain.reports import ReportItem, items_from_payload
from .response_cache import CachedResponse, lookup
from .stores import CacheStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector
    from ..enrichment.memoizer import EnrichmentMemoizer


@dataclass(frozen=True)
class ReportTTL:
    ttl: int
    latest_issue: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    seconds_until_expiry: Optional[int] = None

    @property
    def found(self) -> bool:
        return self.latest_issue is not None


def compute_report_ttl(
    items: Iterable[ReportItem],
    *,
    default_ttl: int,
    min_ttl: int,
    lookahead: timedelta = timedelta(days=6),
    now: datetime,
) -> ReportTTL:
    """
    Cache a report list until shortly after the next report is expected.

    The next report is expected ``lookahead`` after the most recent issue
    time. The remaining time is used when it exceeds ``min_ttl``; otherwise,
    and when there are no dated reports, ``default_ttl`` applies.
    """
    issue_times = [item.issue_time for item in items if item.is_report and item.issue_time is not None]
    if not issue_times:
        return ReportTTL(ttl=default_ttl)

    latest = max(issue_times)
    expires_at = latest + lookahead
    seconds = seconds_until(expires_at, now)
    ttl = seconds if seconds > min_ttl else default_ttl
    return ReportTTL(ttl=ttl, latest_issue=latest, expires_at=expires_at, seconds_until_expiry=seconds)


class ReportResponseCache:
    """Fetch, enrich and conditionally cache a list of notification reports."""

    cache_name = "reports"

    def __init__(
        self,
        store: CacheStore,
        memoizer: "EnrichmentMemoizer",
        *,
        default_ttl: int,
        min_ttl: int,
        lookahead_days: int = 6,
        clock: Clock = utc_now,
        enabled: bool = True,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store
        self.memoizer = memoizer
        self.default_ttl = default_ttl
        self.min_ttl = min_ttl
        self.lookahead = timedelta(days=lookahead_days)
        self.clock = clock
        self.enabled = enabled
        self.metrics = metrics
        self.logger = get_logger("proxy.cache.reports")

    async def get_or_fetch(self, key: str, fetcher: Callable[[], Awaitable[Any]]) -> CachedResponse:
        """
        Serve the stored report list, or fetch, enrich and store it.

        A fresh response is stored only when at least one item carries an
        enrichment; upstream errors propagate and are never stored.
        """
        if self.enabled:
            cached = await lookup(self.store, key, cache_name=self.cache_name, metrics=self.metrics)
            if cached is not None:
                self.logger.info("Cache hit", key=key)
                return cached
            self.logger.info("Cache miss", key=key)

        payload = await fetcher()
        items = items_from_payload(payload)
        await self.memoizer.enrich(items)

        decision = compute_report_ttl(
            items,
            default_ttl=self.default_ttl,
            min_ttl=self.min_ttl,
            lookahead=self.lookahead,
            now=self.clock(),
        )
        enriched = any(item.enrichment is not None for item in items)

        self.logger.info(
            "Report cache TTL calculated",
            key=key,
            found=decision.found,
            report_date=decision.latest_issue.isoformat() if decision.latest_issue else None,
            expire_date=decision.expires_at.isoformat() if decision.expires_at else None,
            seconds_until_expire=decision.seconds_until_expiry,
            ttl=decision.ttl,
            enriched=enriched,
        )

        response = CachedResponse(status=200, body=payload, ttl=decision.ttl)
        if not self.enabled:
            return response.skipped()
        if not enriched:
            response.ttl = None
            return response

        await self.store.set(key, response.to_entry(), decision.ttl)
        return response
