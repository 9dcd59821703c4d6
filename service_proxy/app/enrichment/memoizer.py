"""
Content-addressed memoization of report extraction.
"""

from __future__ import annotations

import asyncio
import hashlib
from typing import TYPE_CHECKING, Any, Dict, Optional, Protocol, Sequence

from shared.logging import get_logger

from ..caching.stores import CacheStore
from ..domain.reports import ReportItem

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


ENRICHMENT_KEY_PREFIX = "enrichment:"


class Extractor(Protocol):
    async def extract(self, text: str) -> Dict[str, Any]:
        ...


def enrichment_key(raw_body: str) -> str:
    """Cache key for the enrichment of ``raw_body``; equal text gives an equal key."""
    digest = hashlib.sha256(raw_body.encode("utf-8")).hexdigest()
    return f"{ENRICHMENT_KEY_PREFIX}{digest}"


class EnrichmentMemoizer:
    """
    Attach extraction results to report items, computing each distinct body once.

    Items are processed concurrently and independently: a failed extraction
    leaves its item without an enrichment and never fails the batch. There is
    no in-flight deduplication, so identical bodies racing in the same batch
    are each extracted and the equivalent results overwrite one another.
    """

    def __init__(
        self,
        store: CacheStore,
        extractor: Extractor,
        *,
        ttl_seconds: Optional[int] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store
        self.extractor = extractor
        self.ttl_seconds = ttl_seconds
        self.metrics = metrics
        self.logger = get_logger("proxy.enrichment")

    async def enrich(self, items: Sequence[ReportItem]) -> Sequence[ReportItem]:
        """Enrich ``items`` in place; returns once every item has been attempted."""
        await asyncio.gather(*(self._enrich_item(index, item) for index, item in enumerate(items)))
        return items

    async def _enrich_item(self, index: int, item: ReportItem) -> None:
        if not item.is_enrichable:
            if item.is_report:
                self.logger.warning("Report has no body to extract", index=index)
            self._record("skipped")
            return

        key = enrichment_key(item.raw_body)
        cached = await self.store.get(key)
        if isinstance(cached, dict):
            item.enrichment = cached
            self._record("hit")
            return

        self.logger.info("Extraction started", index=index, content_hash=key)
        try:
            result = await self.extractor.extract(item.raw_body)
        except Exception as exc:
            self.logger.error("Extraction failed", index=index, content_hash=key, error=str(exc))
            self._record("failed")
            return

        if not isinstance(result, dict):
            self.logger.error(
                "Extraction returned a non-object result",
                index=index,
                content_hash=key,
                result_type=type(result).__name__,
            )
            self._record("failed")
            return

        await self.store.set(key, result, self.ttl_seconds)
        item.enrichment = result
        self.logger.info("Extraction complete", index=index, content_hash=key)
        self._record("computed")

    def _record(self, outcome: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("enrichment_outcomes_total", outcome=outcome)
