"""
Unit tests for the enrichment memoizer.
"""

import asyncio

import pytest

from shared.errors import ExtractionError
from shared.metrics import MetricsCollector
from service_proxy.app.caching.stores import MemoryCacheStore
from service_proxy.app.domain.reports import ReportItem
from service_proxy.app.enrichment.memoizer import EnrichmentMemoizer, enrichment_key


class FakeExtractor:
    """Extraction backend double that records calls and fails on request."""

    def __init__(self, failing=(), non_objects=()):
        self.calls = []
        self.failing = set(failing)
        self.non_objects = set(non_objects)

    async def extract(self, text):
        self.calls.append(text)
        # Yield so concurrent items interleave like real network calls
        await asyncio.sleep(0)
        if text in self.failing:
            raise ExtractionError("model unavailable")
        if text in self.non_objects:
            return [text]
        return {"summary": text.upper()}


def report(body, issued="2024-06-01T12:00Z", message_type="Report"):
    return ReportItem({"messageType": message_type, "messageIssueTime": issued, "messageBody": body})


class TestEnrichmentKey:
    """Test cases for enrichment_key."""

    def test_same_text_same_key(self):
        assert enrichment_key("## Weekly report") == enrichment_key("## Weekly report")

    def test_different_text_different_key(self):
        assert enrichment_key("report a") != enrichment_key("report b")

    def test_key_is_namespaced_hash(self):
        key = enrichment_key("text")

        assert key.startswith("enrichment:")
        assert len(key) == len("enrichment:") + 64


class TestEnrichmentMemoizer:
    """Test cases for EnrichmentMemoizer."""

    @pytest.fixture
    def store(self):
        return MemoryCacheStore(default_ttl=3600)

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("proxy")

    def make_memoizer(self, store, extractor, metrics=None):
        return EnrichmentMemoizer(store, extractor, ttl_seconds=86400, metrics=metrics)

    @pytest.mark.asyncio
    async def test_memoized_across_batches(self, store):
        """Test identical text in two unrelated batches is extracted exactly once."""
        extractor = FakeExtractor()
        memoizer = self.make_memoizer(store, extractor)
        first_batch = [report("shared body"), report("first only")]
        second_batch = [report("shared body", issued="2024-06-08T12:00Z")]

        await memoizer.enrich(first_batch)
        await memoizer.enrich(second_batch)

        assert extractor.calls.count("shared body") == 1
        assert second_batch[0].enrichment == {"summary": "SHARED BODY"}

    @pytest.mark.asyncio
    async def test_failure_isolated_to_item(self, store):
        """Test one failing extraction leaves every other item enriched."""
        extractor = FakeExtractor(failing={"body 2"})
        memoizer = self.make_memoizer(store, extractor)
        items = [report(f"body {index}") for index in range(5)]

        result = await memoizer.enrich(items)

        assert len(result) == 5
        assert [item.raw_body for item in result] == [f"body {index}" for index in range(5)]
        for index, item in enumerate(result):
            if index == 2:
                assert "processedMessage" not in item.payload
            else:
                assert item.payload["processedMessage"] == {"summary": f"BODY {index}"}

    @pytest.mark.asyncio
    async def test_failed_extraction_not_cached(self, store):
        extractor = FakeExtractor(failing={"flaky"})
        memoizer = self.make_memoizer(store, extractor)

        await memoizer.enrich([report("flaky")])

        assert await store.get(enrichment_key("flaky")) is None

    @pytest.mark.asyncio
    async def test_cached_result_reused(self, store):
        """Test a stored enrichment is attached without calling the backend."""
        extractor = FakeExtractor()
        memoizer = self.make_memoizer(store, extractor)
        await store.set(enrichment_key("known"), {"summary": "from cache"}, 60)
        item = report("known")

        await memoizer.enrich([item])

        assert extractor.calls == []
        assert item.enrichment == {"summary": "from cache"}

    @pytest.mark.asyncio
    async def test_non_reports_and_empty_bodies_skipped(self, store, metrics):
        extractor = FakeExtractor()
        memoizer = self.make_memoizer(store, extractor, metrics)
        items = [
            report("alert text", message_type="FLR"),
            report("   "),
            ReportItem({"messageType": "Report", "messageIssueTime": "2024-06-01T12:00Z"}),
        ]

        await memoizer.enrich(items)

        assert extractor.calls == []
        assert all(item.enrichment is None for item in items)
        assert metrics.registry.get_sample_value("enrichment_outcomes_total", {"outcome": "skipped"}) == 3.0

    @pytest.mark.asyncio
    async def test_non_object_result_is_a_failure(self, store, metrics):
        """Test a result that is not a JSON object is neither attached nor stored."""
        extractor = FakeExtractor(non_objects={"odd"})
        memoizer = self.make_memoizer(store, extractor, metrics)
        item = report("odd")

        await memoizer.enrich([item])
        await memoizer.enrich([report("odd")])

        assert item.enrichment is None
        assert await store.get(enrichment_key("odd")) is None
        assert extractor.calls == ["odd", "odd"]
        assert metrics.registry.get_sample_value("enrichment_outcomes_total", {"outcome": "failed"}) == 2.0

    @pytest.mark.asyncio
    async def test_outcomes_counted(self, store, metrics):
        memoizer = self.make_memoizer(store, FakeExtractor(failing={"bad"}), metrics)

        await memoizer.enrich([report("good"), report("bad")])
        await memoizer.enrich([report("good")])

        sample = metrics.registry.get_sample_value
        assert sample("enrichment_outcomes_total", {"outcome": "computed"}) == 1.0
        assert sample("enrichment_outcomes_total", {"outcome": "failed"}) == 1.0
        assert sample("enrichment_outcomes_total", {"outcome": "hit"}) == 1.0

    @pytest.mark.asyncio
    async def test_known_race_duplicate_content_in_one_batch(self, store):
        """
        Identical bodies in the same batch race: both miss the store before
        either result is written, so the backend is called twice. The results
        are equivalent and the entry ends up holding one of them.
        """
        extractor = FakeExtractor()
        memoizer = self.make_memoizer(store, extractor)
        items = [report("duplicate"), report("duplicate")]

        await memoizer.enrich(items)

        assert extractor.calls == ["duplicate", "duplicate"]
        assert items[0].enrichment == items[1].enrichment
        assert await store.get(enrichment_key("duplicate")) == {"summary": "DUPLICATE"}
