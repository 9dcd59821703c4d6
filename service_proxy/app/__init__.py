"""
Space data proxy service package.

The proxy fronts a rate-limited space-data API, enforcing:
- Canonical cache keys and per-endpoint TTL rules
- Date-aware negative caching for date-keyed resources
- Content-dependent TTLs and memoized LLM enrichment for notification reports

Structure:
- app.main: FastAPI app, routes, and wiring.
- app.adapters: HTTP clients for the upstream API and the extraction backend.
- app.caching: Key normalizer, TTL rules, stores, and caching stages.
- app.domain: Date validity windows and report items.
- app.enrichment: Extraction prompt and enrichment memoizer.
"""
