"""
Space data proxy service.
"""

import re
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlencode

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import UpstreamError

from .adapters.extraction_client import ExtractionClient
from .adapters.upstream_client import UpstreamClient, forwardable_headers
from .caching.date_gated import DateGatedFetcher
from .caching.keys import build_cache_key, normalize
from .caching.report_cache import ReportResponseCache
from .caching.response_cache import CachedResponse, ResponseCacheStage
from .caching.stores import CacheStore, create_cache_store
from .caching.ttl_rules import build_rule_engine
from .domain.dates import Clock, parse_date_param, utc_now
from .enrichment.memoizer import EnrichmentMemoizer, Extractor


APOD_PATH = "/planetary/apod"
EPIC_DATE_PATH = "/EPIC/api/natural/date/{date}"
EPIC_AVAILABLE_PATH = "/EPIC/api/natural/available"
DONKI_NOTIFICATIONS_PATH = "/DONKI/notifications"
ROVER_LATEST_PATH = "/mars-photos/api/v1/rovers/{rover}/latest_photos"
INSIGHT_WEATHER_PATH = "/insight_weather/"

DONKI_KEY_PARAMS = ("startDate", "endDate", "type")
ROVER_KEY_PARAMS = ("date",)
INSIGHT_KEY_PARAMS = ("feedtype", "ver", "date")

PASSTHROUGH_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]

# Generic relay entries live apart from the dedicated endpoints' keys
PASSTHROUGH_KEY_PREFIX = "passthrough:"

# Upstream paths with a dedicated handler, tried against the slash-collapsed path
ROUTED_PATHS = (
    (re.compile(r"^/planetary/apod$", re.IGNORECASE), "_apod"),
    (re.compile(r"^/epic/api/natural/date/(?P<date>[^/]+)$", re.IGNORECASE), "_epic_by_date"),
    (re.compile(r"^/epic/api/natural/available$", re.IGNORECASE), "_epic_available"),
    (re.compile(r"^/donki/notifications$", re.IGNORECASE), "_donki_notifications"),
    (re.compile(r"^/mars-photos/api/v1/rovers/(?P<rover>[^/]+)/latest_photos$", re.IGNORECASE), "_rover_latest_photos"),
    (re.compile(r"^/insight_weather$", re.IGNORECASE), "_insight_weather"),
)


class ProxyService(BaseService):
    """Caching proxy in front of the space-data API."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        store: Optional[CacheStore] = None,
        upstream: Optional[UpstreamClient] = None,
        extractor: Optional[Extractor] = None,
        clock: Clock = utc_now,
    ):
        super().__init__("proxy", 8000, config)
        cache_enabled = not self.config.skip_cache

        self.rule_engine = build_rule_engine(self.config)
        self.store = store or create_cache_store(self.config, metrics=self.metrics)
        self.upstream = upstream or UpstreamClient(
            self.config.upstream_base_url,
            self.config.nasa_api_key,
            timeout=self.config.upstream_timeout,
            metrics=self.metrics,
        )
        self.extractor = extractor or ExtractionClient(
            self.config.llm_api_url,
            self.config.llm_api_key,
            self.config.llm_model,
            max_tokens=self.config.llm_max_tokens,
            timeout=self.config.llm_timeout,
        )

        self.response_cache = ResponseCacheStage(
            self.store,
            self.rule_engine,
            enabled=cache_enabled,
            metrics=self.metrics,
        )
        self.date_gated = DateGatedFetcher(
            self.store,
            self.rule_engine,
            future_tz=self.config.future_date_timezone,
            backfill_tz=self.config.backfill_timezone,
            clock=clock,
            enabled=cache_enabled,
            metrics=self.metrics,
        )
        self.memoizer = EnrichmentMemoizer(
            self.store,
            self.extractor,
            ttl_seconds=self.config.enrichment_ttl,
            metrics=self.metrics,
        )
        self.report_cache = ReportResponseCache(
            self.store,
            self.memoizer,
            default_ttl=self.config.donki_cache_ttl,
            min_ttl=self.config.donki_min_cache_ttl,
            lookahead_days=self.config.donki_lookahead_days,
            clock=clock,
            enabled=cache_enabled,
            metrics=self.metrics,
        )
        self.cache_ready = False

        @self.app.on_event("startup")
        async def _startup():
            self.cache_ready = await self.store.start_within(self.config.cache_ready_timeout)
            self.logger.info(
                "Proxy started",
                cache_backend=self.store.backend,
                cache_ready=self.cache_ready,
                skip_cache=self.config.skip_cache,
            )

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.store.stop()
            await self.upstream.close()
            close = getattr(self.extractor, "close", None)
            if close is not None:
                await close()

        self._setup_proxy_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.proxy_service = self

    async def _check_dependencies(self) -> Dict[str, str]:
        """Report store health; a degraded store does not fail the health check."""
        return {"cache": "ok" if await self.store.health_check() else "degraded"}

    def _to_response(self, result: CachedResponse) -> Response:
        """Render a handler or cache result with the cache observability headers."""
        if isinstance(result.body, (bytes, bytearray)):
            response = Response(content=bytes(result.body), status_code=result.status, headers=result.headers)
        else:
            response = JSONResponse(status_code=result.status, content=result.body)

        response.headers["X-Cache"] = result.cache_status
        response.headers["Cache-Control"] = f"private, max-age={result.ttl}" if result.ttl else "no-store"
        return response

    async def _fetch_json(self, upstream_path: str, params: Iterable[Tuple[str, str]]) -> CachedResponse:
        return CachedResponse(status=200, body=await self.upstream.get_json(upstream_path, list(params)))

    async def _apod(self, params: List[Tuple[str, str]]) -> CachedResponse:
        date = dict(params).get("date")
        day = parse_date_param(date)
        return await self.date_gated.fetch(
            build_cache_key(APOD_PATH, {"date": date}, ("date",)),
            APOD_PATH,
            lambda: self.upstream.get_json(APOD_PATH, {"date": date}),
            day,
        )

    async def _epic_by_date(self, params: List[Tuple[str, str]], date: str) -> CachedResponse:
        day = parse_date_param(date)
        path = EPIC_DATE_PATH.format(date=date)
        return await self.date_gated.fetch(
            normalize(path),
            path,
            lambda: self.upstream.get_json(path, params),
            day,
        )

    async def _epic_available(self, params: List[Tuple[str, str]]) -> CachedResponse:
        return await self.response_cache.run(
            "GET",
            normalize(EPIC_AVAILABLE_PATH),
            EPIC_AVAILABLE_PATH,
            lambda: self._fetch_json(EPIC_AVAILABLE_PATH, params),
        )

    async def _donki_notifications(self, params: List[Tuple[str, str]]) -> CachedResponse:
        return await self.report_cache.get_or_fetch(
            build_cache_key(DONKI_NOTIFICATIONS_PATH, dict(params), DONKI_KEY_PARAMS),
            lambda: self.upstream.get_json(DONKI_NOTIFICATIONS_PATH, params),
        )

    async def _rover_latest_photos(self, params: List[Tuple[str, str]], rover: str) -> CachedResponse:
        path = ROVER_LATEST_PATH.format(rover=rover)
        return await self.response_cache.run(
            "GET",
            build_cache_key(path, dict(params), ROVER_KEY_PARAMS),
            path,
            lambda: self._fetch_json(path, params),
        )

    async def _insight_weather(self, params: List[Tuple[str, str]]) -> CachedResponse:
        return await self.response_cache.run(
            "GET",
            build_cache_key(INSIGHT_WEATHER_PATH, dict(params), INSIGHT_KEY_PARAMS),
            INSIGHT_WEATHER_PATH,
            lambda: self._fetch_json(INSIGHT_WEATHER_PATH, params),
        )

    def _resolve_route(self, path: str) -> Optional[Tuple[Callable[..., Awaitable[CachedResponse]], Dict[str, str]]]:
        """Dedicated handler for an upstream path, matched ignoring case and extra slashes."""
        canonical = "/" + "/".join(segment for segment in path.split("/") if segment)
        for pattern, handler_name in ROUTED_PATHS:
            match = pattern.match(canonical)
            if match:
                return getattr(self, handler_name), match.groupdict()
        return None

    def _setup_proxy_routes(self):
        """Set up proxy routes. The catch-all pass-through must be registered last."""

        @self.app.get("/")
        async def root():
            """Service summary."""
            return {
                "service": "proxy",
                "message": "Space Data Proxy",
                "upstream": self.config.upstream_base_url,
                "cache_backend": self.store.backend,
                "skip_cache": self.config.skip_cache,
            }

        @self.app.get("/cache/stats")
        async def cache_stats():
            """Statistics of the active cache store."""
            stats = await self.store.stats()
            return stats.model_dump()

        @self.app.get("/api/planetary/apod")
        async def apod(request: Request):
            """Astronomy picture of the day for a date."""
            return self._to_response(await self._apod(_query_pairs(request)))

        @self.app.get("/api/EPIC/api/natural/date/{date}")
        async def epic_by_date(date: str, request: Request):
            """Earth imagery metadata for a date."""
            return self._to_response(await self._epic_by_date(_query_pairs(request), date))

        @self.app.get("/api/EPIC/api/natural/available")
        async def epic_available(request: Request):
            """Dates with Earth imagery available."""
            return self._to_response(await self._epic_available(_query_pairs(request)))

        @self.app.get("/api/donki/notifications")
        async def donki_notifications(request: Request):
            """Space-weather notifications with structured report extraction."""
            return self._to_response(await self._donki_notifications(_query_pairs(request)))

        @self.app.get("/api/mars-photos/api/v1/rovers/{rover}/latest_photos")
        async def rover_latest_photos(rover: str, request: Request):
            """Latest photos of a rover."""
            return self._to_response(await self._rover_latest_photos(_query_pairs(request), rover))

        @self.app.get("/api/insight_weather")
        async def insight_weather(request: Request):
            """Planetary weather readings."""
            return self._to_response(await self._insight_weather(_query_pairs(request)))

        @self.app.api_route("/api/{path:path}", methods=PASSTHROUGH_METHODS)
        async def passthrough(path: str, request: Request):
            """
            Relay any other upstream path; GET responses are cached per the TTL rules.

            GETs for a dedicated endpoint spelled differently (case, trailing or
            doubled slashes) are served by that endpoint's handler.
            """
            params = _query_pairs(request)
            if request.method == "GET":
                routed = self._resolve_route(path)
                if routed is not None:
                    endpoint, path_params = routed
                    return self._to_response(await endpoint(params, **path_params))

            upstream_path = f"/{path}"
            upstream_url = self.upstream.build_url(upstream_path, params)
            key = PASSTHROUGH_KEY_PREFIX + normalize(f"{upstream_path}?{urlencode(params)}" if params else upstream_path)
            headers = forwardable_headers(request.headers, drop=("host",))
            body = await request.body() if request.method not in ("GET", "HEAD") else None

            async def handler() -> CachedResponse:
                try:
                    upstream_response = await self.upstream.fetch(upstream_url, request.method, headers, body)
                except UpstreamError as exc:
                    return CachedResponse(status=exc.status_code, body=exc.body, headers=exc.headers)
                return CachedResponse(
                    status=upstream_response.status_code,
                    body=upstream_response.content,
                    headers=upstream_response.headers,
                )

            result = await self.response_cache.run(request.method, key, upstream_path, handler)
            return self._to_response(result)


def _query_pairs(request: Request) -> List[Tuple[str, str]]:
    """Inbound query parameters, minus any client-supplied API key."""
    return [(name, value) for name, value in request.query_params.multi_items() if name != "api_key"]


def create_app(config: Optional[ServiceConfig] = None, **collaborators: Any) -> FastAPI:
    """Create FastAPI application."""
    service = ProxyService(config, **collaborators)
    return service.app


if __name__ == "__main__":
    service = ProxyService()
    service.run()
