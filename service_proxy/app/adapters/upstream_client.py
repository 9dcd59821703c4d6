"""
Upstream space-data API client.
"""

from __future__ import annotations

import json
import re
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Iterable, Mapping, Optional, Tuple, Union
from urllib.parse import urlencode

import httpx

from shared.errors import ExternalServiceError, UpstreamError, UpstreamUnavailableError
from shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


# Headers that describe a single transport hop and must not be relayed
HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
})

# httpx decodes bodies, so length and encoding no longer match what is relayed
_BODY_FRAMING_HEADERS = frozenset({"content-length", "content-encoding"})

_API_KEY_VALUE = re.compile(r"(api_key=)[^&]*")

QueryParams = Union[Mapping[str, Any], Iterable[Tuple[str, Any]], None]


def redact_url(url: str) -> str:
    return _API_KEY_VALUE.sub(r"\1***", url)


def forwardable_headers(headers: Mapping[str, str], *, drop: Iterable[str] = ()) -> Dict[str, str]:
    """Copy headers minus hop-by-hop, body framing, and any extra names in ``drop``."""
    excluded = HOP_BY_HOP_HEADERS | _BODY_FRAMING_HEADERS | {name.lower() for name in drop}
    return {name: value for name, value in headers.items() if name.lower() not in excluded}


@dataclass(frozen=True)
class UpstreamResponse:
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    content: bytes = b""

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.content)


class UpstreamClient:
    """Fetches resources from the upstream API, adding the API key to every call."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 30.0,
        metrics: Optional["MetricsCollector"] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.metrics = metrics
        self.logger = get_logger("proxy.upstream")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    def build_url(self, path: str, params: QueryParams = None) -> str:
        """Absolute upstream URL for ``path`` with ``api_key`` replacing any client-supplied key."""
        if isinstance(params, Mapping):
            pairs = list(params.items())
        else:
            pairs = list(params or [])

        pairs = [(name, value) for name, value in pairs if name != "api_key" and value is not None]
        pairs.append(("api_key", self.api_key))
        return f"{self.base_url}/{path.lstrip('/')}?{urlencode(pairs)}"

    async def fetch(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[Mapping[str, str]] = None,
        body: Optional[bytes] = None,
    ) -> UpstreamResponse:
        """
        Perform a single upstream request.

        Raises UpstreamError for responses with status >= 400 and
        UpstreamUnavailableError when no response was received.
        """
        safe_url = redact_url(url)
        self.logger.info("Upstream request", method=method, url=safe_url)
        start_time = time.time()

        try:
            response = await self._client.request(method, url, headers=headers, content=body)
        except httpx.HTTPError as exc:
            self._record("error", start_time)
            self.logger.error("Upstream request failed", method=method, url=safe_url, error=str(exc))
            raise UpstreamUnavailableError(details={"url": safe_url, "error": str(exc)})

        self._record(f"{response.status_code // 100}xx", start_time)
        relayed = forwardable_headers(response.headers)

        if response.status_code >= 400:
            self.logger.warning(
                "Upstream returned error status",
                url=safe_url,
                status_code=response.status_code,
            )
            raise UpstreamError(response.status_code, response.content, relayed, safe_url)

        return UpstreamResponse(response.status_code, relayed, response.content)

    async def get_json(self, path: str, params: QueryParams = None) -> Any:
        """GET ``path`` and decode the JSON body."""
        response = await self.fetch(self.build_url(path, params))
        try:
            return response.json()
        except ValueError:
            raise ExternalServiceError(
                service="upstream",
                message="Upstream returned a non-JSON body",
                details={"path": path},
            )

    async def close(self):
        if self._owns_client:
            await self._client.aclose()

    def _record(self, status_class: str, start_time: float) -> None:
        if self.metrics:
            self.metrics.increment_counter("upstream_requests_total", status_class=status_class)
            self.metrics.observe_histogram(
                "upstream_request_duration_seconds",
                time.time() - start_time,
            )
