"""
Cache key normalization.

Two requests that only differ in host case, default port, duplicate or
trailing slashes, or query parameter order map to the same key.
"""

from __future__ import annotations

import re
from typing import Iterable, Mapping, Optional
from urllib.parse import SplitResult, parse_qsl, urlencode, urlsplit


DEFAULT_PORTS = {"http": 80, "https": 443}

_DUPLICATE_SLASHES = re.compile(r"/{2,}")


def normalize(url: str) -> str:
    """
    Turn an absolute URL or a bare ``path?query`` into a canonical cache key.

    - scheme and host are lowercased, path and query values keep their case
    - the default port of the scheme is dropped
    - runs of slashes collapse to one and a trailing slash is stripped
      (the root path becomes the empty path)
    - query parameters are sorted by name and re-encoded (space as ``+``)

    Input the URL parser rejects is returned unchanged. ``None`` is a
    contract violation and raises ``TypeError``.
    """
    if url is None:
        raise TypeError("cache key source must not be None")
    if not isinstance(url, str):
        raise TypeError(f"cache key source must be a string, got {type(url).__name__}")
    if not url:
        return url

    try:
        parts = urlsplit(url)
        if parts.scheme and not parts.netloc:
            # "localhost:8080/x", "mailto:..." and friends are not HTTP URLs
            return url
        origin = _normalize_origin(parts)
    except ValueError:
        return url

    path = _DUPLICATE_SLASHES.sub("/", parts.path)
    if path.endswith("/"):
        path = path[:-1]

    query = _normalize_query(parse_qsl(parts.query, keep_blank_values=True))
    return f"{origin}{path}?{query}" if query else f"{origin}{path}"


def build_cache_key(
    base_path: str,
    params: Optional[Mapping[str, Optional[str]]] = None,
    relevant: Iterable[str] = (),
) -> str:
    """
    Build a key from a base path and the parameters known to affect the response.

    Parameters outside ``relevant`` are ignored even when present, as are
    relevant parameters with empty values.
    """
    params = params or {}
    pairs = []
    for name in relevant:
        value = params.get(name)
        if value:
            pairs.append((name, str(value)))

    query = _normalize_query(pairs)
    return normalize(f"{base_path}?{query}" if query else base_path)


def _normalize_origin(parts: SplitResult) -> str:
    if not parts.netloc:
        return ""

    host = parts.hostname or ""
    if ":" in host:
        host = f"[{host}]"

    userinfo = ""
    if "@" in parts.netloc:
        userinfo = parts.netloc.rpartition("@")[0] + "@"

    # .port raises ValueError for out-of-range or non-numeric ports
    port = parts.port
    scheme = parts.scheme.lower()
    netloc = f"{userinfo}{host}"
    if port is not None and port != DEFAULT_PORTS.get(scheme):
        netloc = f"{netloc}:{port}"

    return f"{scheme}://{netloc}" if scheme else f"//{netloc}"


def _normalize_query(pairs: list) -> str:
    # Stable sort keeps repeated parameters in their original order
    return urlencode(sorted(pairs, key=lambda pair: pair[0]))
