"""
Shared error handling for the Space Data Proxy.
"""

from typing import Dict, Any, Mapping, Optional
from pydantic import BaseModel

from opentelemetry import trace


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class ProxyException(Exception):
    """Base exception for proxy services."""

    status_code: int = 500

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        trace_id = None
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            if span_context.trace_id != 0:
                trace_id = f"{span_context.trace_id:032x}"

        return ErrorResponse(
            trace_id=trace_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(ProxyException):
    """Request validation errors. Never reaches the network or the cache."""

    status_code = 422

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class FutureDateError(ValidationError):
    """The requested date has not started anywhere on Earth yet."""

    def __init__(
        self,
        date: str,
        message: str = "The requested date is in the future (it has not started anywhere on Earth yet).",
    ):
        super().__init__(message, {"date": date})
        self.code = "FUTURE_DATE"
        self.date = date


class ExternalServiceError(ProxyException):
    """External service errors."""

    status_code = 502

    def __init__(
        self,
        service: str,
        message: str = "External service error",
        details: Optional[Dict[str, Any]] = None,
        code: str = "EXTERNAL_SERVICE_ERROR",
    ):
        super().__init__(code, f"{service}: {message}", details)
        self.service = service


class UpstreamError(ExternalServiceError):
    """The upstream API answered with an error status."""

    def __init__(
        self,
        status: int,
        body: bytes = b"",
        headers: Optional[Mapping[str, str]] = None,
        url: Optional[str] = None,
    ):
        super().__init__(
            "upstream",
            f"Unexpected status {status}",
            {"status_code": status, "url": url},
            code="UPSTREAM_ERROR",
        )
        self.status_code = status
        self.body = body
        self.headers = dict(headers or {})

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


class UpstreamUnavailableError(ExternalServiceError):
    """The upstream API could not be reached (network failure, timeout)."""

    status_code = 500

    def __init__(self, message: str = "Error proxying request to upstream API", details: Optional[Dict[str, Any]] = None):
        super().__init__("upstream", message, details, code="UPSTREAM_UNAVAILABLE")


class ExtractionError(ExternalServiceError):
    """The text extraction backend failed or returned nothing usable."""

    def __init__(self, message: str = "Extraction failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("extraction", message, details, code="EXTRACTION_ERROR")


class CacheStoreError(ProxyException):
    """The cache store backend could not be started."""

    status_code = 503

    def __init__(self, message: str = "Cache store unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("CACHE_STORE_ERROR", message, details)
