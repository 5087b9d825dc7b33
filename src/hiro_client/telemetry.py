"""OpenTelemetry and structlog integration for the HIRO client.

Provides tracing spans, structured logging, and the HTTP exchange logger
that masks credentials.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import httpx
import structlog
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

if TYPE_CHECKING:
    from collections.abc import Generator, Mapping

    from .config import TelemetryConfig

# Module-level tracer and logger
_tracer: trace.Tracer | None = None
_logger: structlog.BoundLogger | None = None


def get_tracer() -> trace.Tracer:
    """Get or create the client tracer."""
    global _tracer
    if _tracer is None:
        _tracer = trace.get_tracer("hiro-client")
    return _tracer


def get_logger() -> structlog.BoundLogger:
    """Get or create the client logger."""
    global _logger
    if _logger is None:
        _logger = structlog.get_logger("hiro-client")
    return _logger


def configure_telemetry(config: TelemetryConfig) -> None:
    """Configure process-wide structlog and tracing from config.

    Applications opt in by calling this; clients never call it.

    Args:
        config: Telemetry configuration.
    """
    global _tracer, _logger

    if not config.enabled:
        _tracer = trace.NoOpTracer()
        return

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            _log_level_to_int(config.log_level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _tracer = trace.get_tracer(config.service_name)
    _logger = structlog.get_logger(config.service_name)


def _log_level_to_int(level: str) -> int:
    """Convert log level string to integer."""
    levels = {
        "DEBUG": 10,
        "INFO": 20,
        "WARNING": 30,
        "ERROR": 40,
        "CRITICAL": 50,
    }
    return levels.get(level.upper(), 20)


@contextmanager
def trace_operation(
    name: str,
    *,
    attributes: dict[str, Any] | None = None,
) -> Generator[trace.Span, None, None]:
    """Context manager for tracing an operation.

    Args:
        name: Name of the operation.
        attributes: Optional span attributes.

    Yields:
        The active span.
    """
    tracer = get_tracer()
    with tracer.start_as_current_span(name) as span:
        if attributes:
            for key, value in attributes.items():
                if value is not None:
                    span.set_attribute(key, value)
        try:
            yield span
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.record_exception(e)
            raise


SENSITIVE_HEADERS = frozenset({"authorization", "cookie", "set-cookie"})


def mask_value(value: str) -> str:
    """Shorten a credential so it can be logged."""
    if len(value) <= 12:
        return "<hidden>"
    return f"{value[:9]}...{value[-3:]} (len: {len(value)})"


def mask_headers(headers: Mapping[str, str] | httpx.Headers) -> dict[str, str]:
    items = headers.multi_items() if isinstance(headers, httpx.Headers) else headers.items()
    return {
        name: mask_value(value) if name.lower() in SENSITIVE_HEADERS else value
        for name, value in items
    }


class HttpLogger:
    """Debug logger for HTTP exchanges.

    Sensitive header values are masked. Bodies of requests whose path
    starts with a registered prefix (the token endpoints) are never logged.
    """

    def __init__(
        self,
        *,
        logger: structlog.BoundLogger | None = None,
        log_bodies: bool = True,
    ) -> None:
        self._logger = logger or get_logger().bind(component="http")
        self._log_bodies = log_bodies
        self._filtered: set[str] = set()
        self._lock = threading.Lock()

    def add_filter(self, uri: str) -> None:
        """Hide bodies for every request below ``uri``."""
        path = httpx.URL(uri).path.rstrip("/") or "/"
        with self._lock:
            self._filtered.add(path)

    def is_filtered(self, url: httpx.URL) -> bool:
        with self._lock:
            prefixes = tuple(self._filtered)
        return any(url.path.startswith(prefix) for prefix in prefixes)

    def log_request(self, request: httpx.Request) -> None:
        event: dict[str, Any] = {
            "method": request.method,
            "url": str(request.url),
            "headers": mask_headers(request.headers),
        }
        body = self._body(request.url, lambda: request.content)
        if body is not None:
            event["body"] = body
        self._logger.debug("http_request", **event)

    def log_response(self, response: httpx.Response) -> None:
        event: dict[str, Any] = {
            "status_code": response.status_code,
            "url": str(response.request.url),
            "headers": mask_headers(response.headers),
        }
        body = self._body(response.request.url, lambda: response.content)
        if body is not None:
            event["body"] = body
        self._logger.debug("http_response", **event)

    def _body(self, url: httpx.URL, read: Any) -> str | None:
        if not self._log_bodies:
            return None
        if self.is_filtered(url):
            return "<hidden>"
        try:
            content = read()
        except (httpx.RequestNotRead, httpx.ResponseNotRead):
            return "<stream>"
        if not content:
            return None
        return content.decode("utf-8", errors="replace")
