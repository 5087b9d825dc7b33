"""Centralized HTTP executor for the HIRO client.

Sends one logical request and retries transient transport failures a
bounded number of times. Statuses other than the transient gateway ones
are returned to the caller for classification.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import httpx

from ..errors import TransportError
from ..telemetry import get_logger, trace_operation
from .errors import TRANSIENT_EXCEPTIONS, TRANSIENT_STATUSES, ErrorFactory

if TYPE_CHECKING:
    import structlog

    from ..config import RetryConfig
    from ..telemetry import HttpLogger


def calculate_retry_delay(retry_config: RetryConfig, attempt: int) -> float:
    """Calculate retry delay with exponential backoff.

    Args:
        retry_config: Retry configuration.
        attempt: Current attempt number (0-indexed).

    Returns:
        Delay in seconds.
    """
    return retry_config.get_delay(attempt)


def is_transient_status(status_code: int) -> bool:
    """Check if status code should trigger a transport retry.

    Args:
        status_code: HTTP status code.

    Returns:
        True for gateway failures (502, 503, 504).
    """
    return status_code in TRANSIENT_STATUSES


class HTTPExecutor:
    """Synchronous HTTP executor with bounded transport retries."""

    def __init__(
        self,
        client: httpx.Client,
        retry_config: RetryConfig,
        *,
        http_logger: HttpLogger | None = None,
        sleep_fn: Callable[[float], None] = time.sleep,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        """Initialize HTTP executor.

        Args:
            client: HTTP client.
            retry_config: Retry configuration.
            http_logger: Optional exchange logger.
            sleep_fn: Sleep used between retries.
            logger: Optional bound logger.
        """
        self._client = client
        self._retry_config = retry_config
        self._http_logger = http_logger
        self._sleep = sleep_fn
        self._logger = logger or get_logger().bind(component="http_executor")

    @property
    def client(self) -> httpx.Client:
        return self._client

    @property
    def retry_config(self) -> RetryConfig:
        return self._retry_config

    def execute(
        self,
        method: str,
        url: str,
        *,
        content_factory: Callable[[], Any] | None = None,
        max_retries: int | None = None,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Execute HTTP request with retry logic.

        Args:
            method: HTTP method.
            url: Request URL.
            content_factory: Produces the body anew for every attempt.
            max_retries: Overrides the configured retry count.
            timeout: Per-request timeout in seconds.
            **kwargs: Additional ``httpx.Client.build_request`` arguments.

        Returns:
            The first response that is not a transient gateway failure.

        Raises:
            TransportError: When every attempt failed at the transport level.
        """
        retries = self._retry_config.max_retries if max_retries is None else max_retries
        if timeout is not None:
            kwargs["timeout"] = timeout
        last_error: TransportError | None = None

        for attempt in range(retries + 1):
            if attempt:
                delay = calculate_retry_delay(self._retry_config, attempt - 1)
                self._log_retry(method, url, attempt, delay, last_error)
                self._sleep(delay)

            request_kwargs = dict(kwargs)
            if content_factory is not None:
                request_kwargs["content"] = content_factory()

            try:
                response = self._execute_single(method, url, attempt, **request_kwargs)
            except TRANSIENT_EXCEPTIONS as e:
                last_error = ErrorFactory.from_exception(e)  # type: ignore[assignment]
                continue
            except httpx.HTTPError as e:
                raise ErrorFactory.from_exception(e) from e

            if is_transient_status(response.status_code):
                last_error = ErrorFactory.from_http_response(response)  # type: ignore[assignment]
                continue

            return response

        self._logger.warning(
            "Request failed after retries",
            method=method,
            url=url,
            attempts=retries + 1,
            error=str(last_error),
        )
        raise last_error or TransportError("Request failed after retries")

    def _execute_single(
        self,
        method: str,
        url: str,
        attempt: int,
        **kwargs: Any,
    ) -> httpx.Response:
        with trace_operation(
            "http_request",
            attributes={"http.method": method, "http.url": url, "attempt": attempt},
        ) as span:
            request = self._client.build_request(method, url, **kwargs)
            if self._http_logger is not None:
                self._http_logger.log_request(request)
            response = self._client.send(request)
            response.read()
            if self._http_logger is not None:
                self._http_logger.log_response(response)
            span.set_attribute("http.status_code", response.status_code)
            return response

    def _log_retry(
        self,
        method: str,
        url: str,
        attempt: int,
        delay: float,
        error: Exception | None,
    ) -> None:
        """Log retry attempt."""
        self._logger.warning(
            "Transient failure, retrying",
            method=method,
            url=url,
            attempt=attempt,
            delay=delay,
            error=str(error) if error else None,
        )
