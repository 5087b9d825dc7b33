"""Centralized error factory for the HIRO client.

Maps HTTP responses and transport exceptions onto the client's error
hierarchy and parses the HIRO error body format.
"""

from __future__ import annotations

import json
import uuid
from typing import Any

import httpx

from ..errors import (
    AuthError,
    DiscoveryError,
    HiroClientError,
    RequestError,
    TokenUnauthorizedError,
    TransportError,
)

TRANSIENT_STATUSES = frozenset({502, 503, 504})

TRANSIENT_EXCEPTIONS: tuple[type[Exception], ...] = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
)


class ErrorFactory:
    """Centralized error creation with consistent structure.

    All errors created through this factory include:
    - Standardized error codes
    - Correlation IDs for tracing
    - The parsed HIRO error message where the body carries one
    """

    @staticmethod
    def generate_correlation_id() -> str:
        """Generate a unique correlation ID."""
        return str(uuid.uuid4())

    @staticmethod
    def parse_error_body(text: str | None) -> tuple[str | None, int | None]:
        """Extract ``(message, code)`` from a HIRO error body.

        Accepts ``{"error": {"message": ..., "code": ...}}`` and
        ``{"error": "<text>"}``. Anything else yields ``(None, None)``.
        """
        if not text:
            return None, None
        try:
            body = json.loads(text)
        except ValueError:
            return None, None
        if not isinstance(body, dict):
            return None, None

        error = body.get("error")
        if isinstance(error, str):
            return error, None
        if isinstance(error, dict):
            message = error.get("message")
            code = error.get("code")
            if isinstance(code, str) and code.isdigit():
                code = int(code)
            return (
                message if isinstance(message, str) else None,
                code if isinstance(code, int) else None,
            )
        return None, None

    @staticmethod
    def is_unauthorized(response: httpx.Response) -> bool:
        """401 by status, or by the code inside a HIRO error body."""
        if response.status_code == 401:
            return True
        if response.is_success:
            return False
        _, code = ErrorFactory.parse_error_body(response.text)
        return code == 401

    @staticmethod
    def from_http_response(
        response: httpx.Response,
        *,
        correlation_id: str | None = None,
    ) -> HiroClientError:
        """Create client error from a non-2xx HTTP response.

        Args:
            response: HTTP response object.
            correlation_id: Optional correlation ID for tracing.

        Returns:
            TokenUnauthorizedError for 401, TransportError for transient
            gateway statuses, RequestError for everything else.
        """
        status = response.status_code
        correlation_id = correlation_id or ErrorFactory.generate_correlation_id()
        text = response.text
        message, code = ErrorFactory.parse_error_body(text)

        if status == 401 or code == 401:
            return TokenUnauthorizedError(
                message or "Token is unauthorized",
                correlation_id=correlation_id,
                body=text,
            )

        if status in TRANSIENT_STATUSES:
            return TransportError(
                message or f"Server unavailable: {status}",
                status_code=status,
                correlation_id=correlation_id,
            )

        details: dict[str, Any] = {"url": str(response.request.url)}
        if code is not None:
            details["error_code"] = code
        return RequestError(
            message or f"Request failed with status {status}",
            status_code=status,
            body=text,
            correlation_id=correlation_id,
            details=details,
        )

    @staticmethod
    def from_exception(
        exc: Exception,
        *,
        correlation_id: str | None = None,
    ) -> HiroClientError:
        """Create client error from exception.

        Args:
            exc: Original exception.
            correlation_id: Optional correlation ID for tracing.

        Returns:
            Appropriate HiroClientError subclass.
        """
        correlation_id = correlation_id or ErrorFactory.generate_correlation_id()

        if isinstance(exc, HiroClientError):
            if exc.correlation_id is None:
                exc.correlation_id = correlation_id
            return exc

        if isinstance(exc, httpx.TimeoutException):
            return TransportError(
                f"Request timed out: {exc}",
                correlation_id=correlation_id,
                cause=exc,
            )

        if isinstance(exc, httpx.ConnectError):
            return TransportError(
                f"Connection failed: {exc}",
                correlation_id=correlation_id,
                cause=exc,
            )

        if isinstance(exc, httpx.HTTPError):
            return TransportError(
                f"HTTP error: {exc}",
                correlation_id=correlation_id,
                cause=exc,
            )

        return TransportError(
            f"Unexpected error: {exc}",
            correlation_id=correlation_id,
            cause=exc,
        )

    @staticmethod
    def auth_error(
        response: httpx.Response,
        *,
        operation: str,
    ) -> AuthError:
        """Create an AuthError for a rejected token call."""
        message, _ = ErrorFactory.parse_error_body(response.text)
        return AuthError(
            f"{operation} failed: {message or response.reason_phrase or response.status_code}",
            status_code=response.status_code,
            correlation_id=ErrorFactory.generate_correlation_id(),
            details={"operation": operation},
        )

    @staticmethod
    def discovery_error(
        *,
        response: httpx.Response | None = None,
        cause: Exception | None = None,
    ) -> DiscoveryError:
        """Create a DiscoveryError from a failed response or exception."""
        correlation_id = ErrorFactory.generate_correlation_id()
        if response is not None:
            message, _ = ErrorFactory.parse_error_body(response.text)
            return DiscoveryError(
                f"Discovery failed with status {response.status_code}"
                + (f": {message}" if message else ""),
                status_code=response.status_code,
                correlation_id=correlation_id,
            )
        status_code = getattr(cause, "status_code", None)
        return DiscoveryError(
            f"Discovery failed: {cause}",
            status_code=status_code,
            correlation_id=correlation_id,
            cause=cause,
        )
