"""Error classes for the HIRO client.

Structured error hierarchy with error codes and correlation IDs. Each
class names the stage that failed (token, discovery, transport, remote
rejection, WebSocket session) so callers can decide whether to abort,
ask for new credentials or retry at a higher level.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    """Standardized error codes for the HIRO client."""

    # Authentication errors (1xxx)
    AUTH_FAILED = "AUTH_1001"
    FIXED_TOKEN = "AUTH_1002"
    TOKEN_UNAUTHORIZED = "AUTH_1003"

    # Discovery errors (2xxx)
    DISCOVERY_FAILED = "DISC_2001"
    UNKNOWN_API = "DISC_2002"

    # Transport errors (3xxx)
    TRANSPORT_ERROR = "NET_3001"

    # Remote rejection (4xxx)
    REQUEST_REJECTED = "REQ_4001"

    # WebSocket session errors (5xxx)
    WEBSOCKET_ERROR = "WS_5001"
    SESSION_STATE = "WS_5002"
    CONNECTION_FAILED = "WS_5003"
    CANCELLED = "WS_5004"

    # Configuration errors (6xxx)
    INVALID_CONFIG = "CFG_6001"


class HiroClientError(Exception):
    """Base error for the HIRO client with structured error information."""

    def __init__(
        self,
        message: str,
        code: ErrorCode | str,
        *,
        status_code: int | None = None,
        correlation_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code if isinstance(code, str) else code.value
        self.status_code = status_code
        self.correlation_id = correlation_id
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            "error": self.message,
            "code": self.code,
            "status_code": self.status_code,
            "correlation_id": self.correlation_id,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


class AuthError(HiroClientError):
    """No usable token could be obtained or refreshed."""

    def __init__(
        self,
        message: str = "Cannot obtain a token",
        code: ErrorCode = ErrorCode.AUTH_FAILED,
        *,
        status_code: int | None = None,
        correlation_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            code,
            status_code=status_code,
            correlation_id=correlation_id,
            details=details,
        )


class FixedTokenError(AuthError):
    """Refresh or revoke was requested on a token that cannot change."""

    def __init__(self, message: str = "Cannot change a fixed token.") -> None:
        super().__init__(message, ErrorCode.FIXED_TOKEN)


class TokenUnauthorizedError(AuthError):
    """The remote rejected the bearer token (401)."""

    def __init__(
        self,
        message: str = "Token is unauthorized",
        *,
        correlation_id: str | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(
            message,
            ErrorCode.TOKEN_UNAUTHORIZED,
            status_code=401,
            correlation_id=correlation_id,
            details={"body": body} if body else None,
        )
        self.body = body


class DiscoveryError(HiroClientError):
    """The discovery call itself failed."""

    def __init__(
        self,
        message: str = "Discovery request failed",
        *,
        status_code: int | None = None,
        correlation_id: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            message,
            ErrorCode.DISCOVERY_FAILED,
            status_code=status_code,
            correlation_id=correlation_id,
            details={"cause": str(cause)} if cause else None,
        )
        self.__cause__ = cause


class UnknownApiError(HiroClientError):
    """Discovery succeeded but the API name is absent from the map."""

    def __init__(self, api_name: str) -> None:
        super().__init__(
            f"No api '{api_name}' found in versions.",
            ErrorCode.UNKNOWN_API,
            details={"api_name": api_name},
        )
        self.api_name = api_name


class TransportError(HiroClientError):
    """Network-level failure after retries were exhausted."""

    def __init__(
        self,
        message: str = "Transport failure",
        *,
        status_code: int | None = None,
        correlation_id: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            message,
            ErrorCode.TRANSPORT_ERROR,
            status_code=status_code,
            correlation_id=correlation_id,
            details={"cause": str(cause)} if cause else None,
        )
        self.__cause__ = cause


class RequestError(HiroClientError):
    """The remote rejected the request with a terminal status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        body: str | None = None,
        correlation_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            ErrorCode.REQUEST_REJECTED,
            status_code=status_code,
            correlation_id=correlation_id,
            details=details,
        )
        self.body = body


class WebSocketError(HiroClientError):
    """WebSocket session failure."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.WEBSOCKET_ERROR,
        *,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, status_code=status_code, details=details)


class SessionStateError(WebSocketError):
    """The session is in a state that does not allow the operation."""

    def __init__(self, message: str, *, state: str) -> None:
        super().__init__(
            f"{message} (state: {state})",
            ErrorCode.SESSION_STATE,
            details={"state": state},
        )
        self.state = state


class ConnectionError(WebSocketError):
    """The WebSocket handshake could not be completed."""

    def __init__(
        self,
        message: str = "Cannot create webSocket",
        *,
        uri: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if uri:
            details["uri"] = uri
        if cause:
            details["cause"] = str(cause)
        super().__init__(message, ErrorCode.CONNECTION_FAILED, details=details)
        self.__cause__ = cause


class CancelledError(WebSocketError):
    """A blocking session call was aborted by a cancellation signal."""

    def __init__(self, message: str = "Operation cancelled") -> None:
        super().__init__(message, ErrorCode.CANCELLED)


class InvalidConfigError(HiroClientError):
    """Invalid client configuration."""

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
    ) -> None:
        super().__init__(
            message,
            ErrorCode.INVALID_CONFIG,
            details={"field": field} if field else None,
        )
