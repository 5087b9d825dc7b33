"""HIRO Python client."""

__version__ = "0.1.0"

from .client import HiroClient
from .config import (
    CodeFlowTokenSource,
    EnvironmentTokenSource,
    FixedTokenSource,
    HiroConfig,
    PasswordTokenSource,
    RetryConfig,
    TransportConfig,
    WebSocketConfig,
)
from .discovery import EndpointResolver
from .errors import (
    AuthError,
    CancelledError,
    ConnectionError,
    DiscoveryError,
    FixedTokenError,
    HiroClientError,
    InvalidConfigError,
    RequestError,
    SessionStateError,
    TokenUnauthorizedError,
    TransportError,
    UnknownApiError,
    WebSocketError,
)
from .executor import AuthenticatedRequestExecutor
from .models import TokenData, VersionEntry, VersionResponse
from .tokens import (
    CodeFlowTokenProvider,
    EnvironmentTokenProvider,
    FixedTokenProvider,
    PasswordTokenProvider,
    TokenKind,
    TokenProvider,
    create_token_provider,
)
from .types import RequestSpec
from .websocket import SessionState, WebSocketListener, WebSocketSession

__all__ = [
    "AuthError",
    "AuthenticatedRequestExecutor",
    "CancelledError",
    "CodeFlowTokenProvider",
    "CodeFlowTokenSource",
    "ConnectionError",
    "DiscoveryError",
    "EndpointResolver",
    "EnvironmentTokenProvider",
    "EnvironmentTokenSource",
    "FixedTokenError",
    "FixedTokenProvider",
    "FixedTokenSource",
    "HiroClient",
    "HiroClientError",
    "HiroConfig",
    "InvalidConfigError",
    "PasswordTokenProvider",
    "PasswordTokenSource",
    "RequestError",
    "RequestSpec",
    "RetryConfig",
    "SessionState",
    "SessionStateError",
    "TokenData",
    "TokenKind",
    "TokenProvider",
    "TokenUnauthorizedError",
    "TransportConfig",
    "TransportError",
    "UnknownApiError",
    "VersionEntry",
    "VersionResponse",
    "WebSocketConfig",
    "WebSocketError",
    "WebSocketListener",
    "WebSocketSession",
    "create_token_provider",
]
