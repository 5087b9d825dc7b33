"""Core components for the HIRO client.

Infrastructure shared by the token providers, the endpoint resolver, the
request executor and the WebSocket session.
"""

from __future__ import annotations

from .backoff import next_reconnect_delay
from .errors import ErrorFactory
from .http_executor import HTTPExecutor, calculate_retry_delay, is_transient_status
from .token_ops import TokenOperations
from .uri_builder import add_query_and_fragment, build_uri, join_path, to_websocket_uri

__all__ = [
    "ErrorFactory",
    "HTTPExecutor",
    "TokenOperations",
    "add_query_and_fragment",
    "build_uri",
    "calculate_retry_delay",
    "is_transient_status",
    "join_path",
    "next_reconnect_delay",
    "to_websocket_uri",
]
