"""HTTP client construction for the HIRO client."""

from __future__ import annotations

import ssl
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from .config import HiroConfig, TransportConfig


def _verify(transport: TransportConfig) -> ssl.SSLContext | bool:
    if transport.ssl_context is not None:
        return transport.ssl_context
    return not transport.accept_all_certs


def create_http_client(config: HiroConfig) -> httpx.Client:
    """Create configured sync HTTP client.

    Args:
        config: Client configuration.

    Returns:
        The externally supplied client when one is configured, else a new
        httpx.Client built from the transport settings.
    """
    transport = config.transport
    if transport.http_client is not None:
        return transport.http_client

    return httpx.Client(
        timeout=httpx.Timeout(
            connect=transport.connect_timeout,
            read=config.http_request_timeout,
            write=config.http_request_timeout,
            pool=config.http_request_timeout,
        ),
        limits=httpx.Limits(
            max_connections=transport.max_connection_pool,
            max_keepalive_connections=transport.max_connection_pool,
        ),
        headers={
            "User-Agent": config.user_agent,
            "Accept": "application/json",
        },
        proxy=transport.proxy,
        verify=_verify(transport),
        follow_redirects=transport.follow_redirects,
    )


def owns_http_client(config: HiroConfig) -> bool:
    """Whether a client built from ``config`` must be closed by the library."""
    return config.transport.http_client is None


def websocket_ssl_context(config: HiroConfig) -> ssl.SSLContext | None:
    """SSL context for WebSocket handshakes.

    Mirrors the trust settings of the HTTP transport; ``None`` keeps the
    library default.
    """
    transport = config.transport
    if transport.ssl_context is not None:
        return transport.ssl_context
    if not transport.accept_all_certs:
        return None
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context
