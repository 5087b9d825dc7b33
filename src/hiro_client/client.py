"""HIRO client facade.

Wires transport, endpoint discovery and the token provider together and
hands out request executors and WebSocket sessions that share them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Self

from .config import APIHandlerConfig, HiroConfig, WebSocketConfig
from .core.http_executor import HTTPExecutor
from .discovery import EndpointResolver
from .errors import InvalidConfigError
from .executor import AuthenticatedRequestExecutor
from .http import create_http_client, owns_http_client, websocket_ssl_context
from .telemetry import HttpLogger, get_logger
from .tokens import TokenProvider, create_token_provider
from .websocket import WebSocketListener, WebSocketSession

if TYPE_CHECKING:
    import httpx
    import structlog


class HiroClient:
    """Synchronous HIRO client.

    With ``shared=`` the client reuses the transport and the endpoint map of
    another client; the other client keeps owning both.
    """

    def __init__(
        self,
        config: HiroConfig,
        *,
        token_provider: TokenProvider | None = None,
        shared: HiroClient | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.config = config
        self._logger = logger or get_logger().bind(component="client")
        self._sessions: list[WebSocketSession] = []

        if shared is not None:
            self._http_client: httpx.Client = shared.http_client
            self._owns_client = False
            self.http_logger = shared.http_logger
        else:
            self._http_client = create_http_client(config)
            self._owns_client = owns_http_client(config)
            self.http_logger = HttpLogger(
                logger=self._logger.bind(component="http"),
                log_bodies=config.telemetry.log_bodies,
            )

        self.http = HTTPExecutor(
            self._http_client,
            config.retry,
            http_logger=self.http_logger,
            logger=self._logger.bind(component="http_executor"),
        )
        self.resolver = EndpointResolver(
            config.root_url_str,
            self.http,
            user_agent=config.user_agent,
            overrides=config.endpoints,
            shared=shared.resolver if shared is not None else None,
            logger=self._logger.bind(component="discovery"),
        )

        if token_provider is None:
            if config.token is None:
                raise InvalidConfigError(
                    "Either a token source or a token provider is required",
                    field="token",
                )
            token_provider = create_token_provider(
                config.token,
                resolver=self.resolver,
                http=self.http,
                http_logger=self.http_logger,
                timeout=config.http_request_timeout,
                logger=self._logger.bind(component="token"),
            )
        self.token_provider = token_provider

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    @property
    def http_client(self) -> httpx.Client:
        return self._http_client

    def close(self) -> None:
        """Close sessions and the HTTP client this instance owns."""
        for session in self._sessions:
            session.close()
        self._sessions.clear()
        if self._owns_client:
            self._http_client.close()

    def api(
        self,
        api_name: str | None = None,
        *,
        endpoint: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
    ) -> AuthenticatedRequestExecutor:
        """Request executor for one API.

        Args:
            api_name: Name in the discovery document.
            endpoint: Explicit endpoint, bypassing discovery.
            timeout: Request timeout, defaults to the client's.
            max_retries: Transport retries, defaults to the client's.
        """
        handler = APIHandlerConfig(
            api_name=api_name,
            endpoint=endpoint,
            http_request_timeout=timeout,
            max_retries=max_retries,
        )
        return AuthenticatedRequestExecutor(
            self.resolver,
            self.token_provider,
            self.http,
            api_name=handler.api_name,
            endpoint=handler.endpoint,
            user_agent=self.config.user_agent,
            timeout=handler.http_request_timeout or self.config.http_request_timeout,
            max_retries=handler.max_retries,
            logger=self._logger.bind(component="executor"),
        )

    def websocket(
        self,
        config: WebSocketConfig,
        listener: WebSocketListener | None = None,
        **kwargs: Any,
    ) -> WebSocketSession:
        """Create a WebSocket session; call ``connect_or_reuse`` to open it."""
        session = WebSocketSession(
            config,
            resolver=self.resolver,
            token_provider=self.token_provider,
            listener=listener,
            user_agent=self.config.user_agent,
            ssl_context=websocket_ssl_context(self.config),
            logger=self._logger.bind(component="websocket", name=config.name),
            **kwargs,
        )
        self._sessions.append(session)
        return session
