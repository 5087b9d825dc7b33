"""Authenticated request execution for the HIRO client."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import httpx

from .core.errors import ErrorFactory
from .core.uri_builder import build_uri
from .errors import FixedTokenError, InvalidConfigError, RequestError
from .telemetry import get_logger, trace_operation
from .types import Content, RequestSpec, RetryContext

if TYPE_CHECKING:
    import structlog

    from .core.http_executor import HTTPExecutor
    from .discovery import EndpointResolver
    from .tokens import TokenProvider

JSON_CONTENT_TYPE = "application/json"


class AuthenticatedRequestExecutor:
    """Sends requests to one API with a bearer token.

    A 401 leads to exactly one token refresh and one repeated request per
    logical call. Transient transport failures are retried by the
    underlying ``HTTPExecutor``.
    """

    def __init__(
        self,
        resolver: EndpointResolver,
        token_provider: TokenProvider,
        http: HTTPExecutor,
        *,
        api_name: str | None = None,
        endpoint: str | None = None,
        user_agent: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        if not api_name and not endpoint:
            msg = "Either api_name or endpoint is required"
            raise ValueError(msg)
        self._resolver = resolver
        self._tokens = token_provider
        self._http = http
        self.api_name = api_name
        self._endpoint = endpoint
        self._user_agent = user_agent
        self._timeout = timeout
        self._max_retries = max_retries
        self._logger = logger or get_logger().bind(
            component="executor", api=api_name or endpoint
        )

    @property
    def token_provider(self) -> TokenProvider:
        return self._tokens

    def endpoint_uri(self) -> str:
        """Base URI of the API: the override, else the discovered endpoint."""
        if self._endpoint:
            return self._endpoint.rstrip("/")
        if not self.api_name:
            raise InvalidConfigError("Either api_name or endpoint is required", field="api_name")
        return self._resolver.resolve(self.api_name)

    def build_uri(self, spec: RequestSpec) -> str:
        if spec.uri:
            return build_uri(spec.uri, None, spec.query, spec.fragment)
        return build_uri(self.endpoint_uri(), spec.path, spec.query, spec.fragment)

    def build_headers(self, spec: RequestSpec, token: str) -> httpx.Headers:
        """Baseline headers, then caller headers, then content type and token."""
        headers = httpx.Headers({"Accept": JSON_CONTENT_TYPE})
        if self._user_agent:
            headers["User-Agent"] = self._user_agent
        for name, value in spec.headers.items():
            headers[name] = value
        if spec.content_type:
            headers["Content-Type"] = spec.content_type
        headers["Authorization"] = f"Bearer {token}"
        return headers

    def execute(self, spec: RequestSpec) -> httpx.Response:
        """Execute one logical request.

        Returns:
            The 2xx response.

        Raises:
            AuthError: If no token is available, or the remote still
                answers 401 after one refresh (``TokenUnauthorizedError``).
            TransportError: If transport retries are exhausted.
            RequestError: For every other non-2xx status.
        """
        uri = self.build_uri(spec)
        context = RetryContext(max_attempts=2)
        content_factory = spec.body if spec.content is not None else None

        with trace_operation(
            "hiro.request",
            attributes={"http.method": spec.method, "http.url": uri, "hiro.api": self.api_name},
        ):
            while True:
                context.attempt += 1
                token = self._tokens.get_token()
                response = self._http.execute(
                    spec.method,
                    uri,
                    headers=self.build_headers(spec, token),
                    content_factory=content_factory,
                    timeout=spec.timeout if spec.timeout is not None else self._timeout,
                    max_retries=self._max_retries,
                )

                if response.is_success:
                    return response

                error = ErrorFactory.from_http_response(response)
                context.last_error = error
                if not ErrorFactory.is_unauthorized(response):
                    raise error

                if context.auth_retried or context.exhausted:
                    self._logger.warning("Token rejected after refresh", url=uri)
                    raise error

                context.auth_retried = True
                self._logger.info("Token rejected, refreshing", url=uri)
                try:
                    self._tokens.refresh_token(stale_token=token)
                except FixedTokenError:
                    raise error from None

    def request(
        self,
        method: str,
        path: str | None = None,
        *,
        query: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        content: Content | None = None,
        json_data: Any = None,
        content_type: str | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        if json_data is not None:
            content = json.dumps(json_data).encode()
            content_type = content_type or JSON_CONTENT_TYPE
        return self.execute(
            RequestSpec(
                method=method,
                path=path,
                query=dict(query or {}),
                headers=dict(headers or {}),
                content=content,
                content_type=content_type,
                timeout=timeout,
            )
        )

    def get(self, path: str | None = None, **kwargs: Any) -> httpx.Response:
        return self.request("GET", path, **kwargs)

    def post(self, path: str | None = None, **kwargs: Any) -> httpx.Response:
        return self.request("POST", path, **kwargs)

    def put(self, path: str | None = None, **kwargs: Any) -> httpx.Response:
        return self.request("PUT", path, **kwargs)

    def patch(self, path: str | None = None, **kwargs: Any) -> httpx.Response:
        return self.request("PATCH", path, **kwargs)

    def delete(self, path: str | None = None, **kwargs: Any) -> httpx.Response:
        return self.request("DELETE", path, **kwargs)

    def get_json(self, path: str | None = None, **kwargs: Any) -> Any:
        """GET and decode the JSON body.

        Raises:
            RequestError: If the 2xx body is not JSON.
        """
        response = self.get(path, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise RequestError(
                "Response is not JSON",
                status_code=response.status_code,
                body=response.text,
            ) from e
