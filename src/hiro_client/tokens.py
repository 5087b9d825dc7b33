"""Token providers for the HIRO client.

A fixed token and a token read from the environment never change. The
password and the authorization code flow providers obtain tokens from the
auth API and can refresh and revoke them.
"""

from __future__ import annotations

import json
import os
import threading
from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

import jwt
from pydantic import ValidationError

from .config import (
    DEFAULT_TOKEN_ENV,
    EnvironmentTokenSource,
    FixedTokenSource,
    CodeFlowTokenSource,
    PasswordTokenSource,
    RemoteTokenSource,
)
from .core.errors import ErrorFactory
from .core.token_ops import TokenOperations
from .core.uri_builder import add_query_and_fragment, join_path
from .errors import (
    AuthError,
    FixedTokenError,
    HiroClientError,
    InvalidConfigError,
    TokenUnauthorizedError,
    UnknownApiError,
)
from .models import DecodedToken, TokenResponse
from .pkce import create_pkce_challenge, generate_state
from .telemetry import get_logger, trace_operation

if TYPE_CHECKING:
    import httpx
    import structlog

    from .core.http_executor import HTTPExecutor
    from .discovery import EndpointResolver
    from .telemetry import HttpLogger

AUTH_API = "auth"
AUTH_PATHS = ("token", "app", "refresh", "revoke")


class TokenKind(StrEnum):
    """Kind of token provider."""

    FIXED = "fixed"
    ENVIRONMENT = "environment"
    PASSWORD = "password"
    CODE_FLOW = "code_flow"


class TokenProvider(ABC):
    """Source of bearer tokens."""

    kind: TokenKind

    @abstractmethod
    def get_token(self) -> str:
        """Return a currently valid token.

        Raises:
            AuthError: If no token can be obtained.
        """

    @abstractmethod
    def refresh_token(self, *, stale_token: str | None = None) -> None:
        """Obtain a new token.

        Args:
            stale_token: The token that was rejected. When the held token
                already differs, another caller refreshed first and nothing
                is done.

        Raises:
            FixedTokenError: If the token cannot change.
            AuthError: If the refresh fails.
        """

    @abstractmethod
    def revoke_token(self) -> None:
        """Invalidate the token at the auth API."""

    @abstractmethod
    def has_token(self) -> bool: ...

    def has_refresh_token(self) -> bool:
        return False

    def expiry_instant(self) -> datetime | None:
        """Instant after which the token counts as expired, if known."""
        return None

    def decode_token(self) -> DecodedToken:
        """Decode the payload of the current token without verifying it.

        Raises:
            AuthError: If the token is not a well-formed JWT.
        """
        token = self.get_token()
        try:
            claims = jwt.decode(token, options={"verify_signature": False})
            return DecodedToken.model_validate(claims)
        except (jwt.exceptions.DecodeError, ValidationError) as e:
            raise AuthError(f"Cannot decode token: {e}") from e


class FixedTokenProvider(TokenProvider):
    """A token handed over once; it can neither be refreshed nor revoked."""

    kind = TokenKind.FIXED

    def __init__(self, token: str) -> None:
        if not token or not token.strip():
            raise InvalidConfigError("token must not be blank", field="token")
        self._token = token

    def get_token(self) -> str:
        return self._token

    def refresh_token(self, *, stale_token: str | None = None) -> None:
        raise FixedTokenError

    def revoke_token(self) -> None:
        raise FixedTokenError

    def has_token(self) -> bool:
        return True


class EnvironmentTokenProvider(TokenProvider):
    """Reads the token from an environment variable on every call."""

    kind = TokenKind.ENVIRONMENT

    def __init__(
        self,
        env_var: str = DEFAULT_TOKEN_ENV,
        *,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.env_var = env_var
        self._environ = os.environ if environ is None else environ

    def _read(self) -> str | None:
        value = self._environ.get(self.env_var)
        if value is None or not value.strip():
            return None
        return value

    def get_token(self) -> str:
        token = self._read()
        if token is None:
            raise AuthError(
                f"Environment variable {self.env_var} is not set",
                details={"env_var": self.env_var},
            )
        return token

    def refresh_token(self, *, stale_token: str | None = None) -> None:
        raise FixedTokenError("Cannot change a token from the environment.")

    def revoke_token(self) -> None:
        raise FixedTokenError("Cannot change a token from the environment.")

    def has_token(self) -> bool:
        return self._read() is not None


class RemoteTokenProvider(TokenProvider):
    """Base for providers that obtain tokens from the auth API.

    Auth API version 6.6 and newer take form encoded requests at
    ``<auth>/token`` for every grant. Older versions take JSON at
    ``<auth>/app`` and ``<auth>/refresh``.

    Acquire and refresh run under one lock, so concurrent callers that see
    the same rejected token cause a single refresh.
    """

    def __init__(
        self,
        source: RemoteTokenSource,
        *,
        resolver: EndpointResolver,
        http: HTTPExecutor,
        http_logger: HttpLogger | None = None,
        timeout: float | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self._ops = TokenOperations(source)
        self._resolver = resolver
        self._http = http
        self._http_logger = http_logger
        self._timeout = timeout
        self._logger = logger or get_logger().bind(
            component="token", kind=str(self.kind), client_id=source.client_id
        )
        self._lock = threading.RLock()
        self._api_uri: str | None = None

    @abstractmethod
    def _request_token(self) -> None:
        """Obtain a first token and store it."""

    # Token state

    def get_token(self) -> str:
        with self._lock:
            if not self._ops.has_token():
                self._request_token()
            elif self._ops.is_token_expired():
                self._logger.debug("Token expired, refreshing")
                self._refresh()
            tokens = self._ops.tokens
            if tokens is None:
                raise AuthError("No token available")
            return tokens.access_token

    def refresh_token(self, *, stale_token: str | None = None) -> None:
        with self._lock:
            tokens = self._ops.tokens
            if (
                stale_token is not None
                and tokens is not None
                and tokens.access_token != stale_token
            ):
                self._logger.debug("Token already refreshed by another caller")
                return
            self._refresh()

    def revoke_token(self, token_type_hint: str = "refresh_token") -> None:
        """Revoke the token; only possible while a refresh token is held.

        Raises:
            TokenUnauthorizedError: If no token or refresh token is held.
            AuthError: If the auth API rejects the call.
        """
        with self._lock:
            tokens = self._ops.tokens
            if tokens is None or not self._ops.has_refresh_token():
                raise TokenUnauthorizedError("no token provided")
            form = self._uses_form_endpoint()
            payload = self._ops.build_revoke_request(
                token_type_hint=token_type_hint if form else None
            )
            self._post(
                "revoke",
                payload,
                form=False,
                operation="revoke",
                headers={"Authorization": f"Bearer {tokens.access_token}"},
            )
            self._ops.clear_tokens()
            self._logger.info("Token revoked")

    def has_token(self) -> bool:
        with self._lock:
            return self._ops.has_token()

    def has_refresh_token(self) -> bool:
        with self._lock:
            return self._ops.has_refresh_token()

    def expiry_instant(self) -> datetime | None:
        with self._lock:
            return self._ops.expiry_instant()

    # Auth API calls

    def _store(self, response: TokenResponse, event: str) -> None:
        self._ops.process_token_response(response)
        self._logger.info(event, expires_at=self._expires_at())

    def _refresh(self) -> None:
        if not self._ops.has_refresh_token():
            self._request_token()
            return

        form = self._uses_form_endpoint()
        try:
            response = self._grant(
                "token" if form else "refresh",
                self._ops.build_refresh_token_request(),
                form=form,
                operation="refresh",
            )
        except AuthError as e:
            if e.status_code is None:
                raise
            self._logger.debug(
                "Refresh rejected, requesting new token", status_code=e.status_code
            )
            self._request_token()
            return

        self._store(response, "Token refreshed")

    def _post(
        self,
        path: str,
        payload: dict[str, Any],
        *,
        form: bool,
        operation: str,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        url = self._uri(path)
        request_headers = {
            "Accept": "application/json",
            **self._ops.build_token_request_headers(form=form),
            **(headers or {}),
        }
        content = urlencode(payload) if form else json.dumps(payload)

        with trace_operation(f"token.{operation}", attributes={"http.url": url}):
            try:
                response = self._http.execute(
                    "POST",
                    url,
                    content=content,
                    headers=request_headers,
                    timeout=self._timeout,
                )
            except HiroClientError as e:
                raise AuthError(f"{operation} failed: {e.message}") from e

            if not response.is_success:
                raise ErrorFactory.auth_error(response, operation=operation)

            return response

    def _grant(
        self, path: str, payload: dict[str, Any], *, form: bool, operation: str
    ) -> TokenResponse:
        response = self._post(path, payload, form=form, operation=operation)
        return self._parse(response, operation)

    @staticmethod
    def _parse(response: httpx.Response, operation: str) -> TokenResponse:
        try:
            return TokenResponse.model_validate(response.json() or {})
        except ValueError as e:
            raise AuthError(
                f"{operation} returned an unreadable token response",
                status_code=response.status_code,
            ) from e

    def _uri(self, path: str) -> str:
        if self._api_uri is None:
            try:
                api_path = self._ops.source.api_path
                if api_path:
                    api_uri = join_path(self._resolver.root_url, api_path)
                else:
                    api_uri = self._resolver.resolve(AUTH_API)
            except HiroClientError as e:
                raise AuthError(f"Cannot resolve auth API: {e.message}") from e
            if self._http_logger is not None:
                for filtered in AUTH_PATHS:
                    self._http_logger.add_filter(join_path(api_uri, filtered))
            self._api_uri = api_uri
        return join_path(self._api_uri, path)

    def _uses_form_endpoint(self) -> bool:
        try:
            entry = self._resolver.version_entry(AUTH_API)
        except UnknownApiError:
            # Without a discovery entry only an explicit api_path can work;
            # assume a current auth API in that case.
            if self._ops.source.api_path:
                return True
            raise AuthError(f"No api '{AUTH_API}' found in versions.") from None
        except HiroClientError as e:
            raise AuthError(f"Cannot resolve auth API: {e.message}") from e
        return TokenOperations.uses_form_endpoint(entry.version_tuple)

    def _expires_at(self) -> str | None:
        tokens = self._ops.tokens
        if tokens is None or tokens.expires_at is None:
            return None
        return tokens.expires_at.isoformat()


class PasswordTokenProvider(RemoteTokenProvider):
    """Exchanges username and password for a token at the auth API."""

    kind = TokenKind.PASSWORD

    def __init__(self, source: PasswordTokenSource, **kwargs: Any) -> None:
        super().__init__(source, **kwargs)
        self._username = source.username
        self._password = source.password

    def _request_token(self) -> None:
        form = self._uses_form_endpoint()
        response = self._grant(
            "token" if form else "app",
            self._ops.build_password_request(
                self._username, self._password.get_secret_value()
            ),
            form=form,
            operation="token",
        )
        self._store(response, "Token acquired")


class CodeFlowTokenProvider(RemoteTokenProvider):
    """Authorization code flow with PKCE.

    The application sends a browser to ``authorize_uri()`` and passes the
    redirect parameters to ``handle_authorize_callback``. The code is
    exchanged once at ``<auth>/token``; afterwards only the refresh token
    keeps the session alive. Requires auth API 6.6 or newer.
    """

    kind = TokenKind.CODE_FLOW

    def __init__(self, source: CodeFlowTokenSource, **kwargs: Any) -> None:
        super().__init__(source, **kwargs)
        self.redirect_uri = source.redirect_uri
        self.scope = source.scope
        self._pkce = create_pkce_challenge()
        self.state = generate_state()
        self._code: str | None = None

    def authorize_uri(self) -> str:
        """URI for the browser; the auth API answers with a login page."""
        query = {
            "response_type": "code",
            "client_id": self._ops.source.client_id,
            "redirect_uri": self.redirect_uri,
            "code_challenge": self._pkce.code_challenge,
            "code_challenge_method": self._pkce.code_challenge_method,
            "state": self.state,
            "scope": self.scope,
        }
        return add_query_and_fragment(
            self._uri("authorize"),
            {k: v for k, v in query.items() if v is not None},
        )

    def handle_authorize_callback(self, state: str, code: str) -> None:
        """Accept the redirect parameters of the authorize call.

        Raises:
            AuthError: If ``state`` differs from the one sent (status 400).
        """
        if state != self.state:
            raise AuthError(
                "The parameter 'state' of the callback does not match.",
                status_code=400,
            )
        with self._lock:
            self._code = code

    def _request_token(self) -> None:
        code = self._code
        if not code or not code.strip():
            raise TokenUnauthorizedError(
                "parameter 'code' has either been used before or never been set."
            )
        if not self._uses_form_endpoint():
            raise AuthError(
                "Auth api version has to be at least 6.6 for the code flow.",
                status_code=500,
            )
        response = self._grant(
            "token",
            self._ops.build_code_request(
                code, self._pkce.code_verifier, self.redirect_uri
            ),
            form=True,
            operation="token",
        )
        self._code = None
        self._store(response, "Token acquired")

    def _refresh(self) -> None:
        if not self._ops.has_refresh_token():
            raise AuthError("no refresh token available", status_code=401)
        super()._refresh()


def create_token_provider(
    source: FixedTokenSource
    | EnvironmentTokenSource
    | PasswordTokenSource
    | CodeFlowTokenSource,
    *,
    resolver: EndpointResolver,
    http: HTTPExecutor,
    http_logger: HttpLogger | None = None,
    timeout: float | None = None,
    logger: structlog.BoundLogger | None = None,
) -> TokenProvider:
    """Create the provider for a configured token source."""
    remote = {
        "resolver": resolver,
        "http": http,
        "http_logger": http_logger,
        "timeout": timeout,
        "logger": logger,
    }
    match source:
        case FixedTokenSource():
            return FixedTokenProvider(source.token.get_secret_value())
        case EnvironmentTokenSource():
            return EnvironmentTokenProvider(source.env_var)
        case PasswordTokenSource():
            return PasswordTokenProvider(source, **remote)
        case CodeFlowTokenSource():
            return CodeFlowTokenProvider(source, **remote)
        case _:
            msg = f"Unsupported token source: {type(source).__name__}"
            raise InvalidConfigError(msg, field="token")
