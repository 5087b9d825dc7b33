"""Configuration for the HIRO client.

Uses Pydantic v2 frozen models, one value type per component, validated
at construction.
"""

from __future__ import annotations

import ssl
from typing import Annotated, Any, Literal, Self

import httpx
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    HttpUrl,
    SecretStr,
    field_validator,
    model_validator,
)

from . import __version__

DEFAULT_USER_AGENT = f"hiro-client-python {__version__}"
DEFAULT_TOKEN_ENV = "HIRO_TOKEN"


class RetryConfig(BaseModel):
    """Bounded retries for transient transport failures."""

    model_config = ConfigDict(frozen=True)

    max_retries: Annotated[int, Field(ge=0, le=10)] = 2
    initial_delay: Annotated[float, Field(ge=0, le=60)] = 0.5
    max_delay: Annotated[float, Field(gt=0, le=300)] = 10.0
    exponential_base: Annotated[float, Field(ge=1.5, le=3.0)] = 2.0
    jitter: Annotated[float, Field(ge=0, le=1.0)] = 0.1

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for given attempt with exponential backoff."""
        import random

        delay = min(
            self.initial_delay * (self.exponential_base**attempt),
            self.max_delay,
        )
        jitter_range = delay * self.jitter
        return max(0.0, delay + random.uniform(-jitter_range, jitter_range))  # noqa: S311


class TransportConfig(BaseModel):
    """Opaque transport settings applied once when the HTTP client is built."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    proxy: str | None = None
    follow_redirects: bool = False
    accept_all_certs: bool = False
    ssl_context: ssl.SSLContext | None = None
    connect_timeout: Annotated[float, Field(gt=0, le=300)] = 10.0
    max_connection_pool: Annotated[int, Field(ge=1, le=1024)] = 8
    http_client: httpx.Client | None = None

    @model_validator(mode="after")
    def validate_trust_mode(self) -> Self:
        """An explicit SSL context and accept-all are mutually exclusive."""
        if self.accept_all_certs and self.ssl_context is not None:
            msg = "accept_all_certs and ssl_context cannot be combined"
            raise ValueError(msg)
        return self


class TelemetryConfig(BaseModel):
    """Logging and tracing configuration."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    service_name: str = "hiro-client"
    log_level: str = "INFO"
    log_bodies: bool = True


class FixedTokenSource(BaseModel):
    """A token handed over at construction time."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["fixed"] = "fixed"
    token: SecretStr

    @field_validator("token")
    @classmethod
    def validate_token(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value().strip():
            msg = "token must not be blank"
            raise ValueError(msg)
        return v


class EnvironmentTokenSource(BaseModel):
    """A token read from a process environment variable on every use."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["environment"] = "environment"
    env_var: str = Field(default=DEFAULT_TOKEN_ENV, min_length=1)


class RemoteTokenSource(BaseModel):
    """Client settings shared by sources that talk to the auth API."""

    model_config = ConfigDict(frozen=True)

    client_id: str = Field(..., min_length=1)
    client_secret: SecretStr | None = None
    organization: str | None = None
    organization_id: str | None = None
    # Seconds before the server-side expiry at which the token counts as expired.
    refresh_offset: Annotated[float, Field(ge=0)] = 5.0
    api_path: str | None = None


class PasswordTokenSource(RemoteTokenSource):
    """Credentials exchanged against the auth API for a token."""

    kind: Literal["password"] = "password"
    client_secret: SecretStr
    username: str = Field(..., min_length=1)
    password: SecretStr


class CodeFlowTokenSource(RemoteTokenSource):
    """Authorization code flow with PKCE; the code arrives via a browser redirect."""

    kind: Literal["code_flow"] = "code_flow"
    redirect_uri: str = Field(..., min_length=1)
    scope: str | None = None


TokenSource = Annotated[
    FixedTokenSource | EnvironmentTokenSource | PasswordTokenSource | CodeFlowTokenSource,
    Field(discriminator="kind"),
]


class HiroConfig(BaseModel):
    """Main configuration for the HIRO client."""

    model_config = ConfigDict(frozen=True, validate_default=True)

    # Required
    root_url: HttpUrl

    user_agent: str = DEFAULT_USER_AGENT
    http_request_timeout: Annotated[float, Field(gt=0, le=600)] = 30.0

    # Explicit endpoints per API name, bypassing discovery for that name.
    endpoints: dict[str, str] = Field(default_factory=dict)

    # Sub-configurations
    retry: RetryConfig = Field(default_factory=RetryConfig)
    transport: TransportConfig = Field(default_factory=TransportConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)
    token: TokenSource | None = None

    @property
    def root_url_str(self) -> str:
        """Get root URL as string without trailing slash."""
        return str(self.root_url).rstrip("/")

    @property
    def max_retries(self) -> int:
        return self.retry.max_retries

    def with_overrides(self, **kwargs: Any) -> Self:
        """Create new config with overridden values."""
        data = dict(self)
        data.update(kwargs)
        return self.__class__(**data)

    @classmethod
    def from_env(cls, prefix: str = "HIRO_") -> Self:
        """Create config from environment variables.

        ``<prefix>ROOT_URL`` is required. A token source is picked from
        ``<prefix>USERNAME`` (password exchange, needs ``PASSWORD``,
        ``CLIENT_ID`` and ``CLIENT_SECRET``), else ``<prefix>TOKEN_ENV``
        (environment token read from that variable).
        """
        import os

        def get_env(key: str, default: Any = None) -> Any:
            return os.environ.get(f"{prefix}{key}", default)

        root_url = get_env("ROOT_URL")
        if not root_url:
            msg = f"{prefix}ROOT_URL environment variable is required"
            raise ValueError(msg)

        token: TokenSource | None = None
        if get_env("USERNAME"):
            token = PasswordTokenSource(
                client_id=get_env("CLIENT_ID", ""),
                client_secret=get_env("CLIENT_SECRET", ""),
                username=get_env("USERNAME"),
                password=get_env("PASSWORD", ""),
                organization=get_env("ORGANIZATION"),
                organization_id=get_env("ORGANIZATION_ID"),
            )
        elif get_env("TOKEN_ENV"):
            token = EnvironmentTokenSource(env_var=get_env("TOKEN_ENV"))

        return cls(
            root_url=root_url,
            http_request_timeout=float(get_env("HTTP_REQUEST_TIMEOUT", "30")),
            retry=RetryConfig(max_retries=int(get_env("MAX_RETRIES", "2"))),
            token=token,
        )


class APIHandlerConfig(BaseModel):
    """Configuration of one authenticated request executor."""

    model_config = ConfigDict(frozen=True)

    api_name: str | None = None
    endpoint: str | None = None
    http_request_timeout: Annotated[float, Field(gt=0, le=600)] | None = None
    max_retries: Annotated[int, Field(ge=0, le=10)] | None = None

    @model_validator(mode="after")
    def require_target(self) -> Self:
        if not self.api_name and not self.endpoint:
            msg = "Either api_name or endpoint is required"
            raise ValueError(msg)
        return self


class WebSocketConfig(BaseModel):
    """Configuration of one persistent WebSocket session."""

    model_config = ConfigDict(frozen=True)

    name: str = "websocket"
    api_name: str | None = None
    endpoint: str | None = None
    protocol: str | None = None
    query: dict[str, str] = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)
    max_retries: Annotated[int, Field(ge=0, le=100)] = 2
    max_restart_attempts: Annotated[int, Field(ge=0)] = 10
    # When false, exhausted send retries raise instead of restarting the session.
    reconnect_on_failed_send: bool = True
    open_timeout: Annotated[float, Field(gt=0, le=600)] = 10.0
    close_timeout: Annotated[float, Field(gt=0, le=600)] = 10.0

    @model_validator(mode="after")
    def require_target(self) -> Self:
        if not self.api_name and not self.endpoint:
            msg = "Either api_name or endpoint is required"
            raise ValueError(msg)
        if self.endpoint and not self.api_name and not self.protocol:
            msg = "protocol is required when only an endpoint is given"
            raise ValueError(msg)
        return self
