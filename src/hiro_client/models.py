"""Pydantic models for the HIRO client wire formats.

Frozen models: a token or an endpoint map is never edited in place, a
refresh or rediscovery swaps in a new instance.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from datetime import UTC, datetime, timedelta
from typing import Annotated, Any, Literal, Self

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    RootModel,
    model_validator,
)


class TokenResponse(BaseModel):
    """Token response from the auth API.

    Both the current (``access_token``) and the legacy (``_TOKEN``) field
    names are accepted.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    access_token: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("access_token", "_TOKEN"),
    )
    refresh_token: str | None = None
    expires_in: Annotated[int, Field(ge=0)] | None = None
    # Epoch milliseconds.
    expires_at_ms: int | None = Field(default=None, alias="expires-at")
    identity: str | None = Field(default=None, alias="_IDENTITY")
    identity_id: str | None = Field(default=None, alias="_IDENTITY_ID")
    application: str | None = Field(default=None, alias="_APPLICATION")
    token_type: str | None = Field(default=None, alias="type")

    def expires_at(self, now: datetime | None = None) -> datetime | None:
        """Absolute expiry; ``expires-at`` wins over ``expires_in``."""
        if self.expires_at_ms is not None:
            return datetime.fromtimestamp(self.expires_at_ms / 1000, tz=UTC)
        if self.expires_in is not None:
            return (now or datetime.now(UTC)) + timedelta(seconds=self.expires_in)
        return None


class TokenData(BaseModel):
    """Internal token storage with expiration tracking."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    identity: str | None = None
    identity_id: str | None = None
    application: str | None = None
    token_type: str | None = None
    refreshed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_response(
        cls,
        response: TokenResponse,
        *,
        previous: TokenData | None = None,
    ) -> Self:
        """Create TokenData from a response.

        A refresh response that carries no refresh token keeps the one of
        ``previous``.
        """
        now = datetime.now(UTC)
        refresh_token = response.refresh_token
        if not refresh_token and previous is not None:
            refresh_token = previous.refresh_token
        return cls(
            access_token=response.access_token,
            refresh_token=refresh_token,
            expires_at=response.expires_at(now),
            identity=response.identity,
            identity_id=response.identity_id,
            application=response.application,
            token_type=response.token_type,
            refreshed_at=now,
        )

    def expiry_instant(self, refresh_offset: timedelta) -> datetime | None:
        """Instant after which the token counts as expired.

        ``None`` when the server sent no expiry, ``datetime.min`` when the
        offset is larger than the remaining lifetime.
        """
        if self.expires_at is None:
            return None
        try:
            return self.expires_at - refresh_offset
        except OverflowError:
            return datetime.min.replace(tzinfo=UTC)

    def is_expired(self, refresh_offset: timedelta = timedelta(0)) -> bool:
        """Check if token is expired."""
        instant = self.expiry_instant(refresh_offset)
        return instant is not None and datetime.now(UTC) >= instant


class DecodedToken(BaseModel):
    """JWT payload decoded without signature verification."""

    model_config = ConfigDict(frozen=True, extra="allow")

    sub: str | None = None
    iss: str | None = None
    aud: str | list[str] | None = None
    exp: int | None = None
    iat: int | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def expires_at(self) -> datetime | None:
        """Get expiration as datetime."""
        if self.exp is None:
            return None
        return datetime.fromtimestamp(self.exp, tz=UTC)

    @property
    def issued_at(self) -> datetime | None:
        if self.iat is None:
            return None
        return datetime.fromtimestamp(self.iat, tz=UTC)


class VersionEntry(BaseModel):
    """One API entry of the discovery document."""

    model_config = ConfigDict(frozen=True, extra="allow")

    endpoint: str = Field(..., min_length=1)
    version: str | None = None
    docs: str | None = None
    support: str | None = None
    specs: str | None = None
    protocols: str | None = None
    lifecycle: str | None = None

    @property
    def version_tuple(self) -> tuple[int, ...]:
        """Numeric version components, non-numeric parts read as 0."""
        if not self.version:
            return ()
        parts: list[int] = []
        for part in self.version.split("."):
            digits = "".join(ch for ch in part if ch.isdigit())
            parts.append(int(digits) if digits else 0)
        return tuple(parts)

    def version_at_least(self, *minimum: int) -> bool:
        return self.version_tuple >= minimum

    @property
    def primary_protocol(self) -> str | None:
        """First entry of a comma separated ``protocols`` value."""
        if not self.protocols:
            return None
        first = self.protocols.split(",")[0].strip()
        return first or None


class VersionResponse(RootModel[dict[str, VersionEntry]]):
    """Discovery document: API name to entry."""

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="before")
    @classmethod
    def drop_non_entries(cls, data: Any) -> Any:
        """Keep only object-valued entries that carry an endpoint."""
        if not isinstance(data, Mapping):
            msg = "discovery document must be a JSON object"
            raise ValueError(msg)
        return {
            name: value
            for name, value in data.items()
            if isinstance(value, Mapping) and value.get("endpoint")
        }

    def __getitem__(self, api_name: str) -> VersionEntry:
        return self.root[api_name]

    def __contains__(self, api_name: object) -> bool:
        return api_name in self.root

    def __iter__(self) -> Iterator[str]:  # type: ignore[override]
        return iter(self.root)

    def __len__(self) -> int:
        return len(self.root)

    def get(self, api_name: str) -> VersionEntry | None:
        return self.root.get(api_name)


class PKCEChallenge(BaseModel):
    """PKCE verifier and its S256 challenge for the authorization code flow."""

    model_config = ConfigDict(frozen=True)

    code_verifier: str = Field(..., min_length=43, max_length=128)
    code_challenge: str = Field(..., min_length=43)
    code_challenge_method: Literal["S256"] = "S256"
