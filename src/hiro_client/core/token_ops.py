"""Centralized token operations for the HIRO client.

Builds the auth API payloads for password exchange, code exchange,
refresh and revoke, and keeps the token state of one provider.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from ..models import TokenData, TokenResponse

if TYPE_CHECKING:
    from ..config import RemoteTokenSource

# First auth API version with the form encoded ``/token`` endpoint.
FORM_AUTH_VERSION = (6, 6)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
JSON_CONTENT_TYPE = "application/json"


def _drop_blank(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None and str(v).strip()}


class TokenOperations:
    """Token request building and token state for a credential provider.

    Payload builders are pure; ``process_token_response`` swaps in a new
    ``TokenData`` value.
    """

    def __init__(self, source: RemoteTokenSource) -> None:
        """Initialize token operations.

        Args:
            source: Credentials and refresh settings.
        """
        self.source = source
        self.organization = source.organization
        self.organization_id = source.organization_id
        self._tokens: TokenData | None = None

    @property
    def tokens(self) -> TokenData | None:
        """Get current token data."""
        return self._tokens

    @property
    def refresh_offset(self) -> timedelta:
        return timedelta(seconds=self.source.refresh_offset)

    def _client_fields(self) -> dict[str, Any]:
        secret = self.source.client_secret
        return {
            "client_id": self.source.client_id,
            "client_secret": secret.get_secret_value() if secret is not None else None,
        }

    def _organization_fields(self) -> dict[str, Any]:
        return {
            "organization": self.organization,
            "organization_id": self.organization_id,
        }

    def build_password_request(self, username: str, password: str) -> dict[str, Any]:
        """Build password grant request payload.

        Returns:
            Request payload dictionary with blank fields removed.
        """
        return _drop_blank(
            {
                "grant_type": "password",
                **self._client_fields(),
                "username": username,
                "password": password,
                **self._organization_fields(),
            }
        )

    def build_code_request(
        self, code: str, code_verifier: str, redirect_uri: str
    ) -> dict[str, Any]:
        """Build authorization code grant request payload."""
        return _drop_blank(
            {
                "grant_type": "authorization_code",
                "code": code,
                "code_verifier": code_verifier,
                "redirect_uri": redirect_uri,
                **self._client_fields(),
                **self._organization_fields(),
            }
        )

    def build_refresh_token_request(self) -> dict[str, Any]:
        """Build refresh token grant request payload.

        Raises:
            ValueError: If no refresh token available.
        """
        tokens = self._tokens
        if tokens is None or not tokens.refresh_token:
            msg = "No refresh token available"
            raise ValueError(msg)
        return _drop_blank(
            {
                "grant_type": "refresh_token",
                **self._client_fields(),
                "refresh_token": tokens.refresh_token,
                **self._organization_fields(),
            }
        )

    def build_revoke_request(self, *, token_type_hint: str | None = None) -> dict[str, Any]:
        """Build revoke request payload.

        Args:
            token_type_hint: ``refresh_token`` or ``access_token``; only
                understood by newer auth APIs.
        """
        tokens = self._tokens
        if tokens is None or not tokens.refresh_token:
            msg = "No refresh token available"
            raise ValueError(msg)
        return _drop_blank(
            {
                **self._client_fields(),
                "refresh_token": tokens.refresh_token,
                "token_type_hint": token_type_hint,
            }
        )

    @staticmethod
    def uses_form_endpoint(auth_version: tuple[int, ...]) -> bool:
        return auth_version >= FORM_AUTH_VERSION

    @staticmethod
    def build_token_request_headers(*, form: bool) -> dict[str, str]:
        """Build headers for a token request."""
        return {"Content-Type": FORM_CONTENT_TYPE if form else JSON_CONTENT_TYPE}

    def process_token_response(
        self,
        response: TokenResponse,
    ) -> TokenData:
        """Process token response and update internal state.

        Args:
            response: Token response from server.

        Returns:
            Processed token data.
        """
        self._tokens = TokenData.from_response(response, previous=self._tokens)
        return self._tokens

    def has_token(self) -> bool:
        return self._tokens is not None and bool(self._tokens.access_token.strip())

    def has_refresh_token(self) -> bool:
        """Check if a refresh token is available."""
        return self._tokens is not None and bool(self._tokens.refresh_token)

    def expiry_instant(self) -> datetime | None:
        if self._tokens is None:
            return None
        return self._tokens.expiry_instant(self.refresh_offset)

    def is_token_expired(self) -> bool:
        """Check if current token is expired."""
        if self._tokens is None:
            return True
        instant = self.expiry_instant()
        return instant is not None and datetime.now(UTC) >= instant

    def clear_tokens(self) -> None:
        """Clear stored tokens."""
        self._tokens = None
