"""Unit tests for the wire models."""

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from hiro_client.models import (
    DecodedToken,
    TokenData,
    TokenResponse,
    VersionEntry,
    VersionResponse,
)


class TestTokenResponse:
    def test_accepts_legacy_token_name(self) -> None:
        response = TokenResponse.model_validate(
            {"_TOKEN": "abc", "_IDENTITY": "me@example.com", "_APPLICATION": "app"}
        )
        assert response.access_token == "abc"
        assert response.identity == "me@example.com"
        assert response.application == "app"

    def test_requires_token(self) -> None:
        with pytest.raises(ValidationError):
            TokenResponse.model_validate({"refresh_token": "r"})

    def test_expires_at_wins_over_expires_in(self) -> None:
        response = TokenResponse.model_validate(
            {"access_token": "a", "expires_in": 60, "expires-at": 1_700_000_000_000}
        )
        assert response.expires_at() == datetime.fromtimestamp(1_700_000_000, tz=UTC)

    def test_expires_in_is_relative(self) -> None:
        now = datetime(2026, 1, 1, tzinfo=UTC)
        response = TokenResponse.model_validate({"access_token": "a", "expires_in": 60})
        assert response.expires_at(now) == now + timedelta(seconds=60)

    def test_no_expiry(self) -> None:
        assert TokenResponse(access_token="a").expires_at() is None


class TestTokenData:
    def test_refresh_keeps_previous_refresh_token(self) -> None:
        first = TokenData.from_response(
            TokenResponse.model_validate({"access_token": "a", "refresh_token": "r1"})
        )
        second = TokenData.from_response(
            TokenResponse.model_validate({"access_token": "b"}), previous=first
        )
        assert second.access_token == "b"
        assert second.refresh_token == "r1"

    def test_new_refresh_token_replaces_old(self) -> None:
        first = TokenData(access_token="a", refresh_token="r1")
        second = TokenData.from_response(
            TokenResponse.model_validate({"access_token": "b", "refresh_token": "r2"}),
            previous=first,
        )
        assert second.refresh_token == "r2"

    def test_expiry_instant_subtracts_offset(self) -> None:
        expires = datetime(2026, 1, 1, 12, tzinfo=UTC)
        data = TokenData(access_token="a", expires_at=expires)
        assert data.expiry_instant(timedelta(seconds=5)) == expires - timedelta(seconds=5)

    def test_expiry_instant_without_expiry(self) -> None:
        assert TokenData(access_token="a").expiry_instant(timedelta(seconds=5)) is None

    def test_expiry_instant_clamps(self) -> None:
        data = TokenData(access_token="a", expires_at=datetime(1, 1, 1, 0, 0, 1, tzinfo=UTC))
        instant = data.expiry_instant(timedelta(days=1))
        assert instant == datetime.min.replace(tzinfo=UTC)

    def test_is_expired(self) -> None:
        past = TokenData(access_token="a", expires_at=datetime.now(UTC) - timedelta(seconds=1))
        future = TokenData(access_token="a", expires_at=datetime.now(UTC) + timedelta(hours=1))
        assert past.is_expired()
        assert not future.is_expired()
        assert future.is_expired(timedelta(hours=2))
        assert not TokenData(access_token="a").is_expired()

    def test_is_frozen(self) -> None:
        data = TokenData(access_token="a")
        with pytest.raises(ValidationError):
            data.access_token = "b"  # type: ignore[misc]


class TestVersionResponse:
    def test_parses_entries(self) -> None:
        versions = VersionResponse.model_validate(
            {
                "graph": {"endpoint": "/api/graph/7.4", "version": "7.4", "specs": "/s"},
                "auth": {"endpoint": "/api/auth/6.6", "version": "6.6", "custom": 1},
            }
        )
        assert set(versions) == {"graph", "auth"}
        assert versions["graph"].specs == "/s"
        assert versions["auth"].model_extra == {"custom": 1}
        assert "graph" in versions
        assert len(versions) == 2

    def test_drops_entries_without_endpoint(self) -> None:
        versions = VersionResponse.model_validate(
            {"graph": {"endpoint": "/api/graph"}, "note": "text", "empty": {"version": "1"}}
        )
        assert list(versions) == ["graph"]
        assert versions.get("note") is None

    def test_rejects_non_object(self) -> None:
        with pytest.raises(ValidationError):
            VersionResponse.model_validate(["graph"])


class TestVersionEntry:
    @pytest.mark.parametrize(
        ("version", "expected"),
        [("6.6", True), ("6.10", True), ("7.0", True), ("6.5", False), ("5.9", False)],
    )
    def test_version_at_least(self, version: str, expected: bool) -> None:
        entry = VersionEntry(endpoint="/api/auth", version=version)
        assert entry.version_at_least(6, 6) is expected

    def test_version_tuple_ignores_suffixes(self) -> None:
        entry = VersionEntry(endpoint="/api/auth", version="6.6-beta")
        assert entry.version_tuple == (6, 6)

    def test_primary_protocol(self) -> None:
        entry = VersionEntry(endpoint="/api/ws", protocols="events-1.0.0, events-0.9")
        assert entry.primary_protocol == "events-1.0.0"
        assert VersionEntry(endpoint="/api/ws").primary_protocol is None


class TestDecodedToken:
    def test_keeps_extra_claims(self) -> None:
        decoded = DecodedToken.model_validate(
            {"sub": "me", "exp": 1_700_000_000, "data": {"_identity": "me"}, "custom": True}
        )
        assert decoded.data == {"_identity": "me"}
        assert decoded.expires_at == datetime.fromtimestamp(1_700_000_000, tz=UTC)
        assert decoded.model_extra == {"custom": True}
