"""Property-based tests for configuration module.

Configurations are frozen, validated at construction and derive the
values the client needs without touching the network.
"""

import ssl

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from hiro_client.config import (
    APIHandlerConfig,
    CodeFlowTokenSource,
    EnvironmentTokenSource,
    FixedTokenSource,
    HiroConfig,
    PasswordTokenSource,
    RetryConfig,
    TokenSource,
    TransportConfig,
    WebSocketConfig,
)

# Strategy for valid root URLs
valid_root_url = st.sampled_from([
    "https://api.example.com",
    "https://hiro.example.org/",
    "https://hiro.test.local:8443",
])

valid_token = st.text(
    alphabet="abcdefghijklmnopqrstuvwxyz0123456789-_.",
    min_size=1,
    max_size=64,
)


class TestConfigurationImmutabilityProperties:
    """Property tests for configuration immutability."""

    @given(root_url=valid_root_url)
    @settings(max_examples=20)
    def test_config_is_frozen(self, root_url: str) -> None:
        """Property: HiroConfig SHALL be immutable (frozen model)."""
        config = HiroConfig(root_url=root_url)

        with pytest.raises(PydanticValidationError):
            config.user_agent = "other"

    @given(max_retries=st.integers(min_value=0, max_value=10))
    def test_retry_config_is_frozen(self, max_retries: int) -> None:
        config = RetryConfig(max_retries=max_retries)

        with pytest.raises(PydanticValidationError):
            config.max_retries = 5

    @given(root_url=valid_root_url, token=valid_token)
    @settings(max_examples=50)
    def test_with_overrides_returns_new_instance(self, root_url: str, token: str) -> None:
        """Property: with_overrides leaves the original untouched."""
        config = HiroConfig(root_url=root_url)
        updated = config.with_overrides(token=FixedTokenSource(token=token))

        assert config.token is None
        assert updated.token is not None
        assert updated.root_url == config.root_url


class TestConfigurationDerivationProperties:
    @given(root_url=valid_root_url)
    def test_root_url_has_no_trailing_slash(self, root_url: str) -> None:
        """Property: root_url_str never ends with a slash."""
        config = HiroConfig(root_url=root_url)

        assert not config.root_url_str.endswith("/")
        assert config.root_url_str == root_url.rstrip("/")

    def test_defaults(self) -> None:
        config = HiroConfig(root_url="https://api.example.com")

        assert config.user_agent.startswith("hiro-client-python ")
        assert config.max_retries == 2
        assert config.http_request_timeout == 30.0
        assert config.endpoints == {}


class TestConfigurationValidationProperties:
    @given(max_retries=st.integers().filter(lambda x: x < 0 or x > 10))
    def test_invalid_max_retries_rejected(self, max_retries: int) -> None:
        """Property: Transport retries are bounded."""
        with pytest.raises(PydanticValidationError):
            RetryConfig(max_retries=max_retries)

    @given(timeout=st.floats(max_value=0.0, allow_nan=False))
    def test_invalid_timeout_rejected(self, timeout: float) -> None:
        with pytest.raises(PydanticValidationError):
            HiroConfig(root_url="https://api.example.com", http_request_timeout=timeout)

    @given(blank=st.text(alphabet=" \t\n", max_size=5))
    def test_blank_fixed_token_rejected(self, blank: str) -> None:
        with pytest.raises(PydanticValidationError):
            FixedTokenSource(token=blank)

    def test_invalid_root_url_rejected(self) -> None:
        with pytest.raises(PydanticValidationError):
            HiroConfig(root_url="not a url")

    def test_trust_modes_are_exclusive(self) -> None:
        with pytest.raises(PydanticValidationError):
            TransportConfig(accept_all_certs=True, ssl_context=ssl.create_default_context())

    def test_api_handler_needs_target(self) -> None:
        with pytest.raises(PydanticValidationError):
            APIHandlerConfig()

    def test_websocket_needs_target(self) -> None:
        with pytest.raises(PydanticValidationError):
            WebSocketConfig()

    def test_websocket_endpoint_needs_protocol(self) -> None:
        with pytest.raises(PydanticValidationError):
            WebSocketConfig(endpoint="/api/ws")
        assert WebSocketConfig(endpoint="/api/ws", protocol="p").protocol == "p"

    def test_secrets_are_not_shown(self) -> None:
        source = PasswordTokenSource(
            client_id="cid", client_secret="s3cr3t", username="u", password="pa55"
        )
        assert "s3cr3t" not in repr(source)
        assert "pa55" not in repr(source)


class TestTokenSourceProperties:
    @given(token=valid_token)
    def test_discriminator_selects_fixed(self, token: str) -> None:
        source = TypeAdapter(TokenSource).validate_python({"kind": "fixed", "token": token})
        assert isinstance(source, FixedTokenSource)
        assert source.token.get_secret_value() == token

    def test_discriminator_selects_environment(self) -> None:
        source = TypeAdapter(TokenSource).validate_python({"kind": "environment"})
        assert isinstance(source, EnvironmentTokenSource)
        assert source.env_var == "HIRO_TOKEN"

    def test_discriminator_selects_code_flow(self) -> None:
        source = TypeAdapter(TokenSource).validate_python(
            {"kind": "code_flow", "client_id": "cid", "redirect_uri": "https://app/cb"}
        )
        assert isinstance(source, CodeFlowTokenSource)
        assert source.client_secret is None
        assert source.scope is None

    def test_code_flow_requires_redirect_uri(self) -> None:
        with pytest.raises(PydanticValidationError):
            CodeFlowTokenSource(client_id="cid")

    def test_unknown_kind_rejected(self) -> None:
        with pytest.raises(PydanticValidationError):
            TypeAdapter(TokenSource).validate_python({"kind": "oauth"})


class TestFromEnv:
    def test_password_source(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HIRO_ROOT_URL", "https://api.example.com")
        monkeypatch.setenv("HIRO_USERNAME", "user")
        monkeypatch.setenv("HIRO_PASSWORD", "pw")
        monkeypatch.setenv("HIRO_CLIENT_ID", "cid")
        monkeypatch.setenv("HIRO_CLIENT_SECRET", "secret")
        monkeypatch.setenv("HIRO_ORGANIZATION", "org")
        monkeypatch.setenv("HIRO_MAX_RETRIES", "4")
        monkeypatch.setenv("HIRO_HTTP_REQUEST_TIMEOUT", "45")

        config = HiroConfig.from_env()

        assert isinstance(config.token, PasswordTokenSource)
        assert config.token.organization == "org"
        assert config.max_retries == 4
        assert config.http_request_timeout == 45.0

    def test_environment_source(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HIRO_ROOT_URL", "https://api.example.com")
        monkeypatch.delenv("HIRO_USERNAME", raising=False)
        monkeypatch.setenv("HIRO_TOKEN_ENV", "MY_TOKEN")

        config = HiroConfig.from_env()

        assert isinstance(config.token, EnvironmentTokenSource)
        assert config.token.env_var == "MY_TOKEN"

    def test_root_url_required(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("HIRO_ROOT_URL", raising=False)
        with pytest.raises(ValueError, match="HIRO_ROOT_URL"):
            HiroConfig.from_env()
