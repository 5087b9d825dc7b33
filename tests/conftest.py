"""
Shared test fixtures for HIRO client tests.

Provides HTTP routing on top of httpx.MockTransport and common
configuration; the fakes themselves live in ``fakes.py``.
"""

from __future__ import annotations

import httpx
import pytest

from fakes import ROOT_URL, USER_AGENT, VERSIONS, CountingTokenProvider, MockRouter
from hiro_client.config import RetryConfig
from hiro_client.core.http_executor import HTTPExecutor
from hiro_client.discovery import EndpointResolver


@pytest.fixture
def router() -> MockRouter:
    """Router with the discovery document installed."""
    router = MockRouter()
    router.add("GET", "/api/version", httpx.Response(200, json=VERSIONS))
    return router


@pytest.fixture
def http_client(router: MockRouter) -> httpx.Client:
    client = httpx.Client(transport=httpx.MockTransport(router.handler))
    yield client
    client.close()


@pytest.fixture
def retry_config() -> RetryConfig:
    """Provide retry configuration without delays."""
    return RetryConfig(max_retries=2, initial_delay=0.0, jitter=0.0)


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def http_executor(
    http_client: httpx.Client,
    retry_config: RetryConfig,
    sleeps: list[float],
) -> HTTPExecutor:
    return HTTPExecutor(http_client, retry_config, sleep_fn=sleeps.append)


@pytest.fixture
def resolver(http_executor: HTTPExecutor) -> EndpointResolver:
    return EndpointResolver(ROOT_URL, http_executor, user_agent=USER_AGENT)


@pytest.fixture
def token_provider() -> CountingTokenProvider:
    return CountingTokenProvider("t1", "t2", "t3")
