"""Property-based tests for the HTTP executor.

- Delay increases exponentially with each attempt
- Delay never exceeds max_delay
- Jitter is within configured bounds
- A request is sent at most max_retries + 1 times
"""

from __future__ import annotations

import httpx
import pytest
from hypothesis import assume, given, settings
from hypothesis import strategies as st

from hiro_client.config import RetryConfig
from hiro_client.core.http_executor import (
    HTTPExecutor,
    calculate_retry_delay,
    is_transient_status,
)
from hiro_client.errors import TransportError

# Strategies for generating test data
initial_delay_strategy = st.floats(min_value=0.1, max_value=10.0)
max_delay_strategy = st.floats(min_value=10.0, max_value=300.0)
exponential_base_strategy = st.floats(min_value=1.5, max_value=3.0)
jitter_strategy = st.floats(min_value=0.0, max_value=1.0)
attempt_strategy = st.integers(min_value=0, max_value=10)


def counting_executor(
    statuses: list[int], max_retries: int
) -> tuple[HTTPExecutor, list[httpx.Request], list[float]]:
    requests: list[httpx.Request] = []
    sleeps: list[float] = []
    remaining = list(statuses)

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        status = remaining.pop(0) if len(remaining) > 1 else remaining[0]
        return httpx.Response(status)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    config = RetryConfig(max_retries=max_retries, initial_delay=0.0, jitter=0.0)
    return HTTPExecutor(client, config, sleep_fn=sleeps.append), requests, sleeps


class TestRetryExponentialBackoff:
    """Property tests for retry exponential backoff."""

    @given(
        initial_delay=initial_delay_strategy,
        max_delay=max_delay_strategy,
        exponential_base=exponential_base_strategy,
        attempt=attempt_strategy,
    )
    @settings(max_examples=100)
    def test_delay_never_exceeds_max(
        self,
        initial_delay: float,
        max_delay: float,
        exponential_base: float,
        attempt: int,
    ) -> None:
        """Property: Delay never exceeds max_delay."""
        assume(max_delay > initial_delay)

        config = RetryConfig(
            max_retries=10,
            initial_delay=initial_delay,
            max_delay=max_delay,
            exponential_base=exponential_base,
            jitter=0.0,
        )

        assert calculate_retry_delay(config, attempt) <= max_delay

    @given(
        initial_delay=initial_delay_strategy,
        exponential_base=exponential_base_strategy,
        attempt=st.integers(min_value=0, max_value=5),
    )
    @settings(max_examples=100)
    def test_delay_grows_with_attempts(
        self,
        initial_delay: float,
        exponential_base: float,
        attempt: int,
    ) -> None:
        """Property: Without jitter the next attempt never waits less."""
        config = RetryConfig(
            initial_delay=initial_delay,
            max_delay=300.0,
            exponential_base=exponential_base,
            jitter=0.0,
        )

        assert calculate_retry_delay(config, attempt + 1) >= calculate_retry_delay(
            config, attempt
        )

    @given(
        initial_delay=initial_delay_strategy,
        jitter=jitter_strategy,
        attempt=st.integers(min_value=0, max_value=3),
    )
    @settings(max_examples=100)
    def test_jitter_within_bounds(
        self,
        initial_delay: float,
        jitter: float,
        attempt: int,
    ) -> None:
        """Property: Jitter stays within +/- jitter * base delay."""
        config = RetryConfig(
            initial_delay=initial_delay,
            max_delay=300.0,
            exponential_base=2.0,
            jitter=jitter,
        )
        base = min(initial_delay * 2.0**attempt, 300.0)

        delay = calculate_retry_delay(config, attempt)

        assert base * (1 - jitter) - 1e-9 <= delay <= base * (1 + jitter) + 1e-9


class TestBoundedAttempts:
    @given(
        max_retries=st.integers(min_value=0, max_value=5),
        status=st.sampled_from([502, 503, 504]),
    )
    @settings(max_examples=50)
    def test_transient_status_attempts(self, max_retries: int, status: int) -> None:
        """Property: A persistent gateway failure is sent max_retries + 1 times."""
        executor, requests, sleeps = counting_executor([status], max_retries)

        with pytest.raises(TransportError):
            executor.execute("GET", "https://api.example.com/x")

        assert len(requests) == max_retries + 1
        assert len(sleeps) == max_retries

    @given(
        max_retries=st.integers(min_value=0, max_value=5),
        status=st.sampled_from([200, 204, 400, 401, 404, 500]),
    )
    @settings(max_examples=50)
    def test_other_statuses_are_returned(self, max_retries: int, status: int) -> None:
        """Property: Non-transient statuses are returned after one attempt."""
        executor, requests, _ = counting_executor([status], max_retries)

        response = executor.execute("GET", "https://api.example.com/x")

        assert response.status_code == status
        assert len(requests) == 1

    @given(failures=st.integers(min_value=0, max_value=3))
    def test_recovers_within_retry_limit(self, failures: int) -> None:
        executor, requests, _ = counting_executor([503] * failures + [200], 3)

        assert executor.execute("GET", "https://api.example.com/x").status_code == 200
        assert len(requests) == failures + 1

    def test_non_transient_exception_is_not_retried(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            raise httpx.UnsupportedProtocol("ftp")

        client = httpx.Client(transport=httpx.MockTransport(handler))
        executor = HTTPExecutor(client, RetryConfig(initial_delay=0.0), sleep_fn=lambda _: None)

        with pytest.raises(TransportError):
            executor.execute("GET", "https://api.example.com/x")
        assert len(requests) == 1

    @given(status=st.integers(min_value=100, max_value=599))
    def test_transient_status_set(self, status: int) -> None:
        assert is_transient_status(status) == (status in (502, 503, 504))
