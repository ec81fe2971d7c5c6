"""
Test suite for reliability patterns and error handling.

Validates transient-error translation, retry logic, timeouts and step pacing.
"""

import asyncio
import time

import httpx
import pytest

from bouchenator.core.exceptions import ExternalServiceError, RateLimitError
from bouchenator.core.exceptions import TimeoutError as BouchenatorTimeoutError
from bouchenator.utils.reliability import (
    describe_http_error,
    elapsed_ms,
    enforce_min_duration,
    raise_for_transient,
    track_performance,
    with_retry,
    with_timeout,
)


class TestRaiseForTransient:
    """Test HTTP status translation."""

    def test_rate_limit_carries_retry_after(self):
        """Test 429 becomes RateLimitError with the server's delay."""
        response = httpx.Response(429, headers={"retry-after": "3"})

        with pytest.raises(RateLimitError) as exc_info:
            raise_for_transient("gdelt", response)

        assert exc_info.value.retry_after == 3.0

    def test_unparseable_retry_after(self):
        response = httpx.Response(429, headers={"retry-after": "soon"})

        with pytest.raises(RateLimitError) as exc_info:
            raise_for_transient("gdelt", response)

        assert exc_info.value.retry_after is None

    def test_server_error(self):
        """Test 5xx becomes ExternalServiceError."""
        with pytest.raises(ExternalServiceError) as exc_info:
            raise_for_transient("wikidata", httpx.Response(503))

        assert exc_info.value.status_code == 503
        assert exc_info.value.message == "wikidata: server error"

    def test_other_statuses_pass_through(self):
        """Test 2xx and 4xx are left to the caller."""
        raise_for_transient("x", httpx.Response(200))
        raise_for_transient("x", httpx.Response(404))


class TestRetryLogic:
    """Test retry decorator functionality."""

    def test_retry_on_transient_failure(self):
        """Test retry succeeds after a transient failure."""
        calls = []

        @with_retry(max_attempts=3, backoff_base=0.01)
        async def flaky():
            calls.append(1)
            if len(calls) < 2:
                raise ExternalServiceError("svc", "temporary failure")
            return "success"

        assert asyncio.run(flaky()) == "success"
        assert len(calls) == 2

    def test_retry_exhaustion_reraises(self):
        """Test the last transient error is re-raised when attempts run out."""
        calls = []

        @with_retry(max_attempts=2, backoff_base=0.01)
        async def always_limited():
            calls.append(1)
            raise RateLimitError("slow down")

        with pytest.raises(RateLimitError):
            asyncio.run(always_limited())
        assert len(calls) == 2

    def test_connect_errors_are_not_retried(self):
        """Test non-transient errors fail immediately."""
        calls = []

        @with_retry(max_attempts=3, backoff_base=0.01)
        async def unreachable():
            calls.append(1)
            raise httpx.ConnectError("down")

        with pytest.raises(httpx.ConnectError):
            asyncio.run(unreachable())
        assert len(calls) == 1


class TestTimeouts:
    def test_slow_work_is_cancelled(self):
        """Test with_timeout raises the typed timeout."""
        async def slow():
            await asyncio.sleep(5)

        with pytest.raises(BouchenatorTimeoutError) as exc_info:
            asyncio.run(with_timeout(slow(), 0.05, "slow op"))

        assert "slow op timed out" in str(exc_info.value)

    def test_fast_work_returns_value(self):
        async def fast():
            return 42

        assert asyncio.run(with_timeout(fast(), 1, "fast op")) == 42


class TestPacing:
    def test_min_duration_waits(self):
        """Test a step is padded to the minimum duration."""
        async def run():
            t0 = time.perf_counter()
            await enforce_min_duration(t0, 80)
            return elapsed_ms(t0)

        assert asyncio.run(run()) >= 75

    def test_zero_minimum_is_a_no_op(self):
        async def run():
            t0 = time.perf_counter()
            await enforce_min_duration(t0, 0)
            return elapsed_ms(t0)

        assert asyncio.run(run()) < 50


class TestPerformanceTracking:
    def test_result_and_errors_pass_through(self):
        @track_performance("demo")
        async def ok():
            return "done"

        @track_performance("demo")
        async def broken():
            raise ValueError("bad")

        assert asyncio.run(ok()) == "done"
        with pytest.raises(ValueError):
            asyncio.run(broken())


class TestDescribeHttpError:
    def test_descriptions(self):
        request = httpx.Request("GET", "https://acme.com/")
        response = httpx.Response(403, request=request)

        assert describe_http_error(None) == "unknown error"
        assert describe_http_error(httpx.ReadTimeout("slow", request=request)) == "timeout"
        assert describe_http_error(httpx.HTTPStatusError("no", request=request, response=response)) == "HTTP 403"
        assert describe_http_error(httpx.ConnectError("refused")) == "ConnectError: refused"
