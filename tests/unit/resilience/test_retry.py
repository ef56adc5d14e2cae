"""Unit tests for retry logic"""
import pytest
import httpx
import openai
from unittest.mock import AsyncMock, patch

from habitforge.resilience.retry import (
    MAX_RETRIES,
    calculate_backoff,
    is_retryable_error,
    retry_with_backoff,
    with_retry,
)

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def status_error(code):
    response = httpx.Response(code, request=REQUEST)
    return httpx.HTTPStatusError(f"HTTP {code}", request=REQUEST, response=response)


@pytest.fixture(autouse=True)
def no_sleep():
    """Skip real backoff delays"""
    with patch('habitforge.resilience.retry.asyncio.sleep', new_callable=AsyncMock) as mock_sleep:
        yield mock_sleep


# ============================================================================
# Classification
# ============================================================================

def test_is_retryable_error_timeout():
    assert is_retryable_error(httpx.TimeoutException("Timeout")) is True
    assert is_retryable_error(httpx.ReadTimeout("Read timeout")) is True


def test_is_retryable_error_http_status():
    for code in (429, 500, 502, 503, 504):
        assert is_retryable_error(status_error(code)) is True, f"HTTP {code} should be retryable"

    for code in (400, 401, 403, 404, 422):
        assert is_retryable_error(status_error(code)) is False, f"HTTP {code} should not be retryable"


def test_is_retryable_error_openai():
    rate_limited = openai.RateLimitError(
        "Rate limited", response=httpx.Response(429, request=REQUEST), body=None
    )
    bad_request = openai.BadRequestError(
        "Bad request", response=httpx.Response(400, request=REQUEST), body=None
    )

    assert is_retryable_error(openai.APIConnectionError(request=REQUEST)) is True
    assert is_retryable_error(openai.APITimeoutError(request=REQUEST)) is True
    assert is_retryable_error(rate_limited) is True
    assert is_retryable_error(bad_request) is False


def test_is_retryable_error_non_retryable():
    assert is_retryable_error(ValueError("Bad value")) is False
    assert is_retryable_error(KeyError("Missing key")) is False


def test_calculate_backoff():
    assert 0.9 <= calculate_backoff(0) <= 1.1
    assert 1.8 <= calculate_backoff(1) <= 2.2
    assert 3.6 <= calculate_backoff(2) <= 4.4


def test_calculate_backoff_max_delay():
    assert calculate_backoff(20) <= 33.0


# ============================================================================
# retry_with_backoff
# ============================================================================

@pytest.mark.asyncio
async def test_retry_success_first_try(no_sleep):
    func = AsyncMock(return_value="success")

    assert await retry_with_backoff(func, max_retries=3) == "success"
    assert func.await_count == 1
    no_sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_retry_success_after_retries(no_sleep):
    attempt = 0

    async def flaky_function():
        nonlocal attempt
        attempt += 1
        if attempt < 3:
            raise httpx.TimeoutException("Simulated timeout")
        return "success"

    result = await retry_with_backoff(flaky_function, max_retries=3)

    assert result == "success"
    assert attempt == 3
    assert no_sleep.await_count == 2


@pytest.mark.asyncio
async def test_retry_exhausted():
    attempt = 0

    async def always_fails():
        nonlocal attempt
        attempt += 1
        raise httpx.TimeoutException("Always fails")

    with pytest.raises(httpx.TimeoutException, match="Always fails"):
        await retry_with_backoff(always_fails)

    # Initial call + MAX_RETRIES retries
    assert attempt == MAX_RETRIES + 1


@pytest.mark.asyncio
async def test_retry_non_retryable_error():
    func = AsyncMock(side_effect=status_error(401))

    with pytest.raises(httpx.HTTPStatusError):
        await retry_with_backoff(func, max_retries=3)

    assert func.await_count == 1


@pytest.mark.asyncio
async def test_retry_preserves_function_args():
    func = AsyncMock(return_value=42)

    await retry_with_backoff(func, "messages", 0.5, api_name="openai", max_retries=1)

    func.assert_awaited_once_with("messages", 0.5)


@pytest.mark.asyncio
@patch('habitforge.resilience.retry.record_retry')
async def test_retry_records_metric(mock_record_retry):
    func = AsyncMock(side_effect=[status_error(503), "ok"])

    await retry_with_backoff(func, api_name="openai")

    mock_record_retry.assert_called_once_with("openai")


# ============================================================================
# with_retry decorator
# ============================================================================

@pytest.mark.asyncio
async def test_with_retry_decorator():
    attempt = 0

    @with_retry(max_retries=2)
    async def flaky_function():
        nonlocal attempt
        attempt += 1
        if attempt < 2:
            raise httpx.TimeoutException("Flaky error")
        return "success"

    assert await flaky_function() == "success"
    assert attempt == 2


@pytest.mark.asyncio
async def test_with_retry_decorator_exhausted():
    attempt = 0

    @with_retry(max_retries=2)
    async def always_fails():
        nonlocal attempt
        attempt += 1
        raise httpx.TimeoutException("Always fails")

    with pytest.raises(httpx.TimeoutException):
        await always_fails()

    assert attempt == 3
