"""Tests for RetryPolicy and UpstreamError classification."""

from unittest.mock import AsyncMock, patch

import pytest

from funding_arb.exceptions import MalformedPayloadError, UpstreamError
from funding_arb.exchange.retry import RetryPolicy


@pytest.fixture
def policy() -> RetryPolicy:
    return RetryPolicy(exchange="Hyperliquid", max_attempts=2, rate_limit_delay=15.0, unavailable_delay=30.0)


def test_error_classification():
    assert UpstreamError("X", 429, "slow down").is_rate_limited
    assert UpstreamError("X", 503, "down").is_unavailable
    assert UpstreamError("X", None, "timeout").is_transient
    assert not UpstreamError("X", 400, "bad").is_transient
    assert not UpstreamError("X", 404, "gone").is_transient
    assert not MalformedPayloadError("X", "garbage").is_transient


@pytest.mark.asyncio
async def test_rate_limit_retried_after_rate_limit_delay(policy):
    fn = AsyncMock(side_effect=[UpstreamError("X", 429, "slow"), {"ok": True}])

    with patch("funding_arb.exchange.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
        result = await policy.call(fn, "a", key="b")

    assert result == {"ok": True}
    assert fn.await_count == 2
    fn.assert_awaited_with("a", key="b")
    sleep.assert_awaited_once_with(15.0)


@pytest.mark.asyncio
async def test_unavailable_retried_after_unavailable_delay(policy):
    fn = AsyncMock(side_effect=[UpstreamError("X", 502, "bad gateway"), [1, 2]])

    with patch("funding_arb.exchange.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
        assert await policy.call(fn) == [1, 2]

    sleep.assert_awaited_once_with(30.0)


@pytest.mark.asyncio
async def test_permanent_error_is_not_retried(policy):
    fn = AsyncMock(side_effect=UpstreamError("X", 400, "bad request"))

    with patch("funding_arb.exchange.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
        with pytest.raises(UpstreamError) as exc_info:
            await policy.call(fn)

    assert exc_info.value.status == 400
    assert fn.await_count == 1
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_malformed_payload_is_not_retried(policy):
    fn = AsyncMock(side_effect=MalformedPayloadError("X", "no universe"))

    with patch("funding_arb.exchange.retry.asyncio.sleep", new_callable=AsyncMock):
        with pytest.raises(MalformedPayloadError):
            await policy.call(fn)

    assert fn.await_count == 1


@pytest.mark.asyncio
async def test_exhausted_attempts_reraise_last_error(policy):
    fn = AsyncMock(side_effect=[UpstreamError("X", None, "timeout"), UpstreamError("X", 429, "slow")])

    with patch("funding_arb.exchange.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
        with pytest.raises(UpstreamError) as exc_info:
            await policy.call(fn)

    assert exc_info.value.status == 429
    assert fn.await_count == 2
    assert sleep.await_count == 1


def test_from_settings_never_drops_below_one_attempt():
    from funding_arb.config import LighterSettings

    policy = RetryPolicy.from_settings("Lighter", LighterSettings(max_attempts=0))

    assert policy.max_attempts == 1
