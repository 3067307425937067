"""Tests for BinanceConnector.

All tests use a mocked ccxt exchange object to avoid real API calls.
"""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import ccxt.async_support as ccxt_async
import pytest

from funding_arb.data.models import ExchangeListing
from funding_arb.exceptions import UpstreamError
from funding_arb.exchange.binance_client import BinanceConnector
from funding_arb.models import Exchange

T0 = 1_700_000_000_000
EIGHT_HOURS_MS = 8 * 3_600_000

MOCK_FUNDING_INFO = [
    {"symbol": "BTCUSDT", "fundingIntervalHours": 8, "adjustedFundingRateCap": "0.02"},
    {"symbol": "1000PEPEUSDT", "fundingIntervalHours": 4},
    {"symbol": "ETHUSDC", "fundingIntervalHours": 8},
    {"symbol": "ETHBTC", "fundingIntervalHours": 8},
]

LISTING = ExchangeListing(exchange=Exchange.BINANCE, raw_symbol="BTCUSDT", coin="BTC", interval_hours=8)


def _rows(count: int, start: int = T0) -> list[dict]:
    return [
        {"symbol": "BTCUSDT", "fundingTime": start + i * EIGHT_HOURS_MS, "fundingRate": "0.00010000"}
        for i in range(count)
    ]


@pytest.fixture
def mock_ccxt() -> MagicMock:
    client = MagicMock()
    client.fapiPublicGetFundingInfo = AsyncMock(return_value=MOCK_FUNDING_INFO)
    client.fapiPublicGetFundingRate = AsyncMock(return_value=[])
    client.close = AsyncMock()
    return client


@pytest.fixture
def connector(mock_ccxt, mock_settings) -> BinanceConnector:
    return BinanceConnector(mock_settings.binance.model_copy(update={"page_size": 3}), client=mock_ccxt)


@pytest.mark.asyncio
async def test_list_markets_keeps_usdt_perpetuals(connector):
    markets = await connector.list_markets()

    assert [m.raw_symbol for m in markets] == ["BTCUSDT", "1000PEPEUSDT"]
    assert [m.interval_hours for m in markets] == [8, 4]


@pytest.mark.asyncio
async def test_fetch_pages_forward_while_pages_are_full(connector, mock_ccxt):
    first = _rows(3)
    second = _rows(1, start=T0 + 3 * EIGHT_HOURS_MS)
    mock_ccxt.fapiPublicGetFundingRate = AsyncMock(side_effect=[first, second])

    batches = [b async for b in connector.fetch_funding(LISTING, T0, T0 + 10 * EIGHT_HOURS_MS)]

    assert [len(b) for b in batches] == [3, 1]
    assert batches[0][0].rate == Decimal("0.00010000")
    calls = mock_ccxt.fapiPublicGetFundingRate.await_args_list
    assert calls[0].args[0] == {"symbol": "BTCUSDT", "startTime": T0, "limit": 3}
    assert calls[1].args[0]["startTime"] == first[-1]["fundingTime"] + 1


@pytest.mark.asyncio
async def test_fetch_drops_records_after_window_end(connector, mock_ccxt):
    mock_ccxt.fapiPublicGetFundingRate = AsyncMock(return_value=_rows(2))

    batches = [b async for b in connector.fetch_funding(LISTING, T0, T0 + 1)]

    assert [p.timestamp_ms for p in batches[0]] == [T0]


@pytest.mark.asyncio
async def test_rate_limit_maps_to_429_and_is_retried(connector, mock_ccxt):
    mock_ccxt.fapiPublicGetFundingRate = AsyncMock(
        side_effect=ccxt_async.RateLimitExceeded("binance 429")
    )

    with patch("funding_arb.exchange.retry.asyncio.sleep", new_callable=AsyncMock):
        with pytest.raises(UpstreamError) as exc_info:
            [b async for b in connector.fetch_funding(LISTING, T0, T0 + EIGHT_HOURS_MS)]

    assert exc_info.value.status == 429
    assert mock_ccxt.fapiPublicGetFundingRate.await_count == 2


@pytest.mark.asyncio
async def test_network_error_maps_to_503(connector, mock_ccxt):
    mock_ccxt.fapiPublicGetFundingInfo = AsyncMock(side_effect=ccxt_async.RequestTimeout("timeout"))

    with patch("funding_arb.exchange.retry.asyncio.sleep", new_callable=AsyncMock):
        with pytest.raises(UpstreamError) as exc_info:
            await connector.list_markets()

    assert exc_info.value.status == 503


@pytest.mark.asyncio
async def test_bad_request_is_permanent(connector, mock_ccxt):
    mock_ccxt.fapiPublicGetFundingRate = AsyncMock(side_effect=ccxt_async.BadSymbol("invalid symbol"))

    with pytest.raises(UpstreamError) as exc_info:
        [b async for b in connector.fetch_funding(LISTING, T0, T0 + EIGHT_HOURS_MS)]

    assert exc_info.value.status == 400
    assert mock_ccxt.fapiPublicGetFundingRate.await_count == 1


@pytest.mark.asyncio
async def test_close_releases_ccxt(connector, mock_ccxt):
    await connector.close()
    mock_ccxt.close.assert_awaited_once()
