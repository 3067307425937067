"""Shared test fixtures for the funding sync and scan engine."""

from decimal import Decimal

import pytest
import pytest_asyncio

from funding_arb.config import (
    AppSettings,
    BinanceSettings,
    ConnectorSettings,
    ExtendedSettings,
    HyperliquidSettings,
    LighterSettings,
    ParadexSettings,
)
from funding_arb.data.database import HistoricalDatabase
from funding_arb.data.models import FundingRecord
from funding_arb.data.store import FundingStore
from funding_arb.exchange.client import ExchangeConnector
from funding_arb.exchange.types import FundingPoint, RawMarket
from funding_arb.models import Exchange

HOUR_MS = 3_600_000

# 2024-01-15 12:00:00 UTC, on the hour
NOW_MS = 1_705_320_000_000

_NO_DELAYS = {
    "chunk_delay": 0.0,
    "backlog_chunk_delay": 0.0,
    "page_delay": 0.0,
    "rate_limit_delay": 0.0,
    "unavailable_delay": 0.0,
}


@pytest.fixture
def mock_settings() -> AppSettings:
    """Return AppSettings with every pause and jitter disabled."""
    return AppSettings(
        log_level="DEBUG",
        binance=BinanceSettings(**_NO_DELAYS),
        hyperliquid=HyperliquidSettings(**_NO_DELAYS),
        paradex=ParadexSettings(**_NO_DELAYS, start_jitter=0.0, long_pause=0.0),
        lighter=LighterSettings(**_NO_DELAYS),
        extended=ExtendedSettings(**_NO_DELAYS),
    )


@pytest.fixture
def clock():
    """A fixed wall clock at NOW_MS (seconds, like time.time)."""
    return lambda: NOW_MS / 1000


@pytest_asyncio.fixture
async def database(tmp_path):
    async with HistoricalDatabase(str(tmp_path / "funding.db")) as db:
        yield db


@pytest_asyncio.fixture
async def store(database) -> FundingStore:
    return FundingStore(database)


@pytest.fixture
def make_series():
    """Build evenly spaced FundingRecords.

    make_series(exchange, coin, start_ms, count, step_ms, rate)
    """

    def _make(
        exchange: Exchange,
        coin: str,
        start_ms: int,
        count: int,
        step_ms: int = HOUR_MS,
        rate: str | Decimal = "0.0001",
    ) -> list[FundingRecord]:
        return [
            FundingRecord(
                exchange=exchange,
                coin=coin,
                timestamp_ms=start_ms + i * step_ms,
                rate=Decimal(str(rate)),
            )
            for i in range(count)
        ]

    return _make


class FakeConnector(ExchangeConnector):
    """In-memory connector serving canned markets and history.

    history maps raw_symbol -> FundingPoints; errors maps raw_symbol -> an
    exception raised before anything is yielded, fail_after -> an exception
    raised after the first batch.
    """

    def __init__(
        self,
        exchange: Exchange,
        markets: list[RawMarket] | Exception | None = None,
        history: dict[str, list[FundingPoint]] | None = None,
        errors: dict[str, Exception] | None = None,
        fail_after: dict[str, Exception] | None = None,
        settings: ConnectorSettings | None = None,
    ) -> None:
        self.exchange = exchange
        super().__init__(settings or ConnectorSettings(**_NO_DELAYS))
        self.markets = markets if markets is not None else []
        self.history = history or {}
        self.errors = errors or {}
        self.fail_after = fail_after or {}
        self.list_calls = 0
        self.fetch_calls: list[tuple[str, int, int]] = []

    async def list_markets(self) -> list[RawMarket]:
        self.list_calls += 1
        if isinstance(self.markets, Exception):
            raise self.markets
        return self.markets

    async def fetch_funding(self, listing, start_ms, end_ms):
        self.fetch_calls.append((listing.coin, start_ms, end_ms))
        if listing.raw_symbol in self.errors:
            raise self.errors[listing.raw_symbol]
        points = [
            p for p in self.history.get(listing.raw_symbol, [])
            if start_ms <= p.timestamp_ms <= end_ms
        ]
        if listing.raw_symbol in self.fail_after:
            if points:
                yield points[:1]
            raise self.fail_after[listing.raw_symbol]
        if points:
            yield points


@pytest.fixture
def fake_connector():
    return FakeConnector
