"""Tests for the Orchestrator facade and its periodic loop.

Tests verify:
- Listings -> sync -> scan end to end over fake connectors and real SQLite
- Preset thresholds are resolved from the store; unknown presets raise
- Coin lookups are case-insensitive
- Integrity checks skip Binance unless asked
- start()/stop() run the scheduled steps and exit cleanly
- A failing cycle backs off instead of killing the loop
"""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from funding_arb.analytics.apr import AprCalculator
from funding_arb.analytics.integrity import IntegrityChecker
from funding_arb.collector.listing_reconciler import ListingReconciler
from funding_arb.collector.sync_coordinator import SyncCoordinator
from funding_arb.config import ListingSettings, SchedulerSettings, ScannerSettings, SyncSettings
from funding_arb.exchange.types import FundingPoint, RawMarket
from funding_arb.market_data.opportunity_scanner import OpportunityScanner
from funding_arb.models import Exchange, OperationStatus
from funding_arb.orchestrator import Orchestrator

HOUR_MS = 3_600_000
NOW_MS = 1_705_320_000_000


def _points(rate: str, step_hours: int, hours: int = 360) -> list[FundingPoint]:
    return [
        FundingPoint(NOW_MS - k * step_hours * HOUR_MS, Decimal(rate))
        for k in range(hours // step_hours + 1)
    ]


@pytest.fixture
def connectors(fake_connector):
    return {
        Exchange.BINANCE: fake_connector(
            Exchange.BINANCE,
            markets=[
                RawMarket("ABCUSDT", interval_hours=8),
                RawMarket("ONLYUSDT", interval_hours=8),
            ],
            history={"ABCUSDT": _points("0.0005", 8)},
        ),
        Exchange.HYPERLIQUID: fake_connector(
            Exchange.HYPERLIQUID,
            markets=[RawMarket("ABC")],
            history={"ABC": _points("0.00002", 1)},
        ),
    }


@pytest.fixture
def orchestrator(connectors, store, clock) -> Orchestrator:
    return Orchestrator(
        connectors=connectors,
        store=store,
        reconciler=ListingReconciler(connectors, store, ListingSettings()),
        coordinator=SyncCoordinator(connectors, store, SyncSettings(), clock=clock),
        calculator=AprCalculator(store, clock=clock),
        scanner=OpportunityScanner(store, ScannerSettings(), clock=clock),
        integrity=IntegrityChecker(store, clock=clock),
        scheduler=SchedulerSettings(),
    )


def _mocked_orchestrator(**overrides) -> Orchestrator:
    parts = {
        "connectors": {},
        "store": MagicMock(),
        "reconciler": MagicMock(),
        "coordinator": MagicMock(),
        "calculator": MagicMock(),
        "scanner": MagicMock(),
        "integrity": MagicMock(),
        "scheduler": SchedulerSettings(),
    }
    parts.update(overrides)
    return Orchestrator(**parts)


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_listings_sync_scan(self, orchestrator):
        listings = await orchestrator.sync_listings()
        assert listings.status is OperationStatus.COMPLETED
        assert listings.symbols == ["ABC"]

        synced = await orchestrator.sync_all_exchanges()
        assert synced.status is OperationStatus.COMPLETED
        assert all(report.success for report in synced.reports)
        # 14 days back from now: 43 Binance settlements, 337 hourly points
        assert synced.total_saved == 43 + 337

        result = await orchestrator.scan(preset_id=1)
        assert result.status is OperationStatus.COMPLETED
        assert len(result.opportunities) == 1
        opp = result.opportunities[0]
        assert opp.coin == "ABC"
        assert opp.pair == "H-B"
        assert opp.long_exchange is Exchange.HYPERLIQUID
        assert opp.short_exchange is Exchange.BINANCE
        assert opp.diffs == [Decimal("37.23")] * 5

    @pytest.mark.asyncio
    async def test_default_thresholds_reject_spread(self, orchestrator):
        await orchestrator.sync_listings()
        await orchestrator.sync_all_exchanges()

        result = await orchestrator.scan()

        assert result.opportunities == []

    @pytest.mark.asyncio
    async def test_comparison_uppercases_coin(self, orchestrator):
        await orchestrator.sync_listings()
        await orchestrator.sync_all_exchanges()

        rows = await orchestrator.get_comparison("abc", Exchange.BINANCE, Exchange.HYPERLIQUID)

        assert [row.period for row in rows] == ["8h", "1d", "3d", "7d", "14d"]
        assert rows[0].apr1 == Decimal("54.75")
        assert rows[0].apr2 == Decimal("17.52")

    @pytest.mark.asyncio
    async def test_unknown_preset_raises(self, orchestrator):
        with pytest.raises(ValueError):
            await orchestrator.scan(preset_id=99)


class TestLookups:
    @pytest.mark.asyncio
    async def test_exchanges_for_coin(self, orchestrator):
        await orchestrator.sync_listings()

        assert await orchestrator.get_exchanges_for_coin(" abc ") == [
            Exchange.BINANCE,
            Exchange.HYPERLIQUID,
        ]
        assert await orchestrator.get_exchanges_for_coin("ONLY") == []

    @pytest.mark.asyncio
    async def test_list_listings(self, orchestrator):
        await orchestrator.sync_listings()

        assert await orchestrator.list_listings(Exchange.BINANCE) == ["ABC"]
        assert await orchestrator.list_listings(Exchange.LIGHTER) == []

    @pytest.mark.asyncio
    async def test_presets_round_trip(self, orchestrator):
        updated = await orchestrator.update_preset(2, {"d14": Decimal("12.5")})

        assert updated.d14 == Decimal("12.5")
        assert len(await orchestrator.list_presets()) == 5

    @pytest.mark.asyncio
    async def test_data_status(self, orchestrator):
        await orchestrator.sync_listings()
        await orchestrator.sync_all_exchanges()

        status = await orchestrator.get_data_status()

        assert status["total_listings"] == 2
        assert status["total_funding_records"] == 380
        assert status["latest_ms"] == NOW_MS

    @pytest.mark.asyncio
    async def test_integrity_skips_binance_by_default(self):
        integrity = MagicMock()
        integrity.check = AsyncMock(side_effect=lambda exchange: exchange)
        orchestrator = _mocked_orchestrator(integrity=integrity)

        checked = await orchestrator.check_integrity()

        assert checked == [
            Exchange.HYPERLIQUID,
            Exchange.PARADEX,
            Exchange.LIGHTER,
            Exchange.EXTENDED,
        ]

    @pytest.mark.asyncio
    async def test_integrity_for_named_exchanges(self):
        integrity = MagicMock()
        integrity.check = AsyncMock(side_effect=lambda exchange: exchange)
        orchestrator = _mocked_orchestrator(integrity=integrity)

        assert await orchestrator.check_integrity([Exchange.LIGHTER]) == [Exchange.LIGHTER]


class TestLoop:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, orchestrator, connectors):
        task = asyncio.create_task(orchestrator.start())
        await asyncio.sleep(0.2)
        assert orchestrator.is_running

        await orchestrator.stop()
        await asyncio.wait_for(task, timeout=2)

        assert not orchestrator.is_running
        assert connectors[Exchange.BINANCE].list_calls == 1
        assert connectors[Exchange.HYPERLIQUID].fetch_calls

    @pytest.mark.asyncio
    async def test_cycle_error_backs_off(self):
        reconciler = MagicMock()
        reconciler.reconcile = AsyncMock(side_effect=RuntimeError("boom"))
        orchestrator = _mocked_orchestrator(reconciler=reconciler)
        waits: list[float] = []

        async def fake_wait(seconds: float) -> None:
            waits.append(seconds)
            await orchestrator.stop()

        orchestrator._wait = fake_wait  # type: ignore[method-assign]
        await asyncio.wait_for(orchestrator.start(), timeout=2)

        assert waits == [10]
        assert not orchestrator.is_running

    @pytest.mark.asyncio
    async def test_close_closes_connectors(self):
        connector = MagicMock()
        connector.close = AsyncMock()
        orchestrator = _mocked_orchestrator(connectors={Exchange.BINANCE: connector})

        await orchestrator.close()

        connector.close.assert_awaited_once()
