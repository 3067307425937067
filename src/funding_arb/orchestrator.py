"""Engine facade -- wires the collection and analytics components.

The presentation layer (CLI, bot, API) talks only to Orchestrator and
receives plain result dataclasses. In long-running mode the orchestrator
also drives the periodic loop:

  1. RECONCILE listings every listings_interval_hours
  2. SYNC funding history every sync_interval_minutes

Both steps are guarded, so a manual run that overlaps a scheduled one
reports in_progress instead of running twice.
"""

import asyncio
import time
from collections.abc import Sequence
from decimal import Decimal

from funding_arb.analytics.apr import AprCalculator
from funding_arb.analytics.integrity import IntegrityChecker, IntegrityReport
from funding_arb.collector.listing_reconciler import ListingReconciler
from funding_arb.collector.sync_coordinator import SyncCoordinator
from funding_arb.config import SchedulerSettings
from funding_arb.data.models import ThresholdPreset
from funding_arb.data.store import FundingStore
from funding_arb.exchange.client import ExchangeConnector
from funding_arb.logging import get_logger
from funding_arb.market_data.opportunity_scanner import OpportunityScanner
from funding_arb.models import (
    Exchange,
    ExchangeSyncReport,
    ListingSyncResult,
    PeriodComparison,
    ScanResult,
    SyncAllResult,
)

logger = get_logger(__name__)

_ERROR_BACKOFF_SECONDS = 10


class Orchestrator:
    """Entry point for every engine operation.

    Args:
        connectors: Enabled exchange connectors, keyed by exchange.
        store: Funding store shared by all components.
        reconciler: Listing reconciliation service.
        coordinator: Funding history sync service.
        calculator: Store-backed APR queries.
        scanner: Opportunity scanner.
        integrity: Hourly series checker.
        scheduler: Periodic loop cadence.
    """

    def __init__(
        self,
        connectors: dict[Exchange, ExchangeConnector],
        store: FundingStore,
        reconciler: ListingReconciler,
        coordinator: SyncCoordinator,
        calculator: AprCalculator,
        scanner: OpportunityScanner,
        integrity: IntegrityChecker,
        scheduler: SchedulerSettings,
    ) -> None:
        self._connectors = connectors
        self._store = store
        self._reconciler = reconciler
        self._coordinator = coordinator
        self._calculator = calculator
        self._scanner = scanner
        self._integrity = integrity
        self._scheduler = scheduler
        self._running = False
        self._stop_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._running

    # ──────────────────────────────────────────────
    # Collection
    # ──────────────────────────────────────────────

    async def sync_listings(self) -> ListingSyncResult:
        return await self._reconciler.reconcile()

    async def sync_all_exchanges(self) -> SyncAllResult:
        return await self._coordinator.sync_all()

    async def sync_exchange(self, exchange: Exchange) -> ExchangeSyncReport:
        return await self._coordinator.sync_exchange(exchange)

    # ──────────────────────────────────────────────
    # Derived views
    # ──────────────────────────────────────────────

    async def compute_apr(
        self,
        exchange: Exchange,
        coin: str,
        start_ms: int,
        end_ms: int,
        period_hours: int,
    ) -> Decimal:
        return await self._calculator.compute_apr(
            exchange, coin.upper(), start_ms, end_ms, period_hours
        )

    async def get_comparison(
        self, coin: str, exchange1: Exchange, exchange2: Exchange
    ) -> list[PeriodComparison]:
        return await self._calculator.get_comparison(coin.upper(), exchange1, exchange2)

    async def hourly_history(
        self, exchange: Exchange, coin: str, start_ms: int, end_ms: int
    ) -> list[tuple[int, Decimal]]:
        return await self._calculator.hourly_history(exchange, coin.upper(), start_ms, end_ms)

    async def scan(
        self,
        exchanges: Sequence[Exchange] | None = None,
        preset_id: int | None = None,
    ) -> ScanResult:
        """Scan for opportunities, using a stored preset's thresholds if given.

        Raises ValueError for an unknown preset id.
        """
        thresholds = None
        if preset_id is not None:
            preset = await self._store.get_preset(preset_id)
            if preset is None:
                raise ValueError(f"Unknown preset: {preset_id}")
            thresholds = preset.thresholds()
        return await self._scanner.scan(exchanges, thresholds)

    async def get_exchanges_for_coin(self, coin: str) -> list[Exchange]:
        return await self._store.find_exchanges_for_coin(coin.strip().upper())

    async def list_listings(self, exchange: Exchange) -> list[str]:
        return await self._store.get_listing_coins(exchange)

    async def list_presets(self) -> list[ThresholdPreset]:
        return await self._store.list_presets()

    async def update_preset(
        self, preset_id: int, values: dict[str, Decimal]
    ) -> ThresholdPreset | None:
        return await self._store.update_preset(preset_id, values)

    async def check_integrity(
        self, exchanges: Sequence[Exchange] | None = None
    ) -> list[IntegrityReport]:
        """Check hourly series; Binance is skipped unless explicitly named."""
        targets = exchanges or [ex for ex in Exchange if ex is not Exchange.BINANCE]
        return [await self._integrity.check(exchange) for exchange in targets]

    async def get_data_status(self) -> dict:
        return await self._store.get_data_status()

    # ──────────────────────────────────────────────
    # Periodic loop
    # ──────────────────────────────────────────────

    async def start(self) -> None:
        """Run the periodic reconcile/sync loop until stop() is called."""
        logger.info(
            "orchestrator_starting",
            exchanges=[ex.value for ex in self._connectors],
            sync_interval_minutes=self._scheduler.sync_interval_minutes,
            listings_interval_hours=self._scheduler.listings_interval_hours,
        )
        self._running = True
        self._stop_event.clear()
        try:
            await self._run_loop()
        finally:
            self._running = False
            logger.info("orchestrator_stopped")

    async def stop(self) -> None:
        logger.info("orchestrator_stopping")
        self._running = False
        self._stop_event.set()

    async def close(self) -> None:
        """Release every connector's network resources."""
        for connector in self._connectors.values():
            await connector.close()

    async def _wait(self, seconds: float) -> None:
        """Sleep up to seconds, waking early when stop() is called."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=max(seconds, 0))
        except asyncio.TimeoutError:
            pass

    async def _run_loop(self) -> None:
        listings_every = self._scheduler.listings_interval_hours * 3600
        sync_every = self._scheduler.sync_interval_minutes * 60
        next_listings = 0.0
        next_sync = 0.0

        while self._running:
            try:
                if time.monotonic() >= next_listings:
                    result = await self.sync_listings()
                    logger.info(
                        "scheduled_listing_sync",
                        status=result.status.value,
                        matched=result.total_matched,
                        reason=result.reason,
                    )
                    next_listings = time.monotonic() + listings_every

                if time.monotonic() >= next_sync:
                    sync_result = await self.sync_all_exchanges()
                    logger.info(
                        "scheduled_funding_sync",
                        status=sync_result.status.value,
                        saved=sync_result.total_saved,
                    )
                    next_sync = time.monotonic() + sync_every

                await self._wait(min(next_listings, next_sync) - time.monotonic())
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("orchestrator_cycle_error", error=str(e), exc_info=True)
                await self._wait(_ERROR_BACKOFF_SECONDS)
