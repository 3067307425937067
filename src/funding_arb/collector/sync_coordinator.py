"""Incremental funding history sync.

For every enabled exchange, each listed coin is resumed from its latest
stored record (the sync cursor) or from the default lookback when nothing
is stored. Coins are fetched in connector-planned chunks with bounded
parallelism; exchanges run concurrently and independently.
"""

import asyncio
import time
from collections.abc import Callable

import structlog

from funding_arb.collector.guard import OperationGuard
from funding_arb.config import SyncSettings
from funding_arb.data.models import ExchangeListing, FundingRecord
from funding_arb.data.store import FundingStore
from funding_arb.exceptions import OperationInProgress, UpstreamError
from funding_arb.exchange.client import ExchangeConnector
from funding_arb.exchange.types import DAY_MS, MINUTE_MS
from funding_arb.logging import get_logger
from funding_arb.models import (
    Exchange,
    ExchangeSyncReport,
    OperationStatus,
    SyncAllResult,
)

logger = get_logger(__name__)


class SyncCoordinator:
    """Runs resumable per-coin funding syncs for all connectors.

    Usage:
        coordinator = SyncCoordinator(connectors, store, settings.sync)
        result = await coordinator.sync_all()
    """

    def __init__(
        self,
        connectors: dict[Exchange, ExchangeConnector],
        store: FundingStore,
        settings: SyncSettings,
        guard: OperationGuard | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._connectors = connectors
        self._store = store
        self._settings = settings
        self._guard = guard or OperationGuard("funding_sync")
        self._exchange_guards = {
            exchange: OperationGuard(f"funding_sync:{exchange.value}")
            for exchange in connectors
        }
        self._clock = clock

    @property
    def guard(self) -> OperationGuard:
        return self._guard

    # ──────────────────────────────────────────────
    # Public entry points
    # ──────────────────────────────────────────────

    async def sync_all(self) -> SyncAllResult:
        """Sync every exchange concurrently and collect per-exchange outcomes."""
        try:
            async with self._guard.hold():
                return await self._sync_all()
        except OperationInProgress:
            return SyncAllResult(status=OperationStatus.IN_PROGRESS)

    async def sync_exchange(self, exchange: Exchange) -> ExchangeSyncReport:
        """Sync one exchange. Never raises for upstream or storage failures."""
        guard = self._exchange_guards.get(exchange)
        if guard is None:
            return ExchangeSyncReport(
                exchange=exchange, success=False, error="Exchange is not enabled"
            )
        try:
            async with guard.hold():
                return await self._run_exchange(exchange)
        except OperationInProgress as exc:
            return ExchangeSyncReport(
                exchange=exchange, success=False, error=str(exc), in_progress=True
            )

    # ──────────────────────────────────────────────
    # Internal pipeline
    # ──────────────────────────────────────────────

    async def _sync_all(self) -> SyncAllResult:
        started = time.monotonic()
        exchanges = list(self._connectors)
        logger.info("funding_sync_started", exchanges=[ex.value for ex in exchanges])

        results = await asyncio.gather(
            *(self.sync_exchange(exchange) for exchange in exchanges),
            return_exceptions=True,
        )

        reports: list[ExchangeSyncReport] = []
        for exchange, result in zip(exchanges, results):
            if isinstance(result, BaseException):
                reports.append(
                    ExchangeSyncReport(exchange=exchange, success=False, error=str(result))
                )
            else:
                reports.append(result)

        sync_result = SyncAllResult(
            status=OperationStatus.COMPLETED,
            reports=reports,
            total_duration_seconds=round(time.monotonic() - started, 1),
        )
        logger.info(
            "funding_sync_complete",
            total_saved=sync_result.total_saved,
            failed=[r.exchange.value for r in reports if not r.success],
            duration_seconds=sync_result.total_duration_seconds,
        )
        return sync_result

    async def _run_exchange(self, exchange: Exchange) -> ExchangeSyncReport:
        started = time.monotonic()
        with structlog.contextvars.bound_contextvars(exchange=exchange.value):
            try:
                saved = await self._sync_exchange(self._connectors[exchange])
            except Exception as exc:
                duration = round(time.monotonic() - started, 1)
                logger.exception("exchange_sync_failed", duration_seconds=duration)
                return ExchangeSyncReport(
                    exchange=exchange,
                    success=False,
                    duration_seconds=duration,
                    error=str(exc),
                )

            duration = round(time.monotonic() - started, 1)
            logger.info("exchange_sync_complete", saved=saved, duration_seconds=duration)
            return ExchangeSyncReport(
                exchange=exchange,
                success=True,
                total_saved=saved,
                duration_seconds=duration,
            )

    async def _sync_exchange(self, connector: ExchangeConnector) -> int:
        exchange = connector.exchange
        listings = await self._store.list_listings(exchange)
        if not listings:
            logger.warning("no_listings_to_sync")
            return 0

        await connector.prepare()
        cursors = await self._store.max_timestamps(exchange)

        now_ms = int(self._clock() * 1000)
        end_ms = connector.window_end(now_ms)
        default_start = end_ms - self._settings.default_lookback_days * DAY_MS
        freshness_ms = self._settings.freshness_minutes * MINUTE_MS

        chunks = connector.plan_chunks(listings, store_empty=not cursors)
        total_saved = 0
        for index, chunk in enumerate(chunks, 1):
            jobs = []
            max_gap_ms = 0
            for listing in chunk:
                last_ms = cursors.get(listing.coin)
                if last_ms is not None and now_ms - last_ms < freshness_ms:
                    continue
                start_ms = (
                    last_ms + connector.resume_offset_ms
                    if last_ms is not None
                    else default_start
                )
                if start_ms >= end_ms:
                    continue
                max_gap_ms = max(max_gap_ms, end_ms - start_ms)
                jobs.append(self._sync_coin(connector, listing, start_ms, end_ms, last_ms))

            if not jobs:
                continue

            logger.debug("sync_chunk_started", chunk=f"{index}/{len(chunks)}", coins=len(jobs))
            saved = await asyncio.gather(*jobs)
            total_saved += sum(saved)

            if index < len(chunks):
                pause = connector.chunk_pause(max_gap_ms)
                if pause > 0:
                    await asyncio.sleep(pause)

        return total_saved

    async def _sync_coin(
        self,
        connector: ExchangeConnector,
        listing: ExchangeListing,
        start_ms: int,
        end_ms: int,
        last_ms: int | None,
    ) -> int:
        """Fetch and store one coin's new records. Returns the inserted count.

        Failures abandon the coin only; records stored before the failure are
        kept and become the resume point of the next run.
        """
        saved = 0
        try:
            async for batch in connector.fetch_funding(listing, start_ms, end_ms):
                records = [
                    FundingRecord(
                        exchange=connector.exchange,
                        coin=listing.coin,
                        timestamp_ms=point.timestamp_ms,
                        rate=point.rate,
                    )
                    for point in batch
                    if last_ms is None or point.timestamp_ms > last_ms
                ]
                if records:
                    saved += await self._store.insert_funding_records(
                        connector.exchange, records
                    )
        except UpstreamError as exc:
            logger.warning(
                "coin_sync_abandoned",
                coin=listing.coin,
                status=exc.status,
                error=exc.message,
                saved=saved,
            )
        except Exception:
            logger.exception("coin_sync_failed", coin=listing.coin, saved=saved)

        if saved:
            logger.debug("coin_synced", coin=listing.coin, saved=saved)
        return saved
