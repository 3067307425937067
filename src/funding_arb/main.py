"""Command-line entry point for the funding sync and scan engine.

Commands:
  run        periodic listing reconciliation + funding sync (default)
  listings   reconcile exchange listings once
  sync       sync funding history once (all exchanges or --exchange)
  scan       rank cross-exchange opportunities
  compare    per-period APR comparison of one coin on two exchanges
  integrity  check hourly series completeness
  status     stored data summary

Handles SIGINT/SIGTERM for graceful shutdown of the periodic loop.

Component wiring order (in build_orchestrator):
1. Exchange connectors (config-driven registry)
2. FundingStore over the shared HistoricalDatabase
3. Operation guards, reconciler, sync coordinator
4. APR calculator, integrity checker, opportunity scanner
5. Orchestrator facade
"""

import argparse
import asyncio
import signal
from datetime import datetime, timezone

from funding_arb.analytics.apr import AprCalculator
from funding_arb.analytics.integrity import IntegrityChecker
from funding_arb.collector.listing_reconciler import ListingReconciler
from funding_arb.collector.sync_coordinator import SyncCoordinator
from funding_arb.config import AppSettings
from funding_arb.data.database import HistoricalDatabase
from funding_arb.data.store import FundingStore
from funding_arb.exchange.registry import build_connectors
from funding_arb.logging import get_logger, setup_logging
from funding_arb.market_data.opportunity_scanner import OpportunityScanner
from funding_arb.models import Exchange, OperationStatus
from funding_arb.orchestrator import Orchestrator


def build_orchestrator(settings: AppSettings, database: HistoricalDatabase) -> Orchestrator:
    """Create the full component graph on top of a connected database."""
    connectors = build_connectors(settings)
    store = FundingStore(database)
    return Orchestrator(
        connectors=connectors,
        store=store,
        reconciler=ListingReconciler(connectors, store, settings.listings),
        coordinator=SyncCoordinator(connectors, store, settings.sync),
        calculator=AprCalculator(store),
        scanner=OpportunityScanner(store, settings.scanner),
        integrity=IntegrityChecker(store),
        scheduler=settings.scheduler,
    )


def _setup_signal_handlers(orchestrator: Orchestrator) -> None:
    """SIGINT/SIGTERM stop the periodic loop after the current step."""
    logger = get_logger("funding_arb.main")
    loop = asyncio.get_running_loop()

    def _graceful_handler() -> None:
        logger.info("graceful_shutdown_signal")
        asyncio.create_task(orchestrator.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _graceful_handler)


def _fmt_ts(timestamp_ms: int | None) -> str:
    if timestamp_ms is None:
        return "-"
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")


def _fmt_apr(value) -> str:  # type: ignore[no-untyped-def]
    return "NaN" if value.is_nan() else f"{value:.2f}%"


def _parse_exchanges(raw: str | None) -> list[Exchange] | None:
    if not raw:
        return None
    return [Exchange.parse(name) for name in raw.split(",") if name.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="funding-arb", description=__doc__.splitlines()[0])
    commands = parser.add_subparsers(dest="command")

    commands.add_parser("run", help="periodic reconcile + sync loop")
    commands.add_parser("listings", help="reconcile exchange listings once")

    sync = commands.add_parser("sync", help="sync funding history once")
    sync.add_argument("--exchange", help="sync a single exchange")

    scan = commands.add_parser("scan", help="rank arbitrage opportunities")
    scan.add_argument("--exchanges", help="comma-separated subset, e.g. Binance,Hyperliquid")
    scan.add_argument("--preset", type=int, help="threshold preset id")

    compare = commands.add_parser("compare", help="APR comparison for one coin")
    compare.add_argument("coin")
    compare.add_argument("exchange1")
    compare.add_argument("exchange2")

    integrity = commands.add_parser("integrity", help="check hourly series completeness")
    integrity.add_argument("--exchanges", help="comma-separated subset")

    commands.add_parser("status", help="stored data summary")
    return parser


async def _execute(orchestrator: Orchestrator, args: argparse.Namespace) -> None:
    if args.command == "listings":
        result = await orchestrator.sync_listings()
        print(f"{result.status.value}: {result.total_matched} coins matched")
        if result.reason:
            print(result.reason)
        if result.excluded:
            print(f"excluded (isolated margin): {', '.join(result.excluded)}")

    elif args.command == "sync":
        if args.exchange:
            reports = [await orchestrator.sync_exchange(Exchange.parse(args.exchange))]
        else:
            sync_result = await orchestrator.sync_all_exchanges()
            print(f"{sync_result.status.value} in {sync_result.total_duration_seconds}s")
            reports = sync_result.reports
        for report in reports:
            if report.in_progress:
                outcome = "already syncing, try again later"
            elif report.success:
                outcome = f"saved {report.total_saved}"
            else:
                outcome = f"failed: {report.error}"
            print(f"{report.exchange.value:<12} {outcome} ({report.duration_seconds}s)")

    elif args.command == "scan":
        result = await orchestrator.scan(_parse_exchanges(args.exchanges), args.preset)
        if result.status is not OperationStatus.COMPLETED:
            print(result.status.value)
            return
        for rank, opp in enumerate(result.opportunities, 1):
            diffs = " ".join(f"{d:.1f}" for d in opp.diffs)
            print(f"{rank:>2}. {opp.coin:<10} {opp.pair}  {diffs}")

    elif args.command == "compare":
        rows = await orchestrator.get_comparison(
            args.coin, Exchange.parse(args.exchange1), Exchange.parse(args.exchange2)
        )
        for row in rows:
            print(f"{row.period:>4}  {_fmt_apr(row.apr1):>10}  {_fmt_apr(row.apr2):>10}  {_fmt_apr(row.diff):>10}")

    elif args.command == "integrity":
        for report in await orchestrator.check_integrity(_parse_exchanges(args.exchanges)):
            print(f"[{report.exchange.value}] {len(report.coins)} coins, {len(report.issues)} with issues")
            for coin in report.issues:
                flags = [f for f, on in (("late start", coin.late_start), ("stale end", coin.stale_end)) if on]
                print(f"  {coin.coin}: first {_fmt_ts(coin.first_ms)} last {_fmt_ts(coin.last_ms)} {' '.join(flags)}")
                for gap in coin.gaps:
                    print(f"    gap {_fmt_ts(gap.after_ms)} -> {_fmt_ts(gap.before_ms)} ({gap.missed_hours}h)")

    elif args.command == "status":
        status = await orchestrator.get_data_status()
        print(f"listings: {status['total_listings']} {status['listings_per_exchange']}")
        print(
            f"funding records: {status['total_funding_records']} "
            f"({_fmt_ts(status['earliest_ms'])} .. {_fmt_ts(status['latest_ms'])})"
        )


async def run(args: argparse.Namespace) -> None:
    # 1. Load settings
    settings = AppSettings()

    # 2. Setup logging
    setup_logging(settings.log_level)
    logger = get_logger("funding_arb.main")

    async with HistoricalDatabase(settings.database.path) as database:
        orchestrator = build_orchestrator(settings, database)
        try:
            if args.command in (None, "run"):
                if not settings.scheduler.enabled:
                    logger.warning("scheduler_disabled")
                    return
                _setup_signal_handlers(orchestrator)
                await orchestrator.start()
            else:
                await _execute(orchestrator, args)
        finally:
            await orchestrator.close()
            logger.info("funding_arb_stopped")


def main() -> None:
    """Synchronous entry point."""
    args = build_parser().parse_args()
    asyncio.run(run(args))


if __name__ == "__main__":
    main()
