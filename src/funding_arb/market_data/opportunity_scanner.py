"""Cross-exchange funding spread scanner.

For every pair of active exchanges (in canonical order) and every coin
listed on both, compares the two APRs over all five lookback periods. A
coin qualifies only when the spread clears the threshold in the same
direction for every period:

  diff = apr(ex1) - apr(ex2)
  all diff >= threshold   -> long ex2 / short ex1, pair "<ex2>-<ex1>"
  all diff <= -threshold  -> long ex1 / short ex2, pair "<ex1>-<ex2>"

Records are preloaded once per exchange and every window is cut from the
in-memory series, so scan cost grows with (exchange, coin) pairs rather
than exchange pairs.
"""

import time
from bisect import bisect_left, bisect_right
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from itertools import combinations

from funding_arb.analytics.apr import (
    compute_apr_from_records,
    make_comparison,
    reference_end_ms,
    window_start_ms,
)
from funding_arb.config import ScannerSettings
from funding_arb.data.models import FundingRecord
from funding_arb.data.store import FundingStore
from funding_arb.exchange.types import DAY_MS
from funding_arb.logging import get_logger
from funding_arb.models import (
    PERIODS,
    RANKING_PERIOD_INDEX,
    Exchange,
    OperationStatus,
    Opportunity,
    PeriodComparison,
    ScanResult,
)

logger = get_logger(__name__)


@dataclass
class _Series:
    """One coin's preloaded records with a parallel timestamp index."""

    timestamps: list[int]
    records: list[FundingRecord]

    def window(self, start_ms: int, end_ms: int) -> list[FundingRecord]:
        lo = bisect_left(self.timestamps, start_ms)
        hi = bisect_right(self.timestamps, end_ms)
        return self.records[lo:hi]


def classify(
    coin: str,
    exchange1: Exchange,
    exchange2: Exchange,
    rows: Sequence[PeriodComparison],
    thresholds: Sequence[Decimal],
) -> Opportunity | None:
    """Turn five period comparisons into an Opportunity, or None."""
    if any(row.has_nan for row in rows):
        return None

    diffs = [row.diff for row in rows]
    if all(d >= t for d, t in zip(diffs, thresholds)):
        return Opportunity(
            coin=coin,
            pair=f"{exchange2.code}-{exchange1.code}",
            long_exchange=exchange2,
            short_exchange=exchange1,
            diffs=diffs,
            sort_value=diffs[RANKING_PERIOD_INDEX],
        )
    if all(d <= -t for d, t in zip(diffs, thresholds)):
        magnitudes = [abs(d) for d in diffs]
        return Opportunity(
            coin=coin,
            pair=f"{exchange1.code}-{exchange2.code}",
            long_exchange=exchange1,
            short_exchange=exchange2,
            diffs=magnitudes,
            sort_value=magnitudes[RANKING_PERIOD_INDEX],
        )
    return None


class OpportunityScanner:
    """Ranks coins by consistent cross-exchange APR spread.

    Usage:
        scanner = OpportunityScanner(store, settings.scanner)
        result = await scanner.scan([Exchange.BINANCE, Exchange.HYPERLIQUID])
    """

    def __init__(
        self,
        store: FundingStore,
        settings: ScannerSettings,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._settings = settings
        self._clock = clock

    async def scan(
        self,
        exchanges: Sequence[Exchange] | None = None,
        thresholds: Sequence[Decimal] | None = None,
    ) -> ScanResult:
        """Scan the selected exchanges (all by default) against thresholds.

        thresholds are the five minimum spreads in period order; the
        configured defaults apply when omitted. Scans only read the store,
        so overlapping calls each run to completion.
        """
        opportunities = await self._scan(exchanges, thresholds)
        return ScanResult(status=OperationStatus.COMPLETED, opportunities=opportunities)

    async def _preload(
        self, exchanges: Sequence[Exchange], since_ms: int
    ) -> tuple[dict[Exchange, set[str]], dict[Exchange, dict[str, _Series]]]:
        coins: dict[Exchange, set[str]] = {}
        series: dict[Exchange, dict[str, _Series]] = {}
        for exchange in exchanges:
            listed = await self._store.get_listing_coins(exchange)
            coins[exchange] = set(listed)
            bulk = await self._store.get_funding_records_bulk(exchange, listed, since_ms)
            series[exchange] = {
                coin: _Series([r.timestamp_ms for r in records], records)
                for coin, records in bulk.items()
            }
        return coins, series

    async def _scan(
        self,
        exchanges: Sequence[Exchange] | None,
        thresholds: Sequence[Decimal] | None,
    ) -> list[Opportunity]:
        selected = set(exchanges) if exchanges else set(Exchange)
        active = [ex for ex in Exchange if ex in selected]
        limits = tuple(thresholds) if thresholds is not None else self._settings.default_thresholds()
        if len(limits) != len(PERIODS):
            raise ValueError(f"Expected {len(PERIODS)} thresholds, got {len(limits)}")

        now_ms = int(self._clock() * 1000)
        since_ms = now_ms - self._settings.preload_days * DAY_MS
        coins, series = await self._preload(active, since_ms)
        now_reference = reference_end_ms(now_ms)

        opportunities: list[Opportunity] = []
        for exchange1, exchange2 in combinations(active, 2):
            common = sorted(coins[exchange1] & coins[exchange2])
            for coin in common:
                series1 = series[exchange1].get(coin)
                series2 = series[exchange2].get(coin)
                if series1 is None or series2 is None:
                    continue

                end_ms = now_reference
                binance_series = (
                    series1 if exchange1 is Exchange.BINANCE
                    else series2 if exchange2 is Exchange.BINANCE
                    else None
                )
                if binance_series is not None:
                    end_ms = reference_end_ms(binance_series.timestamps[-1])

                rows = []
                for period in PERIODS:
                    start_ms = window_start_ms(end_ms, period.hours)
                    apr1 = compute_apr_from_records(
                        exchange1, series1.window(start_ms, end_ms), start_ms, end_ms, period.hours
                    )
                    apr2 = compute_apr_from_records(
                        exchange2, series2.window(start_ms, end_ms), start_ms, end_ms, period.hours
                    )
                    rows.append(make_comparison(period.label, apr1, apr2))

                opportunity = classify(coin, exchange1, exchange2, rows, limits)
                if opportunity is not None:
                    opportunities.append(opportunity)

        opportunities.sort(key=lambda o: o.sort_value, reverse=True)
        logger.info(
            "scan_complete",
            exchanges=[ex.value for ex in active],
            qualified=len(opportunities),
            returned=min(len(opportunities), self._settings.top_n),
        )
        return opportunities[: self._settings.top_n]
