"""Annualized funding rate (APR) computation with a leading-gap check.

Core formula:
  hourly exchanges:  avg = sum(rates) / record_count
  Binance (4h/8h):   avg = sum(rates) / period_hours
  apr = avg * 24 * 365 * 100

The two denominators are deliberate: hourly venues store one record per
hour, while Binance records are per settlement, so dividing by the fixed
window length yields an hourly average in both cases.

A window whose earliest record starts later than the exchange tolerance
after window start is incomplete and yields Decimal("NaN").
"""

import time
from collections.abc import Callable, Sequence
from decimal import Decimal

from funding_arb.data.models import FundingRecord
from funding_arb.data.store import FundingStore
from funding_arb.exchange.types import HOUR_MS, MINUTE_MS, floor_to_hour
from funding_arb.models import PERIODS, Exchange, PeriodComparison

NAN = Decimal("NaN")
APR_FACTOR = Decimal(24 * 365 * 100)
DEFAULT_BINANCE_INTERVAL_HOURS = 8

# Allowed distance between window start and the first record
GAP_TOLERANCE_MINUTES: dict[Exchange, int] = {Exchange.BINANCE: 481}
DEFAULT_GAP_TOLERANCE_MINUTES = 61

# Comparison windows end 5 minutes past the reference hour and span
# period_hours minus 30 minutes
REFERENCE_OFFSET_MS = 5 * MINUTE_MS
WINDOW_TRIM_MS = 30 * MINUTE_MS


def gap_tolerance_ms(exchange: Exchange) -> int:
    return GAP_TOLERANCE_MINUTES.get(exchange, DEFAULT_GAP_TOLERANCE_MINUTES) * MINUTE_MS


def compute_apr_from_records(
    exchange: Exchange,
    records: Sequence[FundingRecord],
    start_ms: int,
    end_ms: int,
    period_hours: int,
) -> Decimal:
    """APR in percent for records inside [start_ms, end_ms], or NaN."""
    window = [r for r in records if start_ms <= r.timestamp_ms <= end_ms]
    if not window:
        return NAN

    first_ms = min(r.timestamp_ms for r in window)
    if first_ms - start_ms > gap_tolerance_ms(exchange):
        return NAN

    total = sum((r.rate for r in window), Decimal("0"))
    if exchange is Exchange.BINANCE:
        average = total / Decimal(period_hours)
    else:
        average = total / Decimal(len(window))
    return average * APR_FACTOR


def reference_end_ms(anchor_ms: int) -> int:
    """Window end for comparisons anchored at anchor_ms."""
    return floor_to_hour(anchor_ms) + REFERENCE_OFFSET_MS


def window_start_ms(end_ms: int, period_hours: int) -> int:
    return end_ms - (period_hours * HOUR_MS - WINDOW_TRIM_MS)


def make_comparison(period: str, apr1: Decimal, apr2: Decimal) -> PeriodComparison:
    # NaN operands propagate quietly through subtraction
    return PeriodComparison(period=period, apr1=apr1, apr2=apr2, diff=apr1 - apr2)


class AprCalculator:
    """Store-backed APR queries used by the presentation layer.

    Usage:
        calculator = AprCalculator(store)
        rows = await calculator.get_comparison("BTC", Exchange.BINANCE, Exchange.HYPERLIQUID)
    """

    def __init__(self, store: FundingStore, clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._clock = clock

    async def compute_apr(
        self,
        exchange: Exchange,
        coin: str,
        start_ms: int,
        end_ms: int,
        period_hours: int,
    ) -> Decimal:
        records = await self._store.get_funding_records(exchange, coin, start_ms, end_ms)
        return compute_apr_from_records(exchange, records, start_ms, end_ms, period_hours)

    async def reference_time(self, coin: str, exchanges: Sequence[Exchange]) -> int:
        """Comparison window end for a coin.

        Binance settles at most every 4h, so when it takes part the window
        is anchored at its latest stored settlement instead of now.
        """
        if Exchange.BINANCE in exchanges:
            latest = await self._store.max_timestamp(Exchange.BINANCE, coin)
            if latest is not None:
                return reference_end_ms(latest)
        return reference_end_ms(int(self._clock() * 1000))

    async def get_comparison(
        self, coin: str, exchange1: Exchange, exchange2: Exchange
    ) -> list[PeriodComparison]:
        """APR of both exchanges and their difference for every lookback period."""
        end_ms = await self.reference_time(coin, (exchange1, exchange2))
        rows = []
        for period in PERIODS:
            start_ms = window_start_ms(end_ms, period.hours)
            apr1 = await self.compute_apr(exchange1, coin, start_ms, end_ms, period.hours)
            apr2 = await self.compute_apr(exchange2, coin, start_ms, end_ms, period.hours)
            rows.append(make_comparison(period.label, apr1, apr2))
        return rows

    async def hourly_history(
        self, exchange: Exchange, coin: str, start_ms: int, end_ms: int
    ) -> list[tuple[int, Decimal]]:
        """Each stored record annualized at its own settlement cadence."""
        records = await self._store.get_funding_records(exchange, coin, start_ms, end_ms)
        interval_hours = 1
        if exchange is Exchange.BINANCE:
            listing = await self._store.get_listing(exchange, coin)
            interval_hours = (
                listing.interval_hours
                if listing is not None and listing.interval_hours
                else DEFAULT_BINANCE_INTERVAL_HOURS
            )
        return [
            (r.timestamp_ms, r.rate / Decimal(interval_hours) * APR_FACTOR)
            for r in records
        ]
