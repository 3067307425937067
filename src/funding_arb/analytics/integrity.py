"""Hourly series integrity check.

Verifies that each coin's stored history covers the trailing window with
one record per hour: no late start, no stale end, no holes. Binance is not
checked because it settles every 4h or 8h.
"""

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from funding_arb.data.store import FundingStore
from funding_arb.exchange.types import DAY_MS, HOUR_MS, floor_to_hour
from funding_arb.logging import get_logger
from funding_arb.models import Exchange

logger = get_logger(__name__)

CHECK_DAYS = 14
SPACING_TOLERANCE_MS = 5_000


@dataclass
class SeriesGap:
    after_ms: int
    before_ms: int
    missed_hours: int


@dataclass
class CoinIntegrity:
    coin: str
    first_ms: int
    last_ms: int
    late_start: bool = False
    stale_end: bool = False
    gaps: list[SeriesGap] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not (self.late_start or self.stale_end or self.gaps)


@dataclass
class IntegrityReport:
    exchange: Exchange
    window_start_ms: int
    window_end_ms: int
    coins: list[CoinIntegrity] = field(default_factory=list)

    @property
    def issues(self) -> list[CoinIntegrity]:
        return [c for c in self.coins if not c.ok]

    @property
    def total_gaps(self) -> int:
        return sum(len(c.gaps) for c in self.coins)


def find_gaps(timestamps: Sequence[int]) -> list[SeriesGap]:
    """Consecutive records not one hour (+-5s) apart that skip whole hours."""
    gaps = []
    for current, following in zip(timestamps, timestamps[1:]):
        spacing = following - current
        if abs(spacing - HOUR_MS) <= SPACING_TOLERANCE_MS:
            continue
        missed = round(spacing / HOUR_MS) - 1
        if missed > 0:
            gaps.append(SeriesGap(after_ms=current, before_ms=following, missed_hours=missed))
    return gaps


def check_series(
    coin: str, timestamps: Sequence[int], expected_start_ms: int, current_hour_ms: int
) -> CoinIntegrity:
    """Check one ascending series of timestamps."""
    first_ms, last_ms = timestamps[0], timestamps[-1]
    return CoinIntegrity(
        coin=coin,
        first_ms=first_ms,
        last_ms=last_ms,
        late_start=first_ms > expected_start_ms + HOUR_MS,
        stale_end=last_ms < current_hour_ms - HOUR_MS,
        gaps=find_gaps(timestamps),
    )


class IntegrityChecker:
    def __init__(self, store: FundingStore, clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._clock = clock

    async def check(self, exchange: Exchange) -> IntegrityReport:
        if exchange is Exchange.BINANCE:
            raise ValueError("Binance settles every 4h or 8h; hourly integrity does not apply")

        current_hour = floor_to_hour(int(self._clock() * 1000))
        expected_start = current_hour - CHECK_DAYS * DAY_MS
        report = IntegrityReport(
            exchange=exchange, window_start_ms=expected_start, window_end_ms=current_hour
        )

        series = await self._store.get_funding_records_bulk(exchange, None, expected_start)
        for coin in sorted(series):
            timestamps = [r.timestamp_ms for r in series[coin]]
            report.coins.append(check_series(coin, timestamps, expected_start, current_hour))

        logger.info(
            "integrity_checked",
            exchange=exchange.value,
            coins=len(report.coins),
            coins_with_issues=len(report.issues),
            gaps=report.total_gaps,
        )
        return report
