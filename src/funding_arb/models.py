"""Shared data models for the funding sync and arbitrage scanner.

CRITICAL: All rates and APR values use Decimal. Never use float for rates.
Insufficient data is represented by Decimal("NaN"), never by zero.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


class Exchange(str, Enum):
    """Supported derivatives exchanges, in canonical scan order."""

    BINANCE = "Binance"
    HYPERLIQUID = "Hyperliquid"
    PARADEX = "Paradex"
    LIGHTER = "Lighter"
    EXTENDED = "Extended"

    @property
    def code(self) -> str:
        """One-letter code used in directional pair labels (e.g. "H-B")."""
        return self.value[0]

    @classmethod
    def parse(cls, name: str) -> "Exchange":
        """Resolve an exchange from a case-insensitive name."""
        for exchange in cls:
            if exchange.value.lower() == name.strip().lower():
                return exchange
        raise ValueError(f"Unknown exchange: {name}")


ALL_EXCHANGES: tuple[Exchange, ...] = tuple(Exchange)


class OperationStatus(str, Enum):
    """Outcome of a guarded operation."""

    COMPLETED = "completed"
    IN_PROGRESS = "in_progress"
    ABORTED = "aborted"
    FAILED = "failed"


@dataclass(frozen=True)
class LookbackPeriod:
    """A comparison window length."""

    label: str
    hours: int


PERIODS: tuple[LookbackPeriod, ...] = (
    LookbackPeriod("8h", 8),
    LookbackPeriod("1d", 24),
    LookbackPeriod("3d", 72),
    LookbackPeriod("7d", 168),
    LookbackPeriod("14d", 336),
)

# Index into PERIODS used for ranking opportunities
RANKING_PERIOD_INDEX = 2  # 3d


@dataclass
class PeriodComparison:
    """APR of two exchanges over one lookback period.

    diff = apr1 - apr2; any NaN operand makes diff NaN.
    """

    period: str
    apr1: Decimal
    apr2: Decimal
    diff: Decimal

    @property
    def has_nan(self) -> bool:
        return self.apr1.is_nan() or self.apr2.is_nan()


@dataclass
class Opportunity:
    """A coin whose APR spread passed every period threshold in one direction.

    pair is "<long code>-<short code>", e.g. "H-B" means long Hyperliquid,
    short Binance. diffs are positive magnitudes in period order.
    """

    coin: str
    pair: str
    long_exchange: Exchange
    short_exchange: Exchange
    diffs: list[Decimal]
    sort_value: Decimal


@dataclass
class ScanResult:
    """Ranked scanner output."""

    status: OperationStatus
    opportunities: list[Opportunity] = field(default_factory=list)


@dataclass
class ExchangeSyncReport:
    """Per-exchange outcome of a funding history sync.

    in_progress marks a sync skipped because the same exchange was already
    syncing; nothing was attempted and the caller may retry later.
    """

    exchange: Exchange
    success: bool
    total_saved: int = 0
    duration_seconds: float = 0.0
    error: str | None = None
    in_progress: bool = False


@dataclass
class SyncAllResult:
    """Outcome of syncing every enabled exchange."""

    status: OperationStatus
    reports: list[ExchangeSyncReport] = field(default_factory=list)
    total_duration_seconds: float = 0.0

    @property
    def total_saved(self) -> int:
        return sum(r.total_saved for r in self.reports)


@dataclass
class ListingSyncResult:
    """Outcome of a listing reconciliation run."""

    status: OperationStatus
    total_matched: int = 0
    symbols: list[str] = field(default_factory=list)
    excluded: list[str] = field(default_factory=list)
    reason: str | None = None
