"""Data models for stored listings, funding records and threshold presets.

CRITICAL: Rates use Decimal. Stored in SQLite as TEXT to preserve precision.
"""

from dataclasses import dataclass
from decimal import Decimal

from funding_arb.models import Exchange


@dataclass
class ExchangeListing:
    """One exchange market mapped to its canonical coin.

    interval_hours is only known for Binance (4h or 8h settlement) and
    market_id only for Lighter, whose funding endpoint is keyed by it.
    """

    exchange: Exchange
    raw_symbol: str
    coin: str
    interval_hours: int | None = None
    market_id: int | None = None


@dataclass
class FundingRecord:
    """A single funding rate, expressed per one funding application."""

    exchange: Exchange
    coin: str
    timestamp_ms: int
    rate: Decimal


@dataclass
class ThresholdPreset:
    """Named set of minimum APR differences, one per lookback period."""

    id: int
    name: str
    h8: Decimal
    d1: Decimal
    d3: Decimal
    d7: Decimal
    d14: Decimal

    def thresholds(self) -> tuple[Decimal, ...]:
        """Return thresholds in period order (8h, 1d, 3d, 7d, 14d)."""
        return (self.h8, self.d1, self.d3, self.d7, self.d14)


PRESET_FIELDS: tuple[str, ...] = ("h8", "d1", "d3", "d7", "d14")

DEFAULT_PRESETS: tuple[tuple[str, int, int, int, int, int], ...] = (
    ("Preset 1", 30, 30, 25, 25, 20),
    ("Preset 2", 20, 20, 15, 15, 10),
    ("Preset 3", 40, 40, 35, 35, 30),
    ("Preset 4", 10, 10, 5, 5, 0),
    ("Preset 5", 50, 50, 45, 45, 40),
)
