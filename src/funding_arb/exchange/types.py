"""Connector-level data types.

RawMarket is what an exchange reports before symbol normalization;
FundingPoint is one funding observation already expressed per funding
application. Rates use Decimal.
"""

from dataclasses import dataclass
from decimal import Decimal

# Funding rates derived by division are rounded to this many places
RATE_QUANTUM = Decimal("1e-12")

HOUR_MS = 3_600_000
MINUTE_MS = 60_000
DAY_MS = 24 * HOUR_MS


@dataclass(frozen=True)
class RawMarket:
    """A perpetual market as listed by its exchange.

    isolated_only marks markets restricted to isolated margin (Hyperliquid
    "strictIsolated"); such coins are excluded on every exchange.
    """

    raw_symbol: str
    interval_hours: int | None = None
    market_id: int | None = None
    isolated_only: bool = False
    delisted: bool = False


@dataclass(frozen=True)
class FundingPoint:
    """One funding rate observation."""

    timestamp_ms: int
    rate: Decimal


def floor_to_hour(timestamp_ms: int) -> int:
    """Round a millisecond timestamp down to the start of its UTC hour."""
    return timestamp_ms - timestamp_ms % HOUR_MS
