"""Persistence layer for listings, funding history and threshold presets.

Provides data models, SQLite database management and the typed
read/write store used by the collector, analytics and scanner.
"""

from funding_arb.data.database import HistoricalDatabase
from funding_arb.data.models import ExchangeListing, FundingRecord, ThresholdPreset
from funding_arb.data.store import FundingStore

__all__ = [
    "ExchangeListing",
    "FundingRecord",
    "FundingStore",
    "HistoricalDatabase",
    "ThresholdPreset",
]
