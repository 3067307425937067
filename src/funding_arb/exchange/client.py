"""Abstract exchange connector interface.

Defines the contract every exchange integration implements. The sync
coordinator depends only on this interface, keeping venue-specific
endpoints, pagination and rate conversions inside the concrete connectors.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import ClassVar

from funding_arb.config import ConnectorSettings
from funding_arb.data.models import ExchangeListing
from funding_arb.exchange.retry import RetryPolicy
from funding_arb.exchange.types import FundingPoint, RawMarket
from funding_arb.models import Exchange


class ExchangeConnector(ABC):
    """Base class for exchange connectors.

    Subclasses set the class attributes below and implement list_markets
    and fetch_funding.
    """

    exchange: ClassVar[Exchange]
    # Added to the last stored timestamp to form the next fetch start
    resume_offset_ms: ClassVar[int] = 60_000

    def __init__(self, settings: ConnectorSettings) -> None:
        self._settings = settings
        self._retry = RetryPolicy.from_settings(self.exchange.value, settings)

    @property
    def settings(self) -> ConnectorSettings:
        return self._settings

    async def prepare(self) -> None:
        """Load per-pass metadata before a sync run. No-op by default."""

    async def close(self) -> None:
        """Release network resources."""

    @abstractmethod
    async def list_markets(self) -> list[RawMarket]:
        """Return every perpetual market the exchange currently lists."""
        ...

    @abstractmethod
    def fetch_funding(
        self, listing: ExchangeListing, start_ms: int, end_ms: int
    ) -> AsyncIterator[list[FundingPoint]]:
        """Yield batches of funding points in [start_ms, end_ms].

        Batches are yielded in upstream page order so that callers can
        persist progress page by page.
        """
        ...

    def window_end(self, now_ms: int) -> int:
        """Upper bound of the fetch window for a sync started at now_ms."""
        return now_ms

    def plan_chunks(
        self, listings: list[ExchangeListing], store_empty: bool
    ) -> list[list[ExchangeListing]]:
        """Split listings into groups fetched concurrently.

        chunk_size <= 0 puts every listing in one group.
        """
        size = self._settings.chunk_size
        if size <= 0 or size >= len(listings):
            return [listings] if listings else []
        return [listings[i:i + size] for i in range(0, len(listings), size)]

    def chunk_pause(self, max_gap_ms: int) -> float:
        """Seconds to wait after a chunk whose largest sync gap was max_gap_ms."""
        threshold_ms = self._settings.backlog_threshold_hours * 3_600_000
        if max_gap_ms >= threshold_ms:
            return self._settings.backlog_chunk_delay
        return self._settings.chunk_delay
