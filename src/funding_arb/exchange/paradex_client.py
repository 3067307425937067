"""Paradex connector.

Paradex publishes funding observations several times a minute, newest
first. A coin's history is walked backwards from the window end until an
observation older than the window start appears, then averaged into hourly
buckets. Each bucket is labelled with the hour it closes, and the average
8h-period rate is divided by the market's funding period to give a rate per
hour.
"""

import asyncio
import random
from collections import defaultdict
from collections.abc import AsyncIterator
from decimal import Decimal

from funding_arb.config import ParadexSettings
from funding_arb.data.models import ExchangeListing
from funding_arb.exceptions import MalformedPayloadError
from funding_arb.exchange.client import ExchangeConnector
from funding_arb.exchange.http import HttpClient
from funding_arb.exchange.types import HOUR_MS, RATE_QUANTUM, FundingPoint, RawMarket, floor_to_hour
from funding_arb.logging import get_logger
from funding_arb.models import Exchange

logger = get_logger(__name__)

DEFAULT_FUNDING_PERIOD_HOURS = 8


def closing_hour(created_at_ms: int) -> int:
    """Hour boundary that closes the bucket containing created_at_ms.

    An observation exactly on the hour belongs to the bucket ending there.
    """
    return ((created_at_ms - 1) // HOUR_MS + 1) * HOUR_MS


def bucket_hourly(
    observations: list[tuple[int, Decimal]], period_hours: int
) -> list[FundingPoint]:
    """Average (created_at_ms, rate) observations per closing hour."""
    sums: dict[int, Decimal] = defaultdict(Decimal)
    counts: dict[int, int] = defaultdict(int)
    for created_at, rate in observations:
        bucket = closing_hour(created_at)
        sums[bucket] += rate
        counts[bucket] += 1

    return [
        FundingPoint(
            timestamp_ms=bucket,
            rate=(sums[bucket] / counts[bucket] / period_hours).quantize(RATE_QUANTUM),
        )
        for bucket in sorted(sums)
    ]


class ParadexConnector(ExchangeConnector):
    exchange = Exchange.PARADEX
    resume_offset_ms = 0

    def __init__(self, settings: ParadexSettings, http: HttpClient | None = None) -> None:
        super().__init__(settings)
        self._settings: ParadexSettings = settings
        self._http = http or HttpClient(
            self.exchange.value, settings.base_url, settings.request_timeout
        )
        self._funding_periods: dict[str, int] = {}

    async def close(self) -> None:
        await self._http.close()

    def window_end(self, now_ms: int) -> int:
        return floor_to_hour(now_ms)

    async def _fetch_perp_markets(self) -> list[dict]:
        payload = await self._retry.call(self._http.get_json, "/v1/markets", label="markets")
        results = payload.get("results") if isinstance(payload, dict) else None
        if not isinstance(results, list):
            raise MalformedPayloadError(self.exchange.value, "markets has no results")
        return [m for m in results if m.get("asset_kind") == "PERP" and m.get("symbol")]

    async def prepare(self) -> None:
        """Refresh per-market funding periods before a sync pass."""
        markets = await self._fetch_perp_markets()
        self._funding_periods = {
            m["symbol"]: int(m.get("funding_period_hours") or DEFAULT_FUNDING_PERIOD_HOURS)
            for m in markets
        }
        logger.debug("paradex_funding_periods_loaded", markets=len(self._funding_periods))

    async def list_markets(self) -> list[RawMarket]:
        return [RawMarket(raw_symbol=m["symbol"]) for m in await self._fetch_perp_markets()]

    def plan_chunks(
        self, listings: list[ExchangeListing], store_empty: bool
    ) -> list[list[ExchangeListing]]:
        """Whole listing in one batch, or two halves on the very first sync."""
        if store_empty and self._settings.split_initial_sync and len(listings) > 1:
            mid = len(listings) // 2
            return [listings[:mid], listings[mid:]]
        return super().plan_chunks(listings, store_empty)

    async def _page_pause(self, page_number: int) -> None:
        every = self._settings.long_pause_every_pages
        if every and page_number % every == 0:
            await asyncio.sleep(self._settings.long_pause)
        elif self._settings.page_delay:
            await asyncio.sleep(self._settings.page_delay)

    async def fetch_funding(
        self, listing: ExchangeListing, start_ms: int, end_ms: int
    ) -> AsyncIterator[list[FundingPoint]]:
        """Collect every observation in the window, then yield hourly buckets once."""
        if self._settings.start_jitter:
            await asyncio.sleep(random.uniform(0, self._settings.start_jitter))

        observations: list[tuple[int, Decimal]] = []
        cursor: str | None = None
        page_number = 0
        while True:
            page = await self._retry.call(
                self._http.get_json,
                "/v1/funding/data",
                {
                    "market": listing.raw_symbol,
                    "page_size": self._settings.page_size,
                    "end_at": end_ms,
                    "cursor": cursor,
                },
                label=listing.raw_symbol,
            )
            if not isinstance(page, dict):
                raise MalformedPayloadError(self.exchange.value, "funding/data is not an object")
            page_number += 1

            reached_start = False
            results = page.get("results") or []
            for item in results:
                created_at = int(item["created_at"])
                if created_at < start_ms:
                    reached_start = True
                    break
                observations.append((created_at, Decimal(str(item["funding_rate"]))))

            cursor = page.get("next")
            if reached_start or not results or not cursor:
                break
            await self._page_pause(page_number)

        period = self._funding_periods.get(listing.raw_symbol, DEFAULT_FUNDING_PERIOD_HOURS)
        points = [
            p for p in bucket_hourly(observations, period)
            if start_ms <= p.timestamp_ms <= end_ms
        ]
        if points:
            yield points
