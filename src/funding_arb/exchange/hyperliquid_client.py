"""Hyperliquid connector using the public info endpoint.

Both listing and history are POST requests to /info with a "type" field.
Funding is settled hourly; fundingHistory returns at most one page of
records per call, so full pages are followed by a request from the last
returned time.
"""

import asyncio
from collections.abc import AsyncIterator
from decimal import Decimal

from funding_arb.config import HyperliquidSettings
from funding_arb.data.models import ExchangeListing
from funding_arb.exceptions import MalformedPayloadError
from funding_arb.exchange.client import ExchangeConnector
from funding_arb.exchange.http import HttpClient
from funding_arb.exchange.types import FundingPoint, RawMarket
from funding_arb.logging import get_logger
from funding_arb.models import Exchange

logger = get_logger(__name__)

_STRICT_ISOLATED = "strictIsolated"


class HyperliquidConnector(ExchangeConnector):
    exchange = Exchange.HYPERLIQUID
    resume_offset_ms = 60_000

    def __init__(self, settings: HyperliquidSettings, http: HttpClient | None = None) -> None:
        super().__init__(settings)
        self._http = http or HttpClient(
            self.exchange.value, settings.base_url, settings.request_timeout
        )

    async def close(self) -> None:
        await self._http.close()

    async def list_markets(self) -> list[RawMarket]:
        """Return the perp universe, flagging delisted and isolated-only coins."""
        payload = await self._retry.call(
            self._http.post_json, "/info", {"type": "meta"}, label="meta"
        )
        universe = payload.get("universe") if isinstance(payload, dict) else None
        if not isinstance(universe, list):
            raise MalformedPayloadError(self.exchange.value, "meta has no universe")

        return [
            RawMarket(
                raw_symbol=item["name"],
                isolated_only=item.get("marginMode") == _STRICT_ISOLATED,
                delisted=bool(item.get("isDelisted")),
            )
            for item in universe
            if item.get("name")
        ]

    async def fetch_funding(
        self, listing: ExchangeListing, start_ms: int, end_ms: int
    ) -> AsyncIterator[list[FundingPoint]]:
        cursor = start_ms
        while cursor <= end_ms:
            page = await self._retry.call(
                self._http.post_json,
                "/info",
                {"type": "fundingHistory", "coin": listing.raw_symbol, "startTime": cursor},
                label=listing.raw_symbol,
            )
            if not isinstance(page, list):
                raise MalformedPayloadError(self.exchange.value, "fundingHistory is not a list")

            points = [
                FundingPoint(timestamp_ms=int(row["time"]), rate=Decimal(str(row["fundingRate"])))
                for row in page
                if int(row["time"]) <= end_ms
            ]
            if points:
                yield points

            if len(page) < self._settings.page_size:
                break
            cursor = int(page[-1]["time"]) + 1
            if self._settings.page_delay:
                await asyncio.sleep(self._settings.page_delay)
