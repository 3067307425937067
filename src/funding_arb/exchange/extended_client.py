"""Extended (Starknet) connector.

Responses are wrapped as {"status": "OK", "data": ..., "pagination": ...};
history pages continue while a cursor is returned with a full page.
"""

import asyncio
from collections.abc import AsyncIterator
from decimal import Decimal

from funding_arb.config import ExtendedSettings
from funding_arb.data.models import ExchangeListing
from funding_arb.exceptions import MalformedPayloadError
from funding_arb.exchange.client import ExchangeConnector
from funding_arb.exchange.http import HttpClient
from funding_arb.exchange.types import FundingPoint, RawMarket, floor_to_hour
from funding_arb.models import Exchange


class ExtendedConnector(ExchangeConnector):
    exchange = Exchange.EXTENDED
    resume_offset_ms = 1_000

    def __init__(self, settings: ExtendedSettings, http: HttpClient | None = None) -> None:
        super().__init__(settings)
        self._http = http or HttpClient(
            self.exchange.value, settings.base_url, settings.request_timeout
        )

    async def close(self) -> None:
        await self._http.close()

    def window_end(self, now_ms: int) -> int:
        return floor_to_hour(now_ms) + 60_000

    def _unwrap(self, payload: object, what: str) -> dict:
        if not isinstance(payload, dict) or payload.get("status") != "OK":
            raise MalformedPayloadError(self.exchange.value, f"{what}: status is not OK")
        return payload

    async def list_markets(self) -> list[RawMarket]:
        """Return markets that are both active and in ACTIVE status."""
        payload = self._unwrap(
            await self._retry.call(self._http.get_json, "/api/v1/info/markets", label="markets"),
            "markets",
        )
        return [
            RawMarket(raw_symbol=item["name"])
            for item in payload.get("data") or []
            if item.get("active") and item.get("status") == "ACTIVE" and item.get("name")
        ]

    async def fetch_funding(
        self, listing: ExchangeListing, start_ms: int, end_ms: int
    ) -> AsyncIterator[list[FundingPoint]]:
        cursor: int | str | None = None
        while True:
            payload = self._unwrap(
                await self._retry.call(
                    self._http.get_json,
                    f"/api/v1/info/{listing.raw_symbol}/funding",
                    {
                        "startTime": start_ms,
                        "endTime": end_ms,
                        "limit": self._settings.page_size,
                        "cursor": cursor,
                    },
                    label=listing.raw_symbol,
                ),
                "funding",
            )
            data = payload.get("data") or []
            points = [
                FundingPoint(timestamp_ms=int(row["T"]), rate=Decimal(str(row["f"])))
                for row in data
                if start_ms <= int(row["T"]) <= end_ms
            ]
            if points:
                yield points

            next_cursor = (payload.get("pagination") or {}).get("cursor")
            if not next_cursor or next_cursor == cursor or len(data) < self._settings.page_size:
                break
            cursor = next_cursor
            if self._settings.page_delay:
                await asyncio.sleep(self._settings.page_delay)
