"""Lighter connector.

Listings come from the aggregated funding-rates endpoint (which also
mirrors other venues, so entries are filtered to exchange == "lighter").
History is keyed by numeric market_id and uses second-resolution
timestamps. Rates are reported in percent with a separate direction flag.
"""

import math
from collections.abc import AsyncIterator
from decimal import Decimal

from funding_arb.config import LighterSettings
from funding_arb.data.models import ExchangeListing
from funding_arb.exceptions import MalformedPayloadError
from funding_arb.exchange.client import ExchangeConnector
from funding_arb.exchange.http import HttpClient
from funding_arb.exchange.types import HOUR_MS, RATE_QUANTUM, FundingPoint, RawMarket, floor_to_hour
from funding_arb.models import Exchange


def lighter_rate(rate: str | float, direction: str | None) -> Decimal:
    """Convert a percent rate plus direction into a signed fraction."""
    value = Decimal(str(rate)) / 100
    if direction == "short":
        value = -value
    return value.quantize(RATE_QUANTUM)


class LighterConnector(ExchangeConnector):
    exchange = Exchange.LIGHTER
    resume_offset_ms = HOUR_MS

    def __init__(self, settings: LighterSettings, http: HttpClient | None = None) -> None:
        super().__init__(settings)
        self._http = http or HttpClient(
            self.exchange.value, settings.base_url, settings.request_timeout
        )

    async def close(self) -> None:
        await self._http.close()

    def window_end(self, now_ms: int) -> int:
        # A minute past the hour so the just-closed bucket is included
        return floor_to_hour(now_ms) + 60_000

    async def list_markets(self) -> list[RawMarket]:
        payload = await self._retry.call(
            self._http.get_json, "/api/v1/funding-rates", label="funding-rates"
        )
        rates = payload.get("funding_rates") if isinstance(payload, dict) else None
        if not isinstance(rates, list):
            raise MalformedPayloadError(self.exchange.value, "funding-rates has no funding_rates")

        return [
            RawMarket(raw_symbol=item["symbol"], market_id=int(item["market_id"]))
            for item in rates
            if item.get("exchange") == "lighter" and item.get("symbol")
        ]

    async def fetch_funding(
        self, listing: ExchangeListing, start_ms: int, end_ms: int
    ) -> AsyncIterator[list[FundingPoint]]:
        if listing.market_id is None:
            raise MalformedPayloadError(self.exchange.value, f"no market_id for {listing.coin}")

        count_back = max(1, math.ceil((end_ms - start_ms) / HOUR_MS))
        payload = await self._retry.call(
            self._http.get_json,
            "/api/v1/fundings",
            {
                "market_id": listing.market_id,
                "resolution": "1h",
                "start_timestamp": start_ms // 1000,
                "end_timestamp": end_ms // 1000,
                "count_back": count_back,
            },
            label=listing.raw_symbol,
        )
        fundings = payload.get("fundings") if isinstance(payload, dict) else None
        if not isinstance(fundings, list):
            raise MalformedPayloadError(self.exchange.value, "fundings missing from response")

        points = [
            FundingPoint(
                timestamp_ms=int(row["timestamp"]) * 1000,
                rate=lighter_rate(row["rate"], row.get("direction")),
            )
            for row in fundings
            if start_ms <= int(row["timestamp"]) * 1000 <= end_ms
        ]
        if points:
            yield points
