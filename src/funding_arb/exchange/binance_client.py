"""Binance USDT-margined futures connector via ccxt async.

Uses the raw fapi endpoints exposed by ccxt's implicit API so that the
funding interval and the untouched funding rate strings are available.
"""

import asyncio
from collections.abc import AsyncIterator
from decimal import Decimal
from typing import Any

import ccxt.async_support as ccxt_async

from funding_arb.config import BinanceSettings
from funding_arb.data.models import ExchangeListing
from funding_arb.exceptions import MalformedPayloadError, UpstreamError
from funding_arb.exchange.client import ExchangeConnector
from funding_arb.exchange.types import FundingPoint, RawMarket
from funding_arb.logging import get_logger
from funding_arb.models import Exchange
from funding_arb.symbols import is_binance_usdt_market

logger = get_logger(__name__)


class BinanceConnector(ExchangeConnector):
    """Binance funding info and funding rate history."""

    exchange = Exchange.BINANCE
    resume_offset_ms = 60_000

    def __init__(self, settings: BinanceSettings, client: Any | None = None) -> None:
        super().__init__(settings)
        config: dict = {
            "enableRateLimit": True,
            "timeout": int(settings.request_timeout * 1000),
            "options": {"defaultType": "future"},
        }
        if settings.base_url:
            config["urls"] = {"api": {"fapiPublic": f"{settings.base_url.rstrip('/')}/fapi/v1"}}
        self._client = client if client is not None else ccxt_async.binance(config)

    async def close(self) -> None:
        """Clean up ccxt async resources."""
        await self._client.close()

    async def _call(self, method: str, params: dict | None = None) -> Any:
        """Invoke an implicit ccxt endpoint, mapping ccxt errors to UpstreamError."""
        try:
            return await getattr(self._client, method)(params or {})
        except ccxt_async.RateLimitExceeded as exc:
            raise UpstreamError(self.exchange.value, 429, str(exc)) from exc
        except ccxt_async.NetworkError as exc:
            raise UpstreamError(self.exchange.value, 503, str(exc)) from exc
        except ccxt_async.BaseError as exc:
            raise UpstreamError(self.exchange.value, 400, str(exc)) from exc

    async def list_markets(self) -> list[RawMarket]:
        """Return USDT perpetuals with their funding interval (4h or 8h)."""
        payload = await self._retry.call(self._call, "fapiPublicGetFundingInfo", label="fundingInfo")
        if not isinstance(payload, list):
            raise MalformedPayloadError(self.exchange.value, "fundingInfo is not a list")

        markets = []
        for item in payload:
            symbol = item.get("symbol", "")
            if not is_binance_usdt_market(symbol):
                continue
            interval = item.get("fundingIntervalHours")
            markets.append(
                RawMarket(
                    raw_symbol=symbol,
                    interval_hours=int(interval) if interval is not None else None,
                )
            )
        logger.debug("binance_markets_listed", count=len(markets))
        return markets

    async def fetch_funding(
        self, listing: ExchangeListing, start_ms: int, end_ms: int
    ) -> AsyncIterator[list[FundingPoint]]:
        """Page forward from start_ms while pages come back full."""
        page_size = self._settings.page_size
        cursor = start_ms
        while cursor <= end_ms:
            page = await self._retry.call(
                self._call,
                "fapiPublicGetFundingRate",
                {"symbol": listing.raw_symbol, "startTime": cursor, "limit": page_size},
                label=listing.raw_symbol,
            )
            if not isinstance(page, list):
                raise MalformedPayloadError(self.exchange.value, "fundingRate is not a list")

            points = [
                FundingPoint(timestamp_ms=int(row["fundingTime"]), rate=Decimal(str(row["fundingRate"])))
                for row in page
                if int(row["fundingTime"]) <= end_ms
            ]
            if points:
                yield points

            if len(page) < page_size:
                break
            cursor = int(page[-1]["fundingTime"]) + 1
            if self._settings.page_delay:
                await asyncio.sleep(self._settings.page_delay)
