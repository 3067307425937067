"""Cross-exchange listing reconciliation.

Fetches every connector's market list, normalizes symbols to canonical
coins and keeps the coins tradable on enough exchanges. The listing table
is replaced in one transaction, or left untouched when anything looks
wrong.
"""

import asyncio

from funding_arb.collector.guard import OperationGuard
from funding_arb.config import ListingSettings
from funding_arb.data.models import ExchangeListing
from funding_arb.data.store import FundingStore
from funding_arb.exceptions import ListingFetchError, OperationInProgress
from funding_arb.exchange.client import ExchangeConnector
from funding_arb.exchange.types import RawMarket
from funding_arb.logging import get_logger
from funding_arb.models import Exchange, ListingSyncResult, OperationStatus
from funding_arb.symbols import normalize

logger = get_logger(__name__)


def isolated_exclusions(markets: dict[Exchange, list[RawMarket]]) -> set[str]:
    """Canonical coins that any exchange restricts to isolated margin.

    Delisted markets still count: the restriction applies to the coin.
    """
    excluded: set[str] = set()
    for exchange, raw_markets in markets.items():
        for market in raw_markets:
            if market.isolated_only:
                excluded.add(normalize(market.raw_symbol, exchange))
    return excluded


def match_listings(
    markets: dict[Exchange, list[RawMarket]],
    excluded: set[str],
    min_exchanges: int,
) -> tuple[list[str], list[ExchangeListing]]:
    """Intersect normalized listings across exchanges.

    Returns the sorted matched coins and one listing per (exchange, coin).
    When two markets of one exchange normalize to the same coin, the later
    one wins.
    """
    per_exchange: dict[Exchange, dict[str, ExchangeListing]] = {}
    for exchange in Exchange:
        by_coin: dict[str, ExchangeListing] = {}
        for market in markets.get(exchange, []):
            if market.delisted:
                continue
            coin = normalize(market.raw_symbol, exchange)
            if not coin or coin in excluded:
                continue
            by_coin[coin] = ExchangeListing(
                exchange=exchange,
                raw_symbol=market.raw_symbol,
                coin=coin,
                interval_hours=market.interval_hours,
                market_id=market.market_id,
            )
        per_exchange[exchange] = by_coin

    presence: dict[str, int] = {}
    for by_coin in per_exchange.values():
        for coin in by_coin:
            presence[coin] = presence.get(coin, 0) + 1

    matched = sorted(coin for coin, count in presence.items() if count >= min_exchanges)
    matched_set = set(matched)
    listings = [
        listing
        for by_coin in per_exchange.values()
        for coin, listing in sorted(by_coin.items())
        if coin in matched_set
    ]
    return matched, listings


class ListingReconciler:
    """Rebuilds the exchange_listings table from live exchange data.

    Usage:
        reconciler = ListingReconciler(connectors, store, settings.listings, guard)
        result = await reconciler.reconcile()
    """

    def __init__(
        self,
        connectors: dict[Exchange, ExchangeConnector],
        store: FundingStore,
        settings: ListingSettings,
        guard: OperationGuard | None = None,
    ) -> None:
        self._connectors = connectors
        self._store = store
        self._settings = settings
        self._guard = guard or OperationGuard("listing_reconciliation")

    @property
    def guard(self) -> OperationGuard:
        return self._guard

    async def _fetch_all(self) -> dict[Exchange, list[RawMarket]]:
        """Fetch every exchange's markets concurrently; any failure aborts."""
        exchanges = list(self._connectors)
        results = await asyncio.gather(
            *(self._connectors[ex].list_markets() for ex in exchanges),
            return_exceptions=True,
        )

        markets: dict[Exchange, list[RawMarket]] = {}
        failed: list[str] = []
        for exchange, result in zip(exchanges, results):
            if isinstance(result, BaseException):
                logger.error(
                    "listing_fetch_failed",
                    exchange=exchange.value,
                    error=str(result),
                )
                failed.append(exchange.value)
            else:
                markets[exchange] = result
        if failed:
            raise ListingFetchError(failed)
        return markets

    async def reconcile(self) -> ListingSyncResult:
        """Run one reconciliation pass under the guard."""
        try:
            async with self._guard.hold():
                return await self._reconcile()
        except OperationInProgress:
            return ListingSyncResult(
                status=OperationStatus.IN_PROGRESS,
                reason="Listing sync is already running",
            )

    async def _reconcile(self) -> ListingSyncResult:
        logger.info("listing_reconciliation_started", exchanges=len(self._connectors))
        try:
            markets = await self._fetch_all()
        except ListingFetchError as exc:
            return ListingSyncResult(status=OperationStatus.FAILED, reason=str(exc))

        excluded = isolated_exclusions(markets)
        if excluded:
            logger.info("isolated_coins_excluded", coins=sorted(excluded))

        matched, listings = match_listings(markets, excluded, self._settings.min_exchanges)

        candidate_pool = {
            normalize(m.raw_symbol, ex)
            for ex, raw_markets in markets.items()
            for m in raw_markets
            if not m.delisted
        }
        if (
            len(matched) < self._settings.min_matched_coins
            and len(candidate_pool) >= self._settings.min_candidate_pool
        ):
            logger.error(
                "listing_reconciliation_aborted",
                matched=len(matched),
                candidates=len(candidate_pool),
                min_matched=self._settings.min_matched_coins,
            )
            return ListingSyncResult(
                status=OperationStatus.ABORTED,
                total_matched=len(matched),
                symbols=matched,
                excluded=sorted(excluded),
                reason=(
                    f"Only {len(matched)} coins matched out of {len(candidate_pool)} "
                    "candidates; listings left unchanged"
                ),
            )

        try:
            await self._store.replace_listings(listings)
        except Exception as exc:
            logger.exception("listing_replace_failed")
            return ListingSyncResult(
                status=OperationStatus.FAILED,
                total_matched=len(matched),
                symbols=matched,
                excluded=sorted(excluded),
                reason=f"Listing write failed: {exc}",
            )

        logger.info(
            "listing_reconciliation_complete",
            matched=len(matched),
            listings=len(listings),
            excluded=len(excluded),
        )
        return ListingSyncResult(
            status=OperationStatus.COMPLETED,
            total_matched=len(matched),
            symbols=matched,
            excluded=sorted(excluded),
        )
