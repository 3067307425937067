"""Typed SQLite read/write abstraction for listings, funding records and presets.

All SQL is isolated behind FundingStore. Funding rates are stored as TEXT
and restored as Decimal on read.

Every coroutine shares one aiosqlite connection, so writes and listing
reads take the same asyncio.Lock. Without it a concurrent commit could land
in the middle of the listing replacement, and a concurrent reader would see
its uncommitted DELETE.
"""

import asyncio
from collections import defaultdict
from decimal import Decimal

from funding_arb.data.database import HistoricalDatabase
from funding_arb.data.models import (
    PRESET_FIELDS,
    ExchangeListing,
    FundingRecord,
    ThresholdPreset,
)
from funding_arb.logging import get_logger
from funding_arb.models import Exchange

logger = get_logger(__name__)


class FundingStore:
    """Async SQLite store for the listing reference table and funding history.

    Usage:
        async with HistoricalDatabase("data/funding.db") as database:
            store = FundingStore(database)
            inserted = await store.insert_funding_records(Exchange.BINANCE, records)
    """

    def __init__(self, database: HistoricalDatabase) -> None:
        self._database = database
        self._lock = asyncio.Lock()

    # ──────────────────────────────────────────────
    # Listings
    # ──────────────────────────────────────────────

    async def replace_listings(self, listings: list[ExchangeListing]) -> int:
        """Delete every listing for every exchange and insert the new set.

        Runs in a single transaction: on any failure the previous listing
        generation is left intact. Returns the number of inserted rows.
        """
        data = [
            (
                listing.exchange.value,
                listing.raw_symbol,
                listing.coin,
                listing.interval_hours,
                listing.market_id,
            )
            for listing in listings
        ]

        db = self._database.db
        async with self._lock:
            try:
                await db.execute("DELETE FROM exchange_listings")
                await db.executemany(
                    "INSERT INTO exchange_listings "
                    "(exchange, raw_symbol, coin, interval_hours, market_id) "
                    "VALUES (?, ?, ?, ?, ?)",
                    data,
                )
                await db.commit()
            except Exception:
                await db.rollback()
                logger.error("replace_listings_rolled_back", rows=len(data))
                raise

        logger.info("listings_replaced", rows=len(data))
        return len(data)

    async def _read_listings(self, sql: str, params: tuple) -> list[tuple]:
        async with self._lock:
            cursor = await self._database.db.execute(sql, params)
            return list(await cursor.fetchall())

    async def list_listings(self, exchange: Exchange) -> list[ExchangeListing]:
        """Return all listings of one exchange ordered by coin."""
        rows = await self._read_listings(
            "SELECT raw_symbol, coin, interval_hours, market_id "
            "FROM exchange_listings WHERE exchange = ? ORDER BY coin ASC",
            (exchange.value,),
        )
        return [
            ExchangeListing(
                exchange=exchange,
                raw_symbol=row[0],
                coin=row[1],
                interval_hours=row[2],
                market_id=row[3],
            )
            for row in rows
        ]

    async def get_listing(self, exchange: Exchange, coin: str) -> ExchangeListing | None:
        rows = await self._read_listings(
            "SELECT raw_symbol, interval_hours, market_id "
            "FROM exchange_listings WHERE exchange = ? AND coin = ?",
            (exchange.value, coin),
        )
        if not rows:
            return None
        raw_symbol, interval_hours, market_id = rows[0]
        return ExchangeListing(
            exchange=exchange,
            raw_symbol=raw_symbol,
            coin=coin,
            interval_hours=interval_hours,
            market_id=market_id,
        )

    async def get_listing_coins(self, exchange: Exchange) -> list[str]:
        """Return canonical coins listed on one exchange."""
        rows = await self._read_listings(
            "SELECT coin FROM exchange_listings WHERE exchange = ? ORDER BY coin ASC",
            (exchange.value,),
        )
        return [row[0] for row in rows]

    async def find_exchanges_for_coin(self, coin: str) -> list[Exchange]:
        """Return the exchanges listing a canonical coin, in scan order."""
        rows = await self._read_listings(
            "SELECT exchange FROM exchange_listings WHERE coin = ?",
            (coin,),
        )
        found = {row[0] for row in rows}
        return [exchange for exchange in Exchange if exchange.value in found]

    # ──────────────────────────────────────────────
    # Funding records
    # ──────────────────────────────────────────────

    async def insert_funding_records(
        self, exchange: Exchange, records: list[FundingRecord]
    ) -> int:
        """Insert funding records, ignoring duplicates via INSERT OR IGNORE.

        Returns the number of actually inserted rows (excludes ignored duplicates).
        """
        if not records:
            return 0

        data = [
            (exchange.value, r.coin, r.timestamp_ms, str(r.rate))
            for r in records
        ]

        db = self._database.db
        async with self._lock:
            cursor = await db.executemany(
                "INSERT OR IGNORE INTO funding_records "
                "(exchange, coin, timestamp_ms, rate) VALUES (?, ?, ?, ?)",
                data,
            )
            await db.commit()

        inserted = cursor.rowcount
        logger.debug(
            "inserted_funding_records",
            exchange=exchange.value,
            total=len(records),
            inserted=inserted,
        )
        return inserted

    async def max_timestamp(self, exchange: Exchange, coin: str) -> int | None:
        """Latest stored timestamp for one coin (the sync cursor), or None."""
        cursor = await self._database.db.execute(
            "SELECT MAX(timestamp_ms) FROM funding_records "
            "WHERE exchange = ? AND coin = ?",
            (exchange.value, coin),
        )
        row = await cursor.fetchone()
        return row[0] if row else None

    async def max_timestamps(self, exchange: Exchange) -> dict[str, int]:
        """Latest stored timestamp per coin for a whole exchange in one query."""
        cursor = await self._database.db.execute(
            "SELECT coin, MAX(timestamp_ms) FROM funding_records "
            "WHERE exchange = ? GROUP BY coin",
            (exchange.value,),
        )
        return {row[0]: row[1] for row in await cursor.fetchall()}

    async def get_funding_records(
        self,
        exchange: Exchange,
        coin: str,
        since_ms: int | None = None,
        until_ms: int | None = None,
    ) -> list[FundingRecord]:
        """Query funding records for a coin within an optional inclusive range.

        Returns records ordered by timestamp_ms ASC.
        """
        conditions = ["exchange = ?", "coin = ?"]
        params: list = [exchange.value, coin]

        if since_ms is not None:
            conditions.append("timestamp_ms >= ?")
            params.append(since_ms)
        if until_ms is not None:
            conditions.append("timestamp_ms <= ?")
            params.append(until_ms)

        where = " AND ".join(conditions)
        cursor = await self._database.db.execute(
            f"SELECT timestamp_ms, rate FROM funding_records "
            f"WHERE {where} ORDER BY timestamp_ms ASC",
            params,
        )
        rows = await cursor.fetchall()
        return [
            FundingRecord(
                exchange=exchange,
                coin=coin,
                timestamp_ms=row[0],
                rate=Decimal(row[1]),
            )
            for row in rows
        ]

    async def get_funding_records_bulk(
        self,
        exchange: Exchange,
        coins: list[str] | None,
        since_ms: int,
    ) -> dict[str, list[FundingRecord]]:
        """Load every record newer than since_ms for many coins in one query.

        Used by the scanner preload. Returns coin -> records ordered by
        timestamp_ms ASC. coins=None loads the whole exchange.
        """
        params: list = [exchange.value, since_ms]
        query = (
            "SELECT coin, timestamp_ms, rate FROM funding_records "
            "WHERE exchange = ? AND timestamp_ms >= ?"
        )
        if coins is not None:
            if not coins:
                return {}
            placeholders = ", ".join("?" for _ in coins)
            query += f" AND coin IN ({placeholders})"
            params.extend(coins)
        query += " ORDER BY coin ASC, timestamp_ms ASC"

        cursor = await self._database.db.execute(query, params)
        rows = await cursor.fetchall()

        grouped: dict[str, list[FundingRecord]] = defaultdict(list)
        for coin, timestamp_ms, rate in rows:
            grouped[coin].append(
                FundingRecord(
                    exchange=exchange,
                    coin=coin,
                    timestamp_ms=timestamp_ms,
                    rate=Decimal(rate),
                )
            )
        return dict(grouped)

    async def count_funding_records(self, exchange: Exchange | None = None) -> int:
        """Total stored records, optionally for a single exchange."""
        if exchange is None:
            cursor = await self._database.db.execute(
                "SELECT COUNT(*) FROM funding_records"
            )
        else:
            cursor = await self._database.db.execute(
                "SELECT COUNT(*) FROM funding_records WHERE exchange = ?",
                (exchange.value,),
            )
        return (await cursor.fetchone())[0]

    # ──────────────────────────────────────────────
    # Threshold presets
    # ──────────────────────────────────────────────

    async def list_presets(self) -> list[ThresholdPreset]:
        """Return all presets ordered by id."""
        cursor = await self._database.db.execute(
            "SELECT id, name, h8, d1, d3, d7, d14 FROM threshold_presets ORDER BY id"
        )
        return [self._row_to_preset(row) for row in await cursor.fetchall()]

    async def get_preset(self, preset_id: int) -> ThresholdPreset | None:
        cursor = await self._database.db.execute(
            "SELECT id, name, h8, d1, d3, d7, d14 FROM threshold_presets WHERE id = ?",
            (preset_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_preset(row) if row else None

    async def update_preset(
        self, preset_id: int, values: dict[str, Decimal]
    ) -> ThresholdPreset | None:
        """Update some or all thresholds of a preset.

        values maps field names (h8, d1, d3, d7, d14) to new thresholds.
        Returns the updated preset, or None if it does not exist.
        """
        unknown = set(values) - set(PRESET_FIELDS)
        if unknown:
            raise ValueError(f"Unknown preset fields: {sorted(unknown)}")

        if values:
            assignments = ", ".join(f"{name} = ?" for name in values)
            params = [str(v) for v in values.values()] + [preset_id]
            db = self._database.db
            async with self._lock:
                await db.execute(
                    f"UPDATE threshold_presets SET {assignments} WHERE id = ?",
                    params,
                )
                await db.commit()
            logger.info("preset_updated", preset_id=preset_id, fields=sorted(values))

        return await self.get_preset(preset_id)

    @staticmethod
    def _row_to_preset(row) -> ThresholdPreset:  # type: ignore[no-untyped-def]
        return ThresholdPreset(
            id=row[0],
            name=row[1],
            h8=Decimal(row[2]),
            d1=Decimal(row[3]),
            d3=Decimal(row[4]),
            d7=Decimal(row[5]),
            d14=Decimal(row[6]),
        )

    # ──────────────────────────────────────────────
    # Status
    # ──────────────────────────────────────────────

    async def get_data_status(self) -> dict:
        """Aggregate counts and time bounds for status display.

        Returns dict with total_listings, listings_per_exchange,
        total_funding_records, earliest_ms and latest_ms.
        """
        rows = await self._read_listings(
            "SELECT exchange, COUNT(*) FROM exchange_listings GROUP BY exchange", ()
        )
        per_exchange = {row[0]: row[1] for row in rows}

        cursor = await self._database.db.execute(
            "SELECT COUNT(*), MIN(timestamp_ms), MAX(timestamp_ms) FROM funding_records"
        )
        total, earliest, latest = await cursor.fetchone()

        return {
            "total_listings": sum(per_exchange.values()),
            "listings_per_exchange": per_exchange,
            "total_funding_records": total,
            "earliest_ms": earliest,
            "latest_ms": latest,
        }
