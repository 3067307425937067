"""SQLite schema and connection lifecycle for the funding store.

Three tables: the listing reference (one row per exchange and coin), the
funding history keyed by (exchange, coin, timestamp_ms) so inserts can be
idempotent, and the threshold presets seeded on first start.
"""

from pathlib import Path
from typing import Self

import aiosqlite

from funding_arb.data.models import DEFAULT_PRESETS
from funding_arb.logging import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1

_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA foreign_keys=ON",
)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS exchange_listings (
    exchange TEXT NOT NULL,
    raw_symbol TEXT NOT NULL,
    coin TEXT NOT NULL,
    interval_hours INTEGER,
    market_id INTEGER,
    PRIMARY KEY (exchange, coin)
);
CREATE INDEX IF NOT EXISTS idx_listings_coin ON exchange_listings(coin);

CREATE TABLE IF NOT EXISTS funding_records (
    exchange TEXT NOT NULL,
    coin TEXT NOT NULL,
    timestamp_ms INTEGER NOT NULL,
    rate TEXT NOT NULL,
    PRIMARY KEY (exchange, coin, timestamp_ms)
);
CREATE INDEX IF NOT EXISTS idx_funding_exchange_ts
    ON funding_records(exchange, timestamp_ms);

CREATE TABLE IF NOT EXISTS threshold_presets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    h8 TEXT NOT NULL,
    d1 TEXT NOT NULL,
    d3 TEXT NOT NULL,
    d7 TEXT NOT NULL,
    d14 TEXT NOT NULL
);
"""


class HistoricalDatabase:
    """Owns the single aiosqlite connection shared by FundingStore.

    Usage:
        async with HistoricalDatabase(settings.database.path) as database:
            store = FundingStore(database)
    """

    def __init__(self, db_path: str = "data/funding.db") -> None:
        self._path = db_path
        self._conn: aiosqlite.Connection | None = None

    @property
    def db(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError(f"Database {self._path} is not open")
        return self._conn

    async def connect(self) -> None:
        """Open the file (creating its directory), then create and seed the schema."""
        Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(self._path)
        for pragma in _PRAGMAS:
            await self._conn.execute(pragma)
        await self._initialize(self._conn)
        logger.info("funding_db_opened", path=self._path, schema_version=SCHEMA_VERSION)

    async def close(self) -> None:
        if self._conn is None:
            return
        await self._conn.close()
        self._conn = None
        logger.info("funding_db_closed", path=self._path)

    @staticmethod
    async def _initialize(conn: aiosqlite.Connection) -> None:
        await conn.executescript(_SCHEMA)
        await conn.execute(
            "INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,)
        )
        # Presets are matched by name, so user edits survive restarts
        await conn.executemany(
            "INSERT OR IGNORE INTO threshold_presets (name, h8, d1, d3, d7, d14) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            [(name, *map(str, values)) for name, *values in DEFAULT_PRESETS],
        )
        await conn.commit()

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
