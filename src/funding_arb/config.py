"""Configuration system using pydantic-settings with environment variable loading."""

from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """SQLite storage location."""

    model_config = SettingsConfigDict(env_prefix="DB_")

    path: str = "data/funding.db"


class ConnectorSettings(BaseSettings):
    """Shared tuning knobs for one exchange connector.

    Each exchange subclasses this with its own env prefix and defaults.
    Delays are in seconds. Chunking caps how many coins are fetched in
    parallel; the pause after a chunk grows to backlog_chunk_delay when the
    largest gap in that chunk exceeds backlog_threshold_hours.
    """

    enabled: bool = True
    base_url: str = ""
    request_timeout: float = 15.0
    chunk_size: int = 20
    chunk_delay: float = 0.5
    backlog_chunk_delay: float = 0.5
    backlog_threshold_hours: int = 72
    page_size: int = 1000
    page_delay: float = 0.0

    # Retry policy for 429 / 5xx
    max_attempts: int = 2
    rate_limit_delay: float = 15.0
    unavailable_delay: float = 30.0


class BinanceSettings(ConnectorSettings):
    """Binance USDT-margined futures (reached through ccxt)."""

    model_config = SettingsConfigDict(env_prefix="BINANCE_")

    chunk_size: int = 50
    chunk_delay: float = 0.2
    backlog_chunk_delay: float = 0.2
    page_size: int = 1000


class HyperliquidSettings(ConnectorSettings):
    """Hyperliquid info API."""

    model_config = SettingsConfigDict(env_prefix="HYPERLIQUID_")

    base_url: str = "https://api.hyperliquid.xyz"
    chunk_size: int = 4
    chunk_delay: float = 1.0
    backlog_chunk_delay: float = 1.5  # gap beyond 3 days
    page_size: int = 500


class LighterSettings(ConnectorSettings):
    """Lighter (zkLighter) public API."""

    model_config = SettingsConfigDict(env_prefix="LIGHTER_")

    base_url: str = "https://mainnet.zklighter.elliot.ai"
    chunk_size: int = 20
    chunk_delay: float = 0.5
    backlog_chunk_delay: float = 0.5
    page_size: int = 336  # 14 days of hourly buckets


class ParadexSettings(ConnectorSettings):
    """Paradex funding data API.

    Funding events arrive several times per minute and are bucketed hourly.
    """

    model_config = SettingsConfigDict(env_prefix="PARADEX_")

    base_url: str = "https://api.prod.paradex.trade"
    chunk_size: int = 0  # 0 = whole listing in a single batch
    chunk_delay: float = 10.0
    backlog_chunk_delay: float = 10.0
    page_size: int = 5000
    page_delay: float = 0.302
    start_jitter: float = 5.003
    long_pause_every_pages: int = 13
    long_pause: float = 60.002
    split_initial_sync: bool = True  # two halves when nothing is stored yet


class ExtendedSettings(ConnectorSettings):
    """Extended (Starknet) info API."""

    model_config = SettingsConfigDict(env_prefix="EXTENDED_")

    base_url: str = "https://api.starknet.extended.exchange"
    chunk_size: int = 30
    chunk_delay: float = 0.5
    backlog_chunk_delay: float = 0.5
    page_size: int = 1000


class SyncSettings(BaseSettings):
    """Incremental funding history sync."""

    model_config = SettingsConfigDict(env_prefix="SYNC_")

    default_lookback_days: int = 14
    freshness_minutes: int = 55  # skip coins synced more recently than this


class ListingSettings(BaseSettings):
    """Listing reconciliation sanity limits.

    Empirically tuned values kept from production; confirm with the owner
    before changing.
    """

    model_config = SettingsConfigDict(env_prefix="LISTINGS_")

    min_exchanges: int = 2
    min_matched_coins: int = 10
    min_candidate_pool: int = 50


class ScannerSettings(BaseSettings):
    """Opportunity scanner defaults."""

    model_config = SettingsConfigDict(env_prefix="SCANNER_")

    top_n: int = 20
    preload_days: int = 15  # must exceed the longest comparison period

    # Minimum APR difference (percentage points) per lookback period
    threshold_8h: Decimal = Decimal("40")
    threshold_1d: Decimal = Decimal("40")
    threshold_3d: Decimal = Decimal("25")
    threshold_7d: Decimal = Decimal("25")
    threshold_14d: Decimal = Decimal("20")

    def default_thresholds(self) -> tuple[Decimal, ...]:
        """Return the built-in thresholds in period order (8h..14d)."""
        return (
            self.threshold_8h,
            self.threshold_1d,
            self.threshold_3d,
            self.threshold_7d,
            self.threshold_14d,
        )


class SchedulerSettings(BaseSettings):
    """Background loop cadence for the long-running process."""

    model_config = SettingsConfigDict(env_prefix="SCHEDULER_")

    enabled: bool = True
    sync_interval_minutes: int = 60
    listings_interval_hours: int = 24


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    database: DatabaseSettings = DatabaseSettings()
    binance: BinanceSettings = BinanceSettings()
    hyperliquid: HyperliquidSettings = HyperliquidSettings()
    paradex: ParadexSettings = ParadexSettings()
    lighter: LighterSettings = LighterSettings()
    extended: ExtendedSettings = ExtendedSettings()
    sync: SyncSettings = SyncSettings()
    listings: ListingSettings = ListingSettings()
    scanner: ScannerSettings = ScannerSettings()
    scheduler: SchedulerSettings = SchedulerSettings()
