"""Config-driven construction of the enabled exchange connectors."""

from funding_arb.config import AppSettings, ConnectorSettings
from funding_arb.exchange.binance_client import BinanceConnector
from funding_arb.exchange.client import ExchangeConnector
from funding_arb.exchange.extended_client import ExtendedConnector
from funding_arb.exchange.hyperliquid_client import HyperliquidConnector
from funding_arb.exchange.lighter_client import LighterConnector
from funding_arb.exchange.paradex_client import ParadexConnector
from funding_arb.logging import get_logger
from funding_arb.models import Exchange

logger = get_logger(__name__)

CONNECTOR_CLASSES: dict[Exchange, type[ExchangeConnector]] = {
    Exchange.BINANCE: BinanceConnector,
    Exchange.HYPERLIQUID: HyperliquidConnector,
    Exchange.PARADEX: ParadexConnector,
    Exchange.LIGHTER: LighterConnector,
    Exchange.EXTENDED: ExtendedConnector,
}


def connector_settings(settings: AppSettings, exchange: Exchange) -> ConnectorSettings:
    """Return the settings section of one exchange (settings.binance, ...)."""
    return getattr(settings, exchange.name.lower())


def build_connectors(settings: AppSettings) -> dict[Exchange, ExchangeConnector]:
    """Instantiate a connector for every enabled exchange, in scan order."""
    connectors: dict[Exchange, ExchangeConnector] = {}
    for exchange, connector_cls in CONNECTOR_CLASSES.items():
        section = connector_settings(settings, exchange)
        if not section.enabled:
            logger.info("connector_disabled", exchange=exchange.value)
            continue
        connectors[exchange] = connector_cls(section)  # type: ignore[call-arg]
    return connectors
