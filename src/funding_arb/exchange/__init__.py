"""Exchange connector layer -- one connector per supported venue."""

from funding_arb.exchange.binance_client import BinanceConnector
from funding_arb.exchange.client import ExchangeConnector
from funding_arb.exchange.extended_client import ExtendedConnector
from funding_arb.exchange.hyperliquid_client import HyperliquidConnector
from funding_arb.exchange.lighter_client import LighterConnector
from funding_arb.exchange.paradex_client import ParadexConnector
from funding_arb.exchange.registry import build_connectors
from funding_arb.exchange.types import FundingPoint, RawMarket

__all__ = [
    "BinanceConnector",
    "ExchangeConnector",
    "ExtendedConnector",
    "FundingPoint",
    "HyperliquidConnector",
    "LighterConnector",
    "ParadexConnector",
    "RawMarket",
    "build_connectors",
]
