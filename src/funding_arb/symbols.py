"""Symbol normalization to canonical coin tickers.

Every exchange decorates the base ticker differently: Binance appends the
quote currency, Lighter and Paradex add perp suffixes, most venues prefix
small-unit tokens with "1000", and Hyperliquid-style venues mark large-supply
tokens with a lowercase "k" (kPEPE, kBONK). normalize() strips all of these
so that the result can be used as a join key across exchanges.

Pure functions only -- no I/O.
"""

from funding_arb.models import Exchange

_LEVERAGE_PREFIX = "1000"
_BINANCE_QUOTE = "USDT"


def _strip_suffix(symbol: str, suffix: str) -> str:
    if symbol.endswith(suffix) and len(symbol) > len(suffix):
        return symbol[: -len(suffix)]
    return symbol


def _strip_leverage_prefix(symbol: str) -> str:
    if symbol.startswith(_LEVERAGE_PREFIX) and len(symbol) > len(_LEVERAGE_PREFIX):
        return symbol[len(_LEVERAGE_PREFIX):]
    return symbol


def _strip_kilo_prefix(symbol: str) -> str:
    """Drop a lowercase "k" when it precedes an upper-case letter (kPEPE -> PEPE).

    Upper-case K is part of real tickers (KAITO, KAS) and is kept.
    """
    if len(symbol) > 1 and symbol[0] == "k" and symbol[1].isupper():
        return symbol[1:]
    return symbol


def strip_exchange_convention(raw_symbol: str, exchange: Exchange) -> str:
    """Remove the exchange-specific quote/perp decoration from a market name."""
    symbol = raw_symbol.strip()
    if exchange is Exchange.BINANCE:
        return _strip_suffix(symbol, _BINANCE_QUOTE)
    if exchange is Exchange.LIGHTER:
        return _strip_suffix(symbol, "-PERP")
    if exchange is Exchange.PARADEX:
        return symbol.split("-")[0]
    if exchange is Exchange.EXTENDED:
        return _strip_suffix(symbol, "-USD")
    return symbol


def normalize(raw_symbol: str, exchange: Exchange) -> str:
    """Map an exchange market name to its canonical coin.

    Examples:
        normalize("1000PEPEUSDT", Exchange.BINANCE) -> "PEPE"
        normalize("kPEPE", Exchange.HYPERLIQUID) -> "PEPE"
        normalize("BTC-USD-PERP", Exchange.PARADEX) -> "BTC"

    A symbol that is already canonical is returned unchanged.
    """
    symbol = strip_exchange_convention(raw_symbol, exchange)
    symbol = _strip_leverage_prefix(symbol)
    return _strip_kilo_prefix(symbol)


def is_binance_usdt_market(raw_symbol: str) -> bool:
    """True for USDT-quoted Binance contracts (the only ones we track)."""
    return raw_symbol.endswith(_BINANCE_QUOTE) and len(raw_symbol) > len(_BINANCE_QUOTE)
