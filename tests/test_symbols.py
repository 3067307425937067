"""Tests for symbol normalization."""

import pytest

from funding_arb.models import Exchange
from funding_arb.symbols import is_binance_usdt_market, normalize


@pytest.mark.parametrize(
    ("raw", "exchange", "expected"),
    [
        ("1000PEPEUSDT", Exchange.BINANCE, "PEPE"),
        ("BTCUSDT", Exchange.BINANCE, "BTC"),
        ("kPEPE", Exchange.HYPERLIQUID, "PEPE"),
        ("kBONK", Exchange.HYPERLIQUID, "BONK"),
        ("BTC-USD-PERP", Exchange.PARADEX, "BTC"),
        ("ETH-USD", Exchange.EXTENDED, "ETH"),
        ("1000BONK-USD", Exchange.EXTENDED, "BONK"),
        ("SOL", Exchange.LIGHTER, "SOL"),
        ("DOGE-PERP", Exchange.LIGHTER, "DOGE"),
    ],
)
def test_normalize_strips_exchange_conventions(raw, exchange, expected):
    assert normalize(raw, exchange) == expected


@pytest.mark.parametrize("ticker", ["KAITO", "KAS", "KNC"])
def test_uppercase_k_is_part_of_ticker(ticker):
    assert normalize(ticker, Exchange.HYPERLIQUID) == ticker
    assert normalize(f"{ticker}USDT", Exchange.BINANCE) == ticker


def test_lowercase_k_needs_uppercase_follower():
    # "kx" is not the large-supply convention
    assert normalize("kx", Exchange.HYPERLIQUID) == "kx"


@pytest.mark.parametrize("exchange", list(Exchange))
def test_canonical_symbol_is_unchanged(exchange):
    for coin in ("BTC", "ETH", "PEPE", "WIF"):
        assert normalize(coin, exchange) == coin


def test_normalize_is_stable_across_calls():
    results = {normalize("1000SHIBUSDT", Exchange.BINANCE) for _ in range(5)}
    assert results == {"SHIB"}


def test_bare_prefix_is_not_emptied():
    assert normalize("1000", Exchange.HYPERLIQUID) == "1000"
    assert normalize("USDT", Exchange.BINANCE) == "USDT"


def test_is_binance_usdt_market():
    assert is_binance_usdt_market("BTCUSDT")
    assert not is_binance_usdt_market("BTCUSDC")
    assert not is_binance_usdt_market("USDT")
