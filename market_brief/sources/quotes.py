"""
Price source boundaries.

One function per asset type plus the forex rate table. Every function
raises PriceResolutionError carrying the source name on failure.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

import requests

from ..core.errors import PriceResolutionError

STOCK_URL = "https://query1.finance.yahoo.com/v8/finance/chart/"
CRYPTO_URL = "https://api.coingecko.com/api/v3/simple/price"
GOLD_URL = "https://api.metals.live/v1/spot/gold"
FOREX_URL = "https://api.exchangerate-api.com/v4/latest/"

SOURCE_YAHOO = "Yahoo Finance"
SOURCE_COINGECKO = "CoinGecko"
SOURCE_METALS = "Metals Live"
SOURCE_FOREX = "Exchange Rate API"

USER_AGENT = "Mozilla/5.0 (compatible; market-brief/0.1)"

CRYPTO_IDS = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "USDT": "tether",
    "BNB": "binancecoin",
    "ADA": "cardano",
    "XRP": "ripple",
    "SOL": "solana",
    "DOT": "polkadot",
}


@dataclass(frozen=True)
class SourceQuote:
    """Raw price as reported by a source, before home-currency conversion."""
    price: Decimal
    currency: str
    source: str


def _get_json(url: str, source: str, timeout: float, session=None, **kwargs) -> Any:
    http = session or requests
    try:
        response = http.get(url, timeout=timeout, headers={"User-Agent": USER_AGENT}, **kwargs)
        response.raise_for_status()
        return response.json()
    except (requests.RequestException, ValueError) as e:
        raise PriceResolutionError(str(e), source) from e


def _to_decimal(value: Any, source: str) -> Decimal:
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise PriceResolutionError(f"Invalid price {value!r}", source) from e
    if not price.is_finite() or price <= 0:
        raise PriceResolutionError(f"Invalid price {value!r}", source)
    return price


def fetch_stock(symbol: str, timeout: float = 10.0, session=None) -> SourceQuote:
    """Last regular-market price (or previous close) from Yahoo Finance."""
    data = _get_json(f"{STOCK_URL}{symbol}", SOURCE_YAHOO, timeout, session)
    try:
        meta = data["chart"]["result"][0]["meta"]
    except (KeyError, IndexError, TypeError) as e:
        raise PriceResolutionError(f"No price data found for {symbol}", SOURCE_YAHOO) from e

    price = meta.get("regularMarketPrice") or meta.get("previousClose")
    if price is None:
        raise PriceResolutionError(f"No price data found for {symbol}", SOURCE_YAHOO)
    return SourceQuote(
        price=_to_decimal(price, SOURCE_YAHOO),
        currency=meta.get("currency") or "USD",
        source=SOURCE_YAHOO,
    )


def fetch_crypto(symbol: str, timeout: float = 10.0, session=None) -> SourceQuote:
    """USD price from CoinGecko, mapping common tickers to coin ids."""
    coin_id = CRYPTO_IDS.get(symbol.upper(), symbol.lower())
    data = _get_json(
        CRYPTO_URL, SOURCE_COINGECKO, timeout, session,
        params={"ids": coin_id, "vs_currencies": "usd"},
    )
    price = (data or {}).get(coin_id, {}).get("usd") if isinstance(data, dict) else None
    if price is None:
        raise PriceResolutionError(f"Crypto {symbol} not found", SOURCE_COINGECKO)
    return SourceQuote(price=_to_decimal(price, SOURCE_COINGECKO), currency="USD", source=SOURCE_COINGECKO)


def fetch_gold(timeout: float = 10.0, session=None) -> SourceQuote:
    """Spot gold in USD per troy ounce."""
    data = _get_json(GOLD_URL, SOURCE_METALS, timeout, session)
    if isinstance(data, list) and data:
        data = data[0]
    price = data.get("price") if isinstance(data, dict) else None
    if price is None:
        raise PriceResolutionError("Gold price not available", SOURCE_METALS)
    return SourceQuote(price=_to_decimal(price, SOURCE_METALS), currency="USD", source=SOURCE_METALS)


def fetch_rates(base: str = "USD", timeout: float = 15.0, session=None) -> Dict[str, Decimal]:
    """Units of each currency per one unit of base."""
    data = _get_json(f"{FOREX_URL}{base}", SOURCE_FOREX, timeout, session)
    rates: Optional[dict] = data.get("rates") if isinstance(data, dict) else None
    if not rates:
        raise PriceResolutionError("Invalid exchange rate response", SOURCE_FOREX)

    parsed = {}
    for currency, value in rates.items():
        try:
            parsed[str(currency).upper()] = Decimal(str(value))
        except (InvalidOperation, ValueError):
            continue
    if not parsed:
        raise PriceResolutionError("Invalid exchange rate response", SOURCE_FOREX)
    return parsed
