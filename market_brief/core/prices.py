"""
Cached price resolution.

Resolves a symbol to a quote in its native currency and in the home
currency. Lookups never raise: total failure yields a quote priced
NOT_AVAILABLE.

Exchange Rate Tiers:
1. Fresh cache - Younger than the TTL
2. Live refresh - One call to the forex source
3. Stale cache - Any previously fetched rates, however old
4. Static table - Built-in approximate rates
"""

import functools
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Callable, Dict, Optional, Tuple, Union

from ..config.loader import PriceConfig
from ..sources import quotes
from ..sources.quotes import SourceQuote
from .errors import ConversionError, PriceResolutionError
from .strategies import Strategy, StrategyChain

logger = logging.getLogger(__name__)


class Availability(Enum):
    NOT_AVAILABLE = "N/A"


NOT_AVAILABLE = Availability.NOT_AVAILABLE

Price = Union[Decimal, Availability]

SOURCE_UNAVAILABLE = "unavailable"
SOURCE_ESTIMATED = "Estimated"
ESTIMATED_GOLD_USD = Decimal("2000")

STATIC_RATES: Dict[str, Decimal] = {
    "USD": Decimal("1"),
    "THB": Decimal("35.0"),
    "EUR": Decimal("0.85"),
    "GBP": Decimal("0.73"),
    "JPY": Decimal("110.0"),
    "CNY": Decimal("6.4"),
}

ASSET_TYPE_ALIASES = {
    "stock": "stock",
    "หุ้น": "stock",
    "currency": "currency",
    "forex": "currency",
    "สกุลเงิน": "currency",
    "crypto": "crypto",
    "cryptocurrency": "crypto",
    "คริปโต": "crypto",
    "gold": "gold",
    "ทอง": "gold",
}


def normalize_asset_type(asset_type: Optional[str]) -> Optional[str]:
    """Map an asset-type label to stock/currency/crypto/gold, or None."""
    if not asset_type:
        return None
    return ASSET_TYPE_ALIASES.get(asset_type.strip().lower())


@dataclass(frozen=True)
class PriceQuote:
    """Resolved price of one asset."""
    symbol: str
    asset_type: str
    price: Price
    currency: str
    price_in_home: Price
    source: str
    timestamp: datetime
    error: Optional[str] = None

    @property
    def available(self) -> bool:
        return self.price is not NOT_AVAILABLE


@dataclass
class RateCache:
    """Units of each currency per USD, with the time they were fetched."""
    rates: Dict[str, Decimal] = field(default_factory=dict)
    last_update: Optional[float] = None
    ttl: float = 3600.0

    def is_fresh(self, now: float) -> bool:
        return self.last_update is not None and now - self.last_update < self.ttl

    def store(self, rates: Dict[str, Decimal], now: float) -> None:
        if not rates:
            raise ValueError("rates must not be empty")
        self.rates = dict(rates)
        self.last_update = now


def format_price(price: Price, currency: str, home_currency: str = "THB") -> str:
    """Render a price for humans.

    Home-currency amounts get two decimals; others keep up to six
    significant fractional digits.
    """
    if price is NOT_AVAILABLE or price is None:
        return NOT_AVAILABLE.value
    try:
        amount = Decimal(str(price))
    except (InvalidOperation, ValueError):
        return f"{price} {currency}"
    if not amount.is_finite():
        return f"{price} {currency}"

    if currency == home_currency:
        return f"{amount:,.2f} {currency}"

    whole, _, fraction = f"{amount.quantize(Decimal('0.000001')):,.6f}".partition(".")
    fraction = fraction.rstrip("0").ljust(2, "0")
    return f"{whole}.{fraction} {currency}"


class CachedResolver:
    """Resolves asset prices and converts them into the home currency.

    Each asset type has its own source function. Sources are injectable;
    by default they are the HTTP boundaries in market_brief.sources.quotes
    bound to the configured timeouts.
    """

    def __init__(
        self,
        config: PriceConfig = PriceConfig(),
        home_currency: str = "THB",
        stock_fetcher: Optional[Callable[[str], SourceQuote]] = None,
        crypto_fetcher: Optional[Callable[[str], SourceQuote]] = None,
        gold_fetcher: Optional[Callable[[], SourceQuote]] = None,
        rates_fetcher: Optional[Callable[[str], Dict[str, Decimal]]] = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        session=None,
    ):
        self._config = config
        self.home_currency = home_currency.upper()
        self._fetch_stock = stock_fetcher or functools.partial(
            quotes.fetch_stock, timeout=config.fetch_timeout, session=session
        )
        self._fetch_crypto = crypto_fetcher or functools.partial(
            quotes.fetch_crypto, timeout=config.fetch_timeout, session=session
        )
        self._fetch_gold = gold_fetcher or functools.partial(
            quotes.fetch_gold, timeout=config.fetch_timeout, session=session
        )
        self._fetch_rates = rates_fetcher or functools.partial(
            quotes.fetch_rates, timeout=config.forex_timeout, session=session
        )
        self._clock = clock
        self._now = now
        self._cache = RateCache(ttl=config.ttl_seconds)
        self._cache_lock = threading.Lock()
        self._resolvers: Dict[str, Callable[[str], SourceQuote]] = {
            "stock": self._resolve_stock,
            "currency": self._resolve_currency,
            "crypto": self._resolve_crypto,
            "gold": self._resolve_gold,
        }

    @property
    def cache(self) -> RateCache:
        return self._cache

    def resolve(self, symbol: str, asset_type: str = "") -> PriceQuote:
        """Resolve symbol to a quote. Never raises.

        Unknown asset types are auto-detected by trying crypto, stock and
        currency in that order.
        """
        logger.info("Getting current price for %s (%s)", symbol, asset_type)
        try:
            kind = normalize_asset_type(asset_type)
            if kind is None:
                kind, raw = self._auto_detect(symbol)
            else:
                raw = self._resolvers[kind](symbol)
            price = Decimal(str(raw.price))
            if not price.is_finite():
                raise PriceResolutionError(f"Invalid price {raw.price!r}", raw.source)
        except Exception as e:
            logger.error("Error getting price for %s: %s", symbol, e)
            return PriceQuote(
                symbol=symbol,
                asset_type=asset_type,
                price=NOT_AVAILABLE,
                currency=NOT_AVAILABLE.value,
                price_in_home=NOT_AVAILABLE,
                source=SOURCE_UNAVAILABLE,
                timestamp=self._now(),
                error=str(e),
            )

        try:
            price_in_home = self.convert_to_home(price, raw.currency)
        except Exception as e:
            logger.error("Cannot convert %s price %r to %s: %s", symbol, price, self.home_currency, e)
            price_in_home = NOT_AVAILABLE

        return PriceQuote(
            symbol=symbol,
            asset_type=asset_type or kind,
            price=price,
            currency=raw.currency,
            price_in_home=price_in_home,
            source=raw.source,
            timestamp=self._now(),
        )

    def convert_to_home(self, price: Price, from_currency: str) -> Price:
        """Convert price into the home currency, or NOT_AVAILABLE."""
        if price is NOT_AVAILABLE:
            return NOT_AVAILABLE
        from_currency = from_currency.upper()
        if from_currency == self.home_currency:
            return price

        rates = self.get_exchange_rates()
        home_rate = rates.get(self.home_currency) or self._config.fallback_usd_rate
        try:
            if from_currency == "USD":
                return price * home_rate
            usd_rate = rates.get(from_currency)
            if not usd_rate:
                raise ConversionError(f"Cannot convert {from_currency} to {self.home_currency}")
            return price / usd_rate * home_rate
        except (ConversionError, ArithmeticError) as e:
            logger.error("Currency conversion failed: %s", e)
            return NOT_AVAILABLE

    def get_exchange_rates(self) -> Dict[str, Decimal]:
        """Units of each currency per USD. Never empty, never raises."""
        with self._cache_lock:
            now = self._clock()
            if self._cache.is_fresh(now):
                return dict(self._cache.rates)

            logger.info("Fetching fresh exchange rates")
            try:
                rates = self._fetch_rates("USD")
                self._cache.store(rates, now)
                logger.info("Exchange rates updated: %d currencies", len(rates))
                return dict(self._cache.rates)
            except Exception as e:
                logger.warning("Exchange rate refresh failed: %s", e)

            if self._cache.rates:
                logger.info("Using cached exchange rates")
                return dict(self._cache.rates)

            logger.info("Using static exchange rates")
            return dict(STATIC_RATES)

    def usd_rate(self) -> Decimal:
        """Home-currency units per USD, for the cost ledger."""
        rates = self.get_exchange_rates()
        return rates.get(self.home_currency) or self._config.fallback_usd_rate

    def format_price(self, price: Price, currency: str) -> str:
        return format_price(price, currency, self.home_currency)

    def _auto_detect(self, symbol: str) -> Tuple[str, SourceQuote]:
        chain = StrategyChain([
            Strategy("crypto", functools.partial(self._resolve_crypto, symbol)),
            Strategy("stock", functools.partial(self._resolve_stock, symbol)),
            Strategy("currency", functools.partial(self._resolve_currency, symbol)),
        ])
        return chain.run()

    def _resolve_stock(self, symbol: str) -> SourceQuote:
        return self._fetch_stock(symbol)

    def _resolve_crypto(self, symbol: str) -> SourceQuote:
        return self._fetch_crypto(symbol)

    def _resolve_currency(self, symbol: str) -> SourceQuote:
        currency = symbol.upper()
        if currency == "USD":
            return SourceQuote(price=Decimal("1"), currency="USD", source=quotes.SOURCE_FOREX)

        rate = self.get_exchange_rates().get(currency)
        if not rate:
            raise PriceResolutionError(f"Currency {currency} not found", quotes.SOURCE_FOREX)
        # Rates are units per USD; a currency quote is USD per unit
        return SourceQuote(price=Decimal("1") / rate, currency="USD", source=quotes.SOURCE_FOREX)

    def _resolve_gold(self, symbol: str) -> SourceQuote:
        try:
            return self._fetch_gold()
        except Exception as e:
            logger.warning("Gold price failed, using estimate: %s", e)
            return SourceQuote(price=ESTIMATED_GOLD_USD, currency="USD", source=SOURCE_ESTIMATED)
