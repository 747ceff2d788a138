"""
Unit tests for news and price source boundaries.

HTTP is mocked at the requests session.
"""

from decimal import Decimal
from unittest.mock import Mock

import pytest
import requests

from market_brief.core.errors import PriceResolutionError
from market_brief.sources.news import fetch_raw, parse_feed
from market_brief.sources.quotes import (
    SOURCE_COINGECKO,
    SOURCE_YAHOO,
    fetch_crypto,
    fetch_gold,
    fetch_rates,
    fetch_stock,
)

RSS = b"""<?xml version="1.0"?>
<rss version="2.0"><channel>
  <item>
    <title> Fed holds rates </title>
    <description>Policy unchanged</description>
    <link>https://news.test/fed</link>
    <pubDate>Mon, 01 Jan 2024 00:00:00 GMT</pubDate>
  </item>
  <item><title></title><link>https://news.test/empty</link></item>
</channel></rss>"""

ATOM = b"""<?xml version="1.0"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <entry>
    <title>Oil climbs</title>
    <summary>Brent up 2%</summary>
    <link href="https://news.test/oil"/>
    <updated>2024-01-01T00:00:00Z</updated>
  </entry>
</feed>"""


def _session(payload=None, content=None, status_error=None, raises=None):
    response = Mock()
    response.json.return_value = payload
    response.content = content
    if status_error is not None:
        response.raise_for_status.side_effect = status_error
    session = Mock()
    if raises is not None:
        session.get.side_effect = raises
    else:
        session.get.return_value = response
    return session


class TestParseFeed:
    """Test RSS and Atom parsing."""

    def test_rss_items(self):
        items = parse_feed(RSS, "wsj_markets")

        assert len(items) == 1
        item = items[0]
        assert item.title == "Fed holds rates"
        assert item.description == "Policy unchanged"
        assert item.link == "https://news.test/fed"
        assert item.published_at == "Mon, 01 Jan 2024 00:00:00 GMT"
        assert item.source == "wsj_markets"
        assert item.is_fallback is False

    def test_atom_entries(self):
        items = parse_feed(ATOM, "yahoo_finance")

        assert [(i.title, i.link, i.published_at) for i in items] == [
            ("Oil climbs", "https://news.test/oil", "2024-01-01T00:00:00Z")
        ]

    def test_invalid_xml(self):
        with pytest.raises(ValueError, match="Invalid feed XML from bbc"):
            parse_feed(b"<html><body>", "bbc")


class TestFetchRaw:
    """Test feed fetching."""

    def test_fetch_parses_body(self):
        session = _session(content=RSS)

        items = fetch_raw("wsj_markets", "https://feeds.test/rss", timeout=5, session=session)

        assert [i.title for i in items] == ["Fed holds rates"]
        args, kwargs = session.get.call_args
        assert args == ("https://feeds.test/rss",)
        assert kwargs["timeout"] == 5
        assert "User-Agent" in kwargs["headers"]

    def test_http_error_propagates(self):
        error = requests.HTTPError("429 Too Many Requests", response=Mock(status_code=429))
        session = _session(content=b"", status_error=error)

        with pytest.raises(requests.HTTPError):
            fetch_raw("cnbc", "https://feeds.test/rss", session=session)


class TestQuotes:
    """Test price source boundaries."""

    def test_stock(self):
        payload = {"chart": {"result": [{"meta": {"regularMarketPrice": 189.5, "currency": "USD"}}]}}
        session = _session(payload=payload)

        quote = fetch_stock("AAPL", session=session)

        assert quote.price == Decimal("189.5")
        assert quote.currency == "USD"
        assert quote.source == SOURCE_YAHOO
        assert session.get.call_args.args[0].endswith("/AAPL")

    def test_stock_previous_close_and_default_currency(self):
        payload = {"chart": {"result": [{"meta": {"previousClose": 34.25}}]}}

        quote = fetch_stock("PTT.BK", session=_session(payload=payload))

        assert quote.price == Decimal("34.25")
        assert quote.currency == "USD"

    def test_stock_without_data(self):
        with pytest.raises(PriceResolutionError, match="No price data found for ZZZ"):
            fetch_stock("ZZZ", session=_session(payload={"chart": {"result": None}}))

    def test_transport_error_carries_source(self):
        session = _session(raises=requests.ConnectionError("reset"))

        with pytest.raises(PriceResolutionError) as exc_info:
            fetch_stock("AAPL", session=session)

        assert exc_info.value.source == SOURCE_YAHOO
        assert isinstance(exc_info.value.__cause__, requests.ConnectionError)

    def test_crypto_maps_ticker_to_coin_id(self):
        session = _session(payload={"bitcoin": {"usd": 65000}})

        quote = fetch_crypto("btc", session=session)

        assert quote.price == Decimal("65000")
        assert quote.source == SOURCE_COINGECKO
        assert session.get.call_args.kwargs["params"] == {"ids": "bitcoin", "vs_currencies": "usd"}

    def test_crypto_not_found(self):
        with pytest.raises(PriceResolutionError, match="Crypto AAPL not found"):
            fetch_crypto("AAPL", session=_session(payload={}))

    def test_gold_list_payload(self):
        quote = fetch_gold(session=_session(payload=[{"price": 2345.6}]))
        assert quote.price == Decimal("2345.6")

    def test_invalid_price_rejected(self):
        with pytest.raises(PriceResolutionError, match="Invalid price"):
            fetch_gold(session=_session(payload={"price": -1}))

    def test_rates(self):
        session = _session(payload={"base": "USD", "rates": {"thb": 35.5, "EUR": 0.9, "BAD": "x"}})

        rates = fetch_rates("USD", session=session)

        assert rates == {"THB": Decimal("35.5"), "EUR": Decimal("0.9")}
        assert session.get.call_args.args[0].endswith("/USD")

    def test_rates_invalid_response(self):
        with pytest.raises(PriceResolutionError, match="Invalid exchange rate response"):
            fetch_rates(session=_session(payload={"error": "quota"}))
