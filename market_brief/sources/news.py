"""
News feed fetching.

Fetches one RSS 2.0 or Atom feed and normalizes its entries.
"""

from dataclasses import dataclass
from typing import List, Optional
from xml.etree import ElementTree as ET

import requests

USER_AGENT = "Mozilla/5.0 (compatible; market-brief/0.1; +https://example.invalid)"
FEED_ACCEPT = "application/rss+xml, application/xml, text/xml, application/atom+xml, */*"

_ATOM_NS = "{http://www.w3.org/2005/Atom}"


@dataclass(frozen=True)
class NewsItem:
    """One headline from a feed, or a placeholder when is_fallback is set."""
    title: str
    description: str
    link: str
    published_at: str
    source: str
    is_fallback: bool = False


def fetch_raw(
    source: str,
    url: str,
    timeout: float = 15.0,
    session: Optional[requests.Session] = None,
) -> List[NewsItem]:
    """Fetch and parse one feed.

    Args:
        source: Logical source name stored on each item
        url: Feed URL
        timeout: Request timeout in seconds
        session: Optional requests session to reuse connections

    Returns:
        Parsed items, possibly empty

    Raises:
        requests.RequestException: On transport or HTTP status failure
        ValueError: If the body is not a parseable feed
    """
    http = session or requests
    response = http.get(
        url,
        timeout=timeout,
        headers={"User-Agent": USER_AGENT, "Accept": FEED_ACCEPT},
    )
    response.raise_for_status()
    return parse_feed(response.content, source)


def parse_feed(body: bytes, source: str) -> List[NewsItem]:
    """Parse RSS 2.0 items or Atom entries into NewsItems."""
    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        raise ValueError(f"Invalid feed XML from {source}: {e}") from e

    items = []
    for node in root.iter("item"):
        items.append(NewsItem(
            title=_text(node, "title"),
            description=_text(node, "description"),
            link=_text(node, "link"),
            published_at=_text(node, "pubDate"),
            source=source,
        ))

    for node in root.iter(f"{_ATOM_NS}entry"):
        link_node = node.find(f"{_ATOM_NS}link")
        items.append(NewsItem(
            title=_text(node, f"{_ATOM_NS}title"),
            description=_text(node, f"{_ATOM_NS}summary"),
            link=link_node.get("href", "") if link_node is not None else "",
            published_at=_text(node, f"{_ATOM_NS}published") or _text(node, f"{_ATOM_NS}updated"),
            source=source,
        ))

    return [item for item in items if item.title]


def _text(node: ET.Element, tag: str) -> str:
    child = node.find(tag)
    if child is None or child.text is None:
        return ""
    return child.text.strip()
