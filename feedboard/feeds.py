"""Feed fetching and RSS/RDF/Atom normalization helpers."""

from __future__ import annotations

import logging
import re
import xml.sax
from datetime import datetime, timezone
from typing import List, Optional, Union
from urllib.parse import quote

import feedparser
import requests
from bs4 import BeautifulSoup
from dateutil import parser as date_parser

from .models import FeedItem, FeedSource, Source

logger = logging.getLogger(__name__)

DEFAULT_PROXY = "https://api.allorigins.win/raw?url={url}"
SUMMARY_MAX_LENGTH = 200

# Abbreviations seen in Japanese feeds that dateutil cannot resolve alone.
TZINFOS = {"JST": 9 * 3600}


class FeedFetchError(RuntimeError):
    """Raised when a feed cannot be retrieved through the proxy."""


def proxy_url(url: str, template: str = DEFAULT_PROXY) -> str:
    """Return the proxied form of ``url``."""
    return template.format(url=quote(url, safe=""))


def fetch_feed(
    feed: FeedSource, proxy_template: str = DEFAULT_PROXY, timeout: Optional[float] = None
) -> bytes:
    """Download the raw body of a single feed definition."""
    target = proxy_url(feed.url, proxy_template)
    logger.info("Fetching feed '%s' (%s)", feed.title, feed.url)
    try:
        response = requests.get(target, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as exc:
        raise FeedFetchError(f"{feed.source.value}: {exc}") from exc
    return response.content


def strip_html(raw_value: str) -> str:
    """Return text content extracted from HTML fragments."""
    soup = BeautifulSoup(raw_value, "html.parser")
    text = soup.get_text(separator=" ", strip=True)
    text = re.sub(r"\s+([.,;:!?])", r"\1", text)
    text = re.sub(r"\s{2,}", " ", text)
    return text.strip()


def _entry_summary(entry) -> str:
    summary = entry.get("summary")
    if not summary:
        content = entry.get("content")
        if content:
            try:
                summary = content[0].get("value")
            except (TypeError, KeyError, IndexError, AttributeError):
                summary = None
    if not summary:
        return ""
    return strip_html(summary)[:SUMMARY_MAX_LENGTH]


def _entry_published(entry) -> Optional[str]:
    # pubDate and Atom published land in "published"; bare and Dublin Core
    # dates land in "updated".
    for key in ("published", "updated"):
        if key not in entry:
            continue
        value = (entry[key] or "").strip()
        if value:
            return value
    return None


def parse_feed(raw_xml: Union[str, bytes], source: Source) -> List[FeedItem]:
    """Parse an RSS 2.0, RDF or Atom document into feed items.

    Documents that are not well-formed produce an empty list. Entries
    without a title or a link are skipped. Output keeps document order.
    """
    if isinstance(raw_xml, str):
        raw_xml = raw_xml.encode("utf-8")

    parsed = feedparser.parse(raw_xml)
    error = parsed.get("bozo_exception")
    if isinstance(error, xml.sax.SAXException):
        logger.warning("Discarding malformed feed for %s: %s", source.value, error)
        return []

    items: List[FeedItem] = []
    for entry in parsed.entries:
        title = (entry.get("title") or "").strip()
        link = (entry.get("link") or "").strip()
        if not title or not link:
            logger.debug("Skipping %s entry without link or title", source.value)
            continue

        items.append(
            FeedItem(
                title=title,
                link=link,
                published=_entry_published(entry),
                summary=_entry_summary(entry),
                source=source,
            )
        )

    logger.info("Parsed %d items from %s feed", len(items), source.value)
    return items


def parse_published(value: Optional[str]) -> Optional[datetime]:
    """Convert a feed timestamp to an aware datetime, or ``None``."""
    if not value:
        return None
    try:
        parsed = date_parser.parse(value, tzinfos=TZINFOS)
    except (ValueError, OverflowError, TypeError):
        logger.debug("Unparseable feed date %r", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
