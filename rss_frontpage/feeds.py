"""Feed parsing helpers."""

from __future__ import annotations

import calendar
import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Union

import feedparser
from bs4 import BeautifulSoup

from .models import FeedItem, GenericMeta, HackerNewsMeta, ItemMeta

logger = logging.getLogger(__name__)

MAX_PARSED_ITEMS = 50
HN_HOST = "hnrss.org"
DEFAULT_TITLE = "Untitled"
MISSING_LINK = "#"

_POINTS_RE = re.compile(r"Points:\s*(\d+)", re.IGNORECASE)
_COMMENTS_RE = re.compile(r"Comments:\s*(\d+)", re.IGNORECASE)


@dataclass
class ParsedFeed:
    """Result of parsing one feed document."""

    dialect: Optional[str]
    items: List[FeedItem]


def to_datetime(value: Optional[time.struct_time]) -> Optional[datetime]:
    """Convert feedparser UTC timestamps to timezone-aware datetimes."""
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc)
    except (OverflowError, ValueError, TypeError):
        return None


def is_hacker_news(source_url: Optional[str]) -> bool:
    return bool(source_url) and HN_HOST in source_url


def parse_document(raw_document: Union[str, bytes], source_url: str) -> ParsedFeed:
    """Parse a feed document and report which dialect it was read as."""
    if isinstance(raw_document, str):
        raw_document = raw_document.encode("utf-8")
    try:
        parsed = feedparser.parse(raw_document)
    except Exception as exc:  # noqa: BLE001 - parser must never raise
        logger.warning("feedparser failed on %s: %s", source_url, exc)
        return ParsedFeed(dialect=None, items=[])

    dialect = _detect_dialect(parsed)
    hacker_news = is_hacker_news(source_url)
    items: List[FeedItem] = []

    for entry in parsed.entries[:MAX_PARSED_ITEMS]:
        title = (entry.get("title") or "").strip() or DEFAULT_TITLE
        link = (entry.get("link") or "").strip() or MISSING_LINK

        published = None
        for attr in ("published_parsed", "updated_parsed", "created_parsed"):
            published = entry.get(attr)
            if published:
                break

        meta = _extract_hn_meta(entry) if hacker_news else _extract_generic_meta(entry)
        items.append(
            FeedItem(
                title=title,
                link=link,
                published_at=to_datetime(published),
                source_meta=meta.tags(),
                comments_link=(
                    meta.comments_link if isinstance(meta, HackerNewsMeta) else None
                ),
            )
        )

    if len(parsed.entries) > MAX_PARSED_ITEMS:
        logger.debug(
            "Feed %s has %d entries; keeping the first %d",
            source_url,
            len(parsed.entries),
            MAX_PARSED_ITEMS,
        )
    logger.info("Parsed %d items from %s (%s)", len(items), source_url, dialect)
    return ParsedFeed(dialect=dialect, items=items)


def parse_feed(raw_document: Union[str, bytes], source_url: str) -> List[FeedItem]:
    """Return normalised items for a feed document; never raises."""
    return parse_document(raw_document, source_url).items


def _detect_dialect(parsed) -> Optional[str]:
    version = parsed.get("version") or ""
    if version.startswith("rss"):
        return "rss"
    if version.startswith("atom"):
        return "atom"
    if parsed.entries:
        # Recovered from a malformed document; treat item containers as RSS.
        return "rss"
    return None


def _extract_hn_meta(entry) -> HackerNewsMeta:
    description = _strip_html(entry.get("summary") or entry.get("description") or "")
    points = _POINTS_RE.search(description)
    comments = _COMMENTS_RE.search(description)
    return HackerNewsMeta(
        points=points.group(1) if points else None,
        comments=comments.group(1) if comments else None,
        comments_link=(entry.get("comments") or "").strip() or None,
    )


def _extract_generic_meta(entry) -> GenericMeta:
    author = (entry.get("author") or "").strip() or None
    category = None
    tags = entry.get("tags") or []
    if tags:
        first = tags[0]
        category = (first.get("term") or first.get("label") or "").strip() or None
    return GenericMeta(author=author, category=category)


def _strip_html(raw_value: str) -> str:
    """Return text content extracted from HTML fragments."""
    soup = BeautifulSoup(raw_value, "html.parser")
    text = soup.get_text(separator=" ", strip=True)
    text = re.sub(r"\s+([.,;:!?])", r"\1", text)
    text = re.sub(r"\s{2,}", " ", text)
    return text.strip()
