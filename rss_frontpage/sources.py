"""Configured feed sources, their display order and brand colours."""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Sequence

from .models import FeedSource
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

FEEDS_KEY = "feeds"
FEED_ORDER_KEY = "feedOrder"

DEFAULT_FEEDS: List[FeedSource] = [
    FeedSource("1", "Hacker News", "https://hnrss.org/frontpage", "#ff6600", 0),
    FeedSource(
        "2", "Simon Willison", "https://simonwillison.net/atom/everything/", "#3b82f6", 1
    ),
    FeedSource("3", "TechCrunch", "https://techcrunch.com/feed/", "#0a9c00", 2),
    FeedSource(
        "4",
        "MIT AI News",
        "https://news.mit.edu/rss/topic/artificial-intelligence2",
        "#a31f34",
        3,
    ),
]

_HEX_RE = re.compile(r"^#?([a-f\d]{2})([a-f\d]{2})([a-f\d]{2})$", re.IGNORECASE)
_FALLBACK_RGB = (99, 102, 241)


def order_sources(
    sources: Sequence[FeedSource], custom_order: Optional[Sequence[str]] = None
) -> List[FeedSource]:
    """Sources named in ``custom_order`` first, then the rest in default order."""
    default = sorted(sources, key=lambda source: source.order_index)
    if not custom_order:
        return default

    by_id = {source.id: source for source in default}
    ordered = []
    listed = set()
    for source_id in custom_order:
        if source_id in by_id and source_id not in listed:
            ordered.append(by_id[source_id])
            listed.add(source_id)
    ordered.extend(source for source in default if source.id not in listed)
    return ordered


async def load_sources(store: KeyValueStore) -> List[FeedSource]:
    """Return stored feed sources, or the defaults when none are stored."""
    stored = (await store.get([FEEDS_KEY])).get(FEEDS_KEY)
    if not stored:
        return list(DEFAULT_FEEDS)
    sources = []
    for index, item in enumerate(stored):
        sources.append(
            FeedSource(
                id=str(item["id"]),
                name=item.get("name") or item["url"],
                url=item["url"],
                color=item.get("color") or "#6366f1",
                order_index=item.get("order_index", index),
            )
        )
    return sources


async def save_sources(store: KeyValueStore, sources: Sequence[FeedSource]) -> None:
    await store.set(
        {
            FEEDS_KEY: [
                {
                    "id": source.id,
                    "name": source.name,
                    "url": source.url,
                    "color": source.color,
                    "order_index": source.order_index,
                }
                for source in sources
            ]
        }
    )


async def load_feed_order(store: KeyValueStore) -> Optional[List[str]]:
    return (await store.get([FEED_ORDER_KEY])).get(FEED_ORDER_KEY) or None


async def save_feed_order(store: KeyValueStore, order: Sequence[str]) -> None:
    await store.set({FEED_ORDER_KEY: list(order)})


def hex_to_rgb(value: str) -> tuple:
    match = _HEX_RE.match(value or "")
    if not match:
        return _FALLBACK_RGB
    return tuple(int(part, 16) for part in match.groups())


def color_vars(value: str) -> Dict[str, str]:
    """Derive the accent palette for a feed section from its brand colour."""
    r, g, b = hex_to_rgb(value)
    return {
        "--col-bg": f"rgba({r}, {g}, {b}, 0.08)",
        "--col-accent": value,
        "--col-glow": f"rgba({r}, {g}, {b}, 0.4)",
        "--col-hover": f"rgba({r}, {g}, {b}, 0.15)",
        "--col-border": f"rgba({r}, {g}, {b}, 0.25)",
    }
