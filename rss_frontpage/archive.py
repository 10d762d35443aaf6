"""Durable per-feed item history.

The live feed is only a bounded recent window; the archive keeps every item
ever seen for a source until the size bound evicts it. On a link collision
the live record replaces the archived one wholesale, even when the archived
copy is newer or richer.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

from .models import FeedItem
from .storage import KeyedLocks, KeyValueStore

logger = logging.getLogger(__name__)

MAX_ARCHIVE_ITEMS = 200


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def merge_items(
    live_items: Iterable[FeedItem],
    prior_items: Iterable[FeedItem],
    max_items: int = MAX_ARCHIVE_ITEMS,
    now: Optional[datetime] = None,
) -> List[FeedItem]:
    """Merge live items into an archive: dedupe by link, newest first, bounded."""
    now = now or _utcnow()
    by_link = {}
    for item in prior_items:
        by_link[item.link] = item
    for item in live_items:
        by_link[item.link] = item

    merged = sorted(by_link.values(), key=lambda item: item.sort_key(now), reverse=True)
    return merged[:max_items]


class ArchiveStore:
    """Loads, merges and persists archives under ``archive_<source id>``."""

    def __init__(
        self,
        store: KeyValueStore,
        max_items: int = MAX_ARCHIVE_ITEMS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.max_items = max_items
        self._clock = clock
        self._locks = KeyedLocks()

    @staticmethod
    def key_for(source_id: str) -> str:
        return f"archive_{source_id}"

    async def load(self, source_id: str) -> List[FeedItem]:
        key = self.key_for(source_id)
        payload = (await self.store.get([key])).get(key) or []
        return [FeedItem.from_dict(item) for item in payload]

    async def merge_and_persist(
        self, source_id: str, live_items: List[FeedItem]
    ) -> List[FeedItem]:
        key = self.key_for(source_id)
        async with self._locks(key):
            prior = await self.load(source_id)
            merged = merge_items(
                live_items, prior, max_items=self.max_items, now=self._clock()
            )
            await self.store.set({key: [item.to_dict() for item in merged]})

        logger.info(
            "Archive for %s: %d live + %d archived -> %d items",
            source_id,
            len(live_items),
            len(prior),
            len(merged),
        )
        return merged
