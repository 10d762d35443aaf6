"""Time-bounded caches stored in the key-value store."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, List, Optional

from .models import FeedItem
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

FEED_CACHE_TTL = 10 * 60
QUOTE_CACHE_TTL = 60 * 60


class TTLCache:
    """Values stored as ``{"value": ..., "timestamp": ...}`` under prefixed keys.

    An entry is absent once ``now - timestamp >= ttl`` seconds.
    """

    def __init__(
        self,
        store: KeyValueStore,
        ttl: float,
        prefix: str = "",
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.ttl = ttl
        self.prefix = prefix
        self._clock = clock

    def key_for(self, name: str) -> str:
        return f"{self.prefix}{name}"

    async def get(self, name: str) -> Optional[Any]:
        key = self.key_for(name)
        entry = (await self.store.get([key])).get(key)
        if not isinstance(entry, dict) or "timestamp" not in entry:
            return None
        age = self._clock() - entry["timestamp"]
        if age >= self.ttl:
            logger.debug("Cache entry %s expired (%.0fs old)", key, age)
            return None
        return entry.get("value")

    async def put(self, name: str, value: Any) -> None:
        await self.store.set(
            {self.key_for(name): {"value": value, "timestamp": self._clock()}}
        )

    async def invalidate(self, name: str) -> None:
        await self.store.remove([self.key_for(name)])


class FeedCache:
    """Parsed feed items keyed by feed URL, fresh for ten minutes."""

    def __init__(
        self,
        store: KeyValueStore,
        ttl: float = FEED_CACHE_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self._cache = TTLCache(store, ttl, prefix="cache_", clock=clock)

    async def get(self, url: str) -> Optional[List[FeedItem]]:
        payload = await self._cache.get(url)
        if payload is None:
            return None
        logger.debug("Feed cache hit for %s", url)
        return [FeedItem.from_dict(item) for item in payload]

    async def put(self, url: str, items: List[FeedItem]) -> None:
        await self._cache.put(url, [item.to_dict() for item in items])

    async def invalidate(self, url: str) -> None:
        await self._cache.invalidate(url)
