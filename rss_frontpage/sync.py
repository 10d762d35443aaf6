"""Concurrent feed refresh: fetch or cache, parse, archive-merge."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

import httpx

from .archive import ArchiveStore
from .cache import FeedCache
from .errors import FeedFetchError, FeedParseError
from .feeds import parse_document
from .models import FeedItem, FeedSource
from .sources import order_sources

logger = logging.getLogger(__name__)


@dataclass
class SyncSuccess:
    source: FeedSource
    items: List[FeedItem]
    ok: bool = True


@dataclass
class SyncFailure:
    source: FeedSource
    error: Exception
    ok: bool = False


SyncResult = Union[SyncSuccess, SyncFailure]


class FeedSynchronizer:
    """Refreshes feeds without letting one source's failure affect another."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        feed_cache: FeedCache,
        archive: ArchiveStore,
    ):
        self.client = client
        self.feed_cache = feed_cache
        self.archive = archive

    async def refresh(
        self,
        sources: Sequence[FeedSource],
        force_refresh: bool = False,
        custom_order: Optional[Sequence[str]] = None,
    ) -> List[SyncResult]:
        """Return one result per source, in display order."""
        ordered = order_sources(sources, custom_order)
        if not ordered:
            logger.info("No feeds configured")
            return []

        if force_refresh:
            for source in ordered:
                await self.feed_cache.invalidate(source.url)
            logger.info("Invalidated feed cache for %d sources", len(ordered))

        results = await asyncio.gather(
            *(self._refresh_source(source) for source in ordered)
        )
        failed = sum(1 for result in results if not result.ok)
        logger.info("Refreshed %d feeds (%d failed)", len(results), failed)
        return list(results)

    async def _refresh_source(self, source: FeedSource) -> SyncResult:
        try:
            live_items = await self.fetch_items(source)
            merged = await self.archive.merge_and_persist(source.id, live_items)
        except Exception as exc:  # noqa: BLE001 - reported as a per-source result
            if isinstance(exc, (FeedFetchError, FeedParseError)):
                logger.warning("Feed '%s' failed: %s", source.name, exc)
            else:
                logger.exception("Failed to refresh feed %s", source.url)
            return SyncFailure(source=source, error=exc)
        return SyncSuccess(source=source, items=merged)

    async def fetch_items(self, source: FeedSource) -> List[FeedItem]:
        """Return cached items when fresh, otherwise fetch and parse the feed."""
        cached = await self.feed_cache.get(source.url)
        if cached is not None:
            return cached

        logger.info("Fetching feed '%s' (%s)", source.name, source.url)
        try:
            response = await self.client.get(source.url)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise FeedFetchError(source, f"HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise FeedFetchError(source, str(exc) or type(exc).__name__) from exc

        parsed = parse_document(response.content, source.url)
        if parsed.dialect is None:
            raise FeedParseError(source)

        await self.feed_cache.put(source.url, parsed.items)
        return parsed.items
