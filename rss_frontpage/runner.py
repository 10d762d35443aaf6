"""High-level orchestration for the rss_frontpage application."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, List, Optional

import httpx

from .archive import MAX_ARCHIVE_ITEMS, ArchiveStore
from .articles import fetch_article_text
from .cache import QUOTE_CACHE_TTL, FeedCache, TTLCache
from .completions import CompletionService, CompletionSettings, select_provider
from .config import parse_feeds_config
from .db import SqlStore
from .errors import FrontpageError
from .formatting import format_summary_html
from .quotes import load_quote
from .sources import color_vars, load_feed_order, load_sources
from .storage import KeyValueStore
from .summary_cache import SummaryCache
from .sync import FeedSynchronizer, SyncResult

logger = logging.getLogger(__name__)

# Used when no database connection string is configured.
DEFAULT_DATABASE_PATH = Path.home() / ".rss_frontpage" / "frontpage.db"


def _write_chunk(chunk: str) -> None:
    sys.stdout.write(chunk)
    sys.stdout.flush()


@dataclass
class RunConfig:
    """Runtime options for executing the application."""

    feeds_file: Optional[str] = None
    force_refresh: bool = False
    summarize_url: Optional[str] = None
    summarize_title: Optional[str] = None
    question: Optional[str] = None
    quote: bool = False
    html: bool = False
    completion: CompletionSettings = field(default_factory=CompletionSettings)
    extractor: str = "trafilatura"
    max_archive_items: int = MAX_ARCHIVE_ITEMS
    http_timeout: Optional[float] = None
    database_enabled: bool = False
    database_connection_string: Optional[str] = None
    on_chunk: Callable[[str], Any] = _write_chunk


@dataclass
class RunResult:
    """Returned data after executing the app."""

    output_text: str
    exit_code: int = 0


def _build_store(config: RunConfig) -> KeyValueStore:
    if config.database_enabled and config.database_connection_string:
        return SqlStore.from_url(config.database_connection_string)
    if config.database_enabled:
        logger.warning(
            "Database enabled but no connection string provided. Using %s.",
            DEFAULT_DATABASE_PATH,
        )
    DEFAULT_DATABASE_PATH.parent.mkdir(parents=True, exist_ok=True)
    return SqlStore.from_url(f"sqlite:///{DEFAULT_DATABASE_PATH}")


def _render_results(results: List[SyncResult], now: datetime) -> str:
    payload = []
    for result in results:
        source = result.source
        section: dict = {
            "id": source.id,
            "name": source.name,
            "url": source.url,
            "colors": color_vars(source.color),
        }
        if result.ok:
            section["items"] = [
                dict(item.to_dict(), display_age=item.display_age(now))
                for item in result.items
            ]
        else:
            section["error"] = str(result.error)
        payload.append(section)
    return json.dumps(payload, indent=2, ensure_ascii=False)


async def _refresh_feeds(
    config: RunConfig, store: KeyValueStore, client: httpx.AsyncClient
) -> RunResult:
    if config.feeds_file:
        sources = parse_feeds_config(config.feeds_file)
    else:
        sources = await load_sources(store)
    if not sources:
        raise RuntimeError("No feeds found in the configuration.")

    synchronizer = FeedSynchronizer(
        client,
        FeedCache(store),
        ArchiveStore(store, max_items=config.max_archive_items),
    )
    results = await synchronizer.refresh(
        sources,
        force_refresh=config.force_refresh,
        custom_order=await load_feed_order(store),
    )
    output = _render_results(results, datetime.now(timezone.utc))
    exit_code = 0 if any(result.ok for result in results) else 1
    return RunResult(output_text=output, exit_code=exit_code)


async def _summarize(
    config: RunConfig, store: KeyValueStore, client: httpx.AsyncClient
) -> RunResult:
    url = config.summarize_url
    title = config.summarize_title or url
    summary_cache = SummaryCache(store)
    service = CompletionService(client, summary_cache, extractor=config.extractor)
    on_chunk = (lambda chunk: None) if config.html else config.on_chunk

    try:
        if config.question:
            select_provider(config.completion)
            cached = await summary_cache.get(url)
            context = await fetch_article_text(client, url, extractor=config.extractor)
            text = await service.chat(
                config.question,
                context,
                config.completion,
                on_chunk,
                history=cached.chat_history if cached else (),
                url=url,
            )
        else:
            text = await service.summarize_article(
                url, title, config.completion, on_chunk, force=config.force_refresh
            )
    except FrontpageError as exc:
        logger.error("Summary for %s failed: %s", url, exc)
        return RunResult(
            output_text=(
                f"Could not generate summary: {exc}\n"
                f"Open article in new tab: {url}"
            ),
            exit_code=1,
        )

    if config.html:
        return RunResult(output_text=str(format_summary_html(text)))
    return RunResult(output_text="")


async def _quote(store: KeyValueStore, client: httpx.AsyncClient) -> RunResult:
    quote = await load_quote(client, TTLCache(store, QUOTE_CACHE_TTL))
    return RunResult(output_text=f'"{quote.text}" - {quote.author}')


async def execute_async(
    config: RunConfig, transport: Optional[httpx.AsyncBaseTransport] = None
) -> RunResult:
    store = _build_store(config)
    try:
        async with httpx.AsyncClient(
            timeout=config.http_timeout, follow_redirects=True, transport=transport
        ) as client:
            if config.summarize_url:
                return await _summarize(config, store, client)
            if config.quote:
                return await _quote(store, client)
            return await _refresh_feeds(config, store, client)
    finally:
        await store.close()


def execute(config: RunConfig) -> RunResult:
    """Run the application logic and return the result payload."""
    return asyncio.run(execute_async(config))
