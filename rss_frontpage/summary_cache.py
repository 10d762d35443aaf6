"""Finalised article summaries and their chat transcripts."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from .models import ChatMessage
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

SUMMARY_CACHE_KEY = "summaryCache"
MAX_SUMMARY_ENTRIES = 100


@dataclass
class CachedSummary:
    summary: str
    chat_history: List[ChatMessage] = field(default_factory=list)
    timestamp: float = 0.0


class SummaryCache:
    """All entries live under one storage key.

    Every mutation re-reads the stored set while holding the lock, so two
    concurrent writers never overwrite each other's entries with stale data.
    Once more than ``max_entries`` URLs are stored, only the most recently
    written ones are kept.
    """

    def __init__(
        self,
        store: KeyValueStore,
        max_entries: int = MAX_SUMMARY_ENTRIES,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.max_entries = max_entries
        self._clock = clock
        self._lock = asyncio.Lock()

    async def _load(self) -> Dict[str, dict]:
        payload = (await self.store.get([SUMMARY_CACHE_KEY])).get(SUMMARY_CACHE_KEY)
        return payload if isinstance(payload, dict) else {}

    async def _save(self, entries: Dict[str, dict]) -> None:
        if len(entries) > self.max_entries:
            newest = sorted(
                entries.items(),
                key=lambda pair: pair[1].get("timestamp", 0),
                reverse=True,
            )[: self.max_entries]
            logger.debug(
                "Trimming summary cache from %d to %d entries",
                len(entries),
                len(newest),
            )
            entries = dict(newest)
        await self.store.set({SUMMARY_CACHE_KEY: entries})

    async def get(self, url: str) -> Optional[CachedSummary]:
        entry = (await self._load()).get(url)
        if not entry:
            return None
        return CachedSummary(
            summary=entry.get("summary", ""),
            chat_history=[
                ChatMessage.from_dict(message)
                for message in entry.get("chatHistory") or []
            ],
            timestamp=entry.get("timestamp", 0),
        )

    async def put(
        self, url: str, summary: str, chat_history: Sequence[ChatMessage] = ()
    ) -> None:
        async with self._lock:
            entries = await self._load()
            entries[url] = {
                "summary": summary,
                "chatHistory": [message.to_dict() for message in chat_history],
                "timestamp": self._clock(),
            }
            await self._save(entries)

    async def append_chat(self, url: str, transcript: Sequence[ChatMessage]) -> None:
        """Append chat turns to the transcript stored for ``url``."""
        async with self._lock:
            entries = await self._load()
            entry = entries.get(url) or {"summary": "", "chatHistory": []}
            history = list(entry.get("chatHistory") or [])
            history.extend(message.to_dict() for message in transcript)
            entries[url] = {
                "summary": entry.get("summary", ""),
                "chatHistory": history,
                "timestamp": self._clock(),
            }
            await self._save(entries)

    async def reset_chat(self, url: str) -> None:
        """Drop the transcript but keep the summary."""
        async with self._lock:
            entries = await self._load()
            entry = entries.get(url)
            if not entry:
                return
            entry["chatHistory"] = []
            entry["timestamp"] = self._clock()
            await self._save(entries)
