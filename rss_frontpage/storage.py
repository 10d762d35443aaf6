"""Async key-value storage contract and an in-memory implementation."""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StorageChange:
    """Old and new value of one key after a write."""

    old: Any
    new: Any


ChangeListener = Callable[[Dict[str, StorageChange]], None]


class KeyValueStore(Protocol):
    """Minimal persistent storage used by the caches and the archive."""

    async def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        """Return values for the keys that exist."""

    async def set(self, items: Mapping[str, Any]) -> None:
        """Write every key in the mapping."""

    async def remove(self, keys: Iterable[str]) -> None:
        """Delete the given keys; missing keys are ignored."""

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a change listener and return a callable that removes it."""

    async def close(self) -> None:
        """Release connections held by the store."""


class ListenerRegistry:
    """Fan-out of change notifications shared by the store implementations."""

    def __init__(self) -> None:
        self._listeners: List[ChangeListener] = []

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self, changes: Dict[str, StorageChange]) -> None:
        if not changes:
            return
        for listener in list(self._listeners):
            try:
                listener(changes)
            except Exception:  # noqa: BLE001 - a bad listener must not break writes
                logger.exception("Storage change listener failed")


class MemoryStore:
    """Process-local store; values are deep-copied in and out."""

    def __init__(self, initial: Optional[Mapping[str, Any]] = None):
        self._data: Dict[str, Any] = copy.deepcopy(dict(initial or {}))
        self._listeners = ListenerRegistry()

    async def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        return {
            key: copy.deepcopy(self._data[key]) for key in keys if key in self._data
        }

    async def set(self, items: Mapping[str, Any]) -> None:
        changes = {}
        for key, value in items.items():
            changes[key] = StorageChange(old=self._data.get(key), new=value)
            self._data[key] = copy.deepcopy(value)
        self._listeners.notify(changes)

    async def remove(self, keys: Iterable[str]) -> None:
        changes = {}
        for key in keys:
            if key in self._data:
                changes[key] = StorageChange(old=self._data.pop(key), new=None)
        self._listeners.notify(changes)

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        return self._listeners.subscribe(listener)

    async def close(self) -> None:
        pass


class KeyedLocks:
    """One asyncio lock per storage key."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}

    def __call__(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock
