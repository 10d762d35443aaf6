"""SQLAlchemy-backed implementation of the key-value store."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from sqlalchemy import Column, DateTime, String, Text, delete, select
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from .storage import ChangeListener, ListenerRegistry, StorageChange

logger = logging.getLogger(__name__)

# Plain driver names mapped to their asyncio drivers.
ASYNC_DRIVERS = {
    "sqlite": "sqlite+aiosqlite",
    "sqlite+pysqlite": "sqlite+aiosqlite",
}


class Base(DeclarativeBase):
    pass


class StoredValue(Base):
    """One JSON-encoded value under a string key."""

    __tablename__ = "kv_store"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))


def init_engine(connection_string: Optional[str]) -> Optional[AsyncEngine]:
    """Initialize the async database engine."""
    if not connection_string:
        return None

    url = make_url(connection_string)
    if url.drivername in ASYNC_DRIVERS:
        url = url.set(drivername=ASYNC_DRIVERS[url.drivername])
    logger.info(
        "Initializing database connection: %s",
        url.render_as_string(hide_password=True),
    )
    return create_async_engine(url)


async def init_db(engine: AsyncEngine) -> None:
    """Create the tables if they do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Return a session factory for the given engine."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class SqlStore:
    """Persistent store; each call runs in its own short session.

    Tables are created on first use.
    """

    def __init__(self, engine: AsyncEngine):
        self._engine = engine
        self._session_factory = get_session_factory(engine)
        self._listeners = ListenerRegistry()
        self._schema_ready = False
        self._schema_lock = asyncio.Lock()

    @classmethod
    def from_url(cls, connection_string: str) -> "SqlStore":
        engine = init_engine(connection_string)
        if engine is None:
            raise ValueError("A database connection string is required.")
        return cls(engine)

    async def _ensure_schema(self) -> None:
        if self._schema_ready:
            return
        async with self._schema_lock:
            if not self._schema_ready:
                await init_db(self._engine)
                self._schema_ready = True

    async def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        keys = list(keys)
        if not keys:
            return {}
        await self._ensure_schema()
        async with self._session_factory() as session:
            stmt = select(StoredValue).where(StoredValue.key.in_(keys))
            rows = (await session.execute(stmt)).scalars().all()
            return {row.key: json.loads(row.value) for row in rows}

    async def set(self, items: Mapping[str, Any]) -> None:
        if not items:
            return
        await self._ensure_schema()
        changes: Dict[str, StorageChange] = {}
        async with self._session_factory() as session:
            stmt = select(StoredValue).where(StoredValue.key.in_(list(items)))
            existing = {
                row.key: row for row in (await session.execute(stmt)).scalars().all()
            }
            now = datetime.now(timezone.utc)
            for key, value in items.items():
                encoded = json.dumps(value, ensure_ascii=False)
                row = existing.get(key)
                if row is not None:
                    changes[key] = StorageChange(old=json.loads(row.value), new=value)
                    row.value = encoded
                    row.updated_at = now
                else:
                    changes[key] = StorageChange(old=None, new=value)
                    session.add(StoredValue(key=key, value=encoded, updated_at=now))
            try:
                await session.commit()
            except Exception:
                await session.rollback()
                raise
        self._listeners.notify(changes)

    async def remove(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        if not keys:
            return
        await self._ensure_schema()
        async with self._session_factory() as session:
            stmt = select(StoredValue).where(StoredValue.key.in_(keys))
            changes = {
                row.key: StorageChange(old=json.loads(row.value), new=None)
                for row in (await session.execute(stmt)).scalars().all()
            }
            await session.execute(delete(StoredValue).where(StoredValue.key.in_(keys)))
            try:
                await session.commit()
            except Exception:
                await session.rollback()
                raise
        self._listeners.notify(changes)

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        return self._listeners.subscribe(listener)

    async def close(self) -> None:
        await self._engine.dispose()
