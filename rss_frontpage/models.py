"""Shared data models for rss_frontpage."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Union


@dataclass(frozen=True)
class FeedSource:
    """Configuration for a single feed shown on the front page."""

    id: str
    name: str
    url: str
    color: str = "#6366f1"
    order_index: int = 0


@dataclass(frozen=True)
class MetaTag:
    """Small icon/value badge rendered next to an item."""

    icon: str
    value: str


@dataclass(frozen=True)
class HackerNewsMeta:
    """Metadata extracted from hnrss.org descriptions."""

    points: Optional[str] = None
    comments: Optional[str] = None
    comments_link: Optional[str] = None

    def tags(self) -> List[MetaTag]:
        tags = []
        if self.points:
            tags.append(MetaTag(icon="▲", value=self.points))
        if self.comments:
            tags.append(MetaTag(icon="\U0001f4ac", value=self.comments))
        return tags


@dataclass(frozen=True)
class GenericMeta:
    """Author and leading category of a regular feed entry."""

    author: Optional[str] = None
    category: Optional[str] = None

    def tags(self) -> List[MetaTag]:
        tags = []
        if self.author:
            tags.append(MetaTag(icon="✍", value=self.author))
        if self.category:
            tags.append(MetaTag(icon="\U0001f3f7", value=self.category))
        return tags


ItemMeta = Union[HackerNewsMeta, GenericMeta]


@dataclass(frozen=True)
class FeedItem:
    """Normalised feed entry. Identity is the link."""

    title: str
    link: str
    published_at: Optional[datetime] = None
    source_meta: List[MetaTag] = field(default_factory=list)
    comments_link: Optional[str] = None

    def sort_key(self, now: datetime) -> datetime:
        """Return the timestamp used for ordering; undated items count as now."""
        return self.published_at or now

    def display_age(self, now: Optional[datetime] = None) -> str:
        return format_age(self.published_at, now)

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "link": self.link,
            "published_at": (
                self.published_at.isoformat() if self.published_at else None
            ),
            "source_meta": [
                {"icon": tag.icon, "value": tag.value} for tag in self.source_meta
            ],
            "comments_link": self.comments_link,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FeedItem":
        published = data.get("published_at")
        return cls(
            title=data.get("title") or "Untitled",
            link=data.get("link") or "#",
            published_at=datetime.fromisoformat(published) if published else None,
            source_meta=[
                MetaTag(icon=tag.get("icon", ""), value=tag.get("value", ""))
                for tag in data.get("source_meta") or []
            ],
            comments_link=data.get("comments_link"),
        )


def format_age(published_at: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Return a coarse relative label: now, Nh, Nd or an absolute date."""
    if published_at is None:
        return ""
    now = now or datetime.now(timezone.utc)
    hours = int((now - published_at).total_seconds() // 3600)
    if hours < 1:
        return "now"
    if hours < 24:
        return f"{hours}h"
    days = hours // 24
    if days < 7:
        return f"{days}d"
    return f"{published_at.strftime('%b')} {published_at.day}"


@dataclass(frozen=True)
class ChatMessage:
    """One turn of a chat transcript."""

    role: str
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, data: dict) -> "ChatMessage":
        return cls(role=data.get("role", "user"), content=data.get("content", ""))


@dataclass(frozen=True)
class Quote:
    """Quote of the day."""

    text: str
    author: str
