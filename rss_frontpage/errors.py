"""Exception types raised by rss_frontpage."""

from __future__ import annotations

from typing import Optional

from .models import FeedSource


class FrontpageError(Exception):
    """Base class for recoverable, per-unit-of-work failures."""


class FeedFetchError(FrontpageError):
    """Network error or non-success status while fetching a feed."""

    def __init__(self, source: FeedSource, message: str):
        super().__init__(f"Failed to fetch {source.url}: {message}")
        self.source = source


class FeedParseError(FrontpageError):
    """Feed body is neither an RSS nor an Atom document."""

    def __init__(self, source: FeedSource):
        super().__init__(f"Could not parse feed {source.url}")
        self.source = source


class ArticleFetchError(FrontpageError):
    """Article page could not be downloaded."""


class ArticleParseError(FrontpageError):
    """Reader-mode extraction produced no usable text."""


class CredentialMissingError(FrontpageError):
    """No completion provider has an API key configured."""

    def __init__(self) -> None:
        super().__init__(
            "No API key configured. Add a Groq, Gemini, Anthropic or OpenAI key."
        )


class ProviderError(FrontpageError):
    """Completion provider rejected the request or reported an error."""

    def __init__(self, provider: str, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status = status
        self.message = message
