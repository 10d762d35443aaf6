"""Provider selection and the summary/chat entry points."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Sequence

import httpx

from .articles import MAX_ARTICLE_CHARS, fetch_article_text
from .errors import CredentialMissingError
from .models import ChatMessage
from .providers import (
    PROVIDER_PRIORITY,
    Conversation,
    ProviderKind,
    get_adapter,
    stream_complete,
)
from .summary_cache import SummaryCache

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[str], Any]

SUMMARY_SYSTEM_PROMPT = "You summarise news articles for a busy reader."

SUMMARY_PROMPT = """Please provide a concise summary of the following article titled "{title}".
Format your response as:
1. A 2-3 sentence overview
2. 3-5 key bullet points

Article content:
{content}"""

CHAT_SYSTEM_PROMPT = """You answer follow-up questions about a news article.
Base your answers on the article below and say so when it does not cover the question.

Article:
{context}"""


@dataclass
class CompletionSettings:
    """Preferred provider plus per-provider keys and model overrides."""

    provider: ProviderKind = ProviderKind.GROQ
    keys: Dict[ProviderKind, str] = field(default_factory=dict)
    models: Dict[ProviderKind, str] = field(default_factory=dict)

    def key_for(self, kind: ProviderKind) -> Optional[str]:
        key = self.keys.get(kind)
        return key.strip() if key and key.strip() else None

    def model_for(self, kind: ProviderKind) -> str:
        return self.models.get(kind) or get_adapter(kind).default_model

    def masked(self) -> dict:
        return {
            "provider": self.provider.value,
            "keys": {
                kind.value: "***MASKED***" for kind in self.keys if self.key_for(kind)
            },
            "models": {kind.value: self.model_for(kind) for kind in PROVIDER_PRIORITY},
        }


def select_provider(settings: CompletionSettings) -> ProviderKind:
    """Preferred provider if keyed, else the first keyed one in priority order."""
    preferred = ProviderKind(settings.provider)
    if settings.key_for(preferred):
        return preferred
    for kind in PROVIDER_PRIORITY:
        if settings.key_for(kind):
            logger.info(
                "No key for preferred provider %s; falling back to %s",
                preferred.value,
                kind.value,
            )
            return kind
    raise CredentialMissingError()


def build_summary_conversation(article_text: str, title: str) -> Conversation:
    prompt = SUMMARY_PROMPT.format(title=title, content=article_text)
    return Conversation(
        system=SUMMARY_SYSTEM_PROMPT,
        messages=[ChatMessage(role="user", content=prompt)],
    )


def build_chat_conversation(
    question: str, article_context: str, history: Sequence[ChatMessage] = ()
) -> Conversation:
    return Conversation(
        system=CHAT_SYSTEM_PROMPT.format(context=article_context),
        messages=[*history, ChatMessage(role="user", content=question)],
    )


class CompletionService:
    """Streams summaries and chat answers through whichever provider is keyed.

    Provider selection runs again on every call. Results are committed to the
    summary cache only after the stream finishes; an interrupted stream leaves
    no trace.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        summary_cache: Optional[SummaryCache] = None,
        extractor: str = "trafilatura",
        max_article_chars: int = MAX_ARTICLE_CHARS,
    ):
        self.client = client
        self.summary_cache = summary_cache
        self.extractor = extractor
        self.max_article_chars = max_article_chars

    async def _complete(
        self,
        settings: CompletionSettings,
        conversation: Conversation,
        on_chunk: ChunkCallback,
    ) -> str:
        kind = select_provider(settings)
        return await stream_complete(
            kind,
            self.client,
            conversation,
            settings.key_for(kind),
            settings.model_for(kind),
            on_chunk,
        )

    async def summarize(
        self,
        article_text: str,
        title: str,
        settings: CompletionSettings,
        on_chunk: ChunkCallback,
        url: Optional[str] = None,
    ) -> str:
        conversation = build_summary_conversation(
            article_text[: self.max_article_chars], title
        )
        summary = await self._complete(settings, conversation, on_chunk)
        if url and self.summary_cache is not None:
            await self.summary_cache.put(url, summary)
            logger.info("Cached summary for %s", url)
        return summary

    async def chat(
        self,
        question: str,
        article_context: str,
        settings: CompletionSettings,
        on_chunk: ChunkCallback,
        history: Sequence[ChatMessage] = (),
        url: Optional[str] = None,
    ) -> str:
        conversation = build_chat_conversation(question, article_context, history)
        answer = await self._complete(settings, conversation, on_chunk)
        if url and self.summary_cache is not None:
            await self.summary_cache.append_chat(
                url,
                [
                    ChatMessage(role="user", content=question),
                    ChatMessage(role="assistant", content=answer),
                ],
            )
        return answer

    async def summarize_article(
        self,
        url: str,
        title: str,
        settings: CompletionSettings,
        on_chunk: ChunkCallback,
        force: bool = False,
    ) -> str:
        """Serve a cached summary, or fetch, extract and summarise the article."""
        if not force and self.summary_cache is not None:
            cached = await self.summary_cache.get(url)
            if cached and cached.summary:
                logger.debug("Summary cache hit for %s", url)
                on_chunk(cached.summary)
                return cached.summary

        # Fail before any network traffic when nothing is keyed.
        select_provider(settings)
        article_text = await fetch_article_text(
            self.client, url, extractor=self.extractor, limit=self.max_article_chars
        )
        return await self.summarize(article_text, title, settings, on_chunk, url=url)
