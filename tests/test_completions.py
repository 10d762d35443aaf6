import json

import httpx
import pytest

from rss_frontpage import completions
from rss_frontpage.completions import (
    CompletionService,
    CompletionSettings,
    build_chat_conversation,
    build_summary_conversation,
    select_provider,
)
from rss_frontpage.errors import CredentialMissingError, ProviderError
from rss_frontpage.models import ChatMessage
from rss_frontpage.providers import ProviderKind
from rss_frontpage.summary_cache import SummaryCache

GROQ_URL = "https://api.groq.com/openai/v1/chat/completions"
ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"


def _openai_stream(*texts: str) -> bytes:
    lines = [
        "data: " + json.dumps({"choices": [{"delta": {"content": text}}]}) + "\n\n"
        for text in texts
    ]
    lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


class ProviderServer:
    """Records requests and answers every POST with the same stream."""

    def __init__(self, body: bytes = b"", status_code: int = 200):
        self.body = body
        self.status_code = status_code
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, content=self.body)


def test_select_provider_prefers_configured_provider():
    settings = CompletionSettings(
        provider=ProviderKind.ANTHROPIC,
        keys={ProviderKind.ANTHROPIC: "a", ProviderKind.GROQ: "g"},
    )

    assert select_provider(settings) == ProviderKind.ANTHROPIC


def test_select_provider_falls_back_in_priority_order():
    settings = CompletionSettings(
        provider=ProviderKind.GROQ,
        keys={ProviderKind.GROQ: "  ", ProviderKind.OPENAI: "o", ProviderKind.GEMINI: "g"},
    )

    assert select_provider(settings) == ProviderKind.GEMINI


def test_select_provider_without_keys():
    with pytest.raises(CredentialMissingError, match="No API key configured"):
        select_provider(CompletionSettings())


def test_masked_settings_hide_keys():
    settings = CompletionSettings(
        keys={ProviderKind.OPENAI: "sk-123"},
        models={ProviderKind.OPENAI: "gpt-4o"},
    )

    masked = settings.masked()

    assert masked["keys"] == {"openai": "***MASKED***"}
    assert masked["models"]["openai"] == "gpt-4o"
    assert masked["models"]["groq"] == "llama-3.3-70b-versatile"
    assert "sk-123" not in json.dumps(masked)


def test_conversation_builders():
    summary = build_summary_conversation("Body text", "Big News")
    chat = build_chat_conversation(
        "Why?", "Context", history=[ChatMessage("user", "Q"), ChatMessage("assistant", "A")]
    )

    assert 'titled "Big News"' in summary.messages[0].content
    assert "Body text" in summary.messages[0].content
    assert "Context" in chat.system
    assert [m.role for m in chat.messages] == ["user", "assistant", "user"]
    assert chat.messages[-1].content == "Why?"


@pytest.mark.asyncio
async def test_summarize_streams_and_caches(store, clock):
    server = ProviderServer(_openai_stream("Short ", "summary."))
    cache = SummaryCache(store, clock=clock)
    chunks = []
    settings = CompletionSettings(keys={ProviderKind.GROQ: "gk"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as client:
        service = CompletionService(client, summary_cache=cache)
        summary = await service.summarize(
            "text", "Title", settings, chunks.append, url="https://a.test/1"
        )

    assert summary == "Short summary."
    assert chunks == ["Short ", "summary."]
    assert str(server.requests[0].url) == GROQ_URL
    assert server.requests[0].headers["Authorization"] == "Bearer gk"
    cached = await cache.get("https://a.test/1")
    assert cached.summary == "Short summary."
    assert cached.chat_history == []


@pytest.mark.asyncio
async def test_fallback_provider_is_used_when_preferred_has_no_key(store):
    body = (
        b"data: "
        + json.dumps(
            {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "ok"}}
        ).encode("utf-8")
        + b"\n\n"
    )
    server = ProviderServer(body)
    settings = CompletionSettings(
        provider=ProviderKind.OPENAI, keys={ProviderKind.ANTHROPIC: "ak"}
    )

    async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as client:
        text = await CompletionService(client).summarize(
            "text", "T", settings, lambda chunk: None
        )

    assert text == "ok"
    assert str(server.requests[0].url) == ANTHROPIC_URL
    assert server.requests[0].headers["x-api-key"] == "ak"


@pytest.mark.asyncio
async def test_failed_stream_is_not_cached(store, clock):
    server = ProviderServer(b'{"error": {"message": "rate limited"}}', status_code=429)
    cache = SummaryCache(store, clock=clock)
    settings = CompletionSettings(keys={ProviderKind.GROQ: "gk"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as client:
        with pytest.raises(ProviderError, match="rate limited"):
            await CompletionService(client, summary_cache=cache).summarize(
                "text", "T", settings, lambda chunk: None, url="https://a.test/1"
            )

    assert await cache.get("https://a.test/1") is None


@pytest.mark.asyncio
async def test_chat_sends_history_and_appends_transcript(store, clock):
    server = ProviderServer(_openai_stream("Because."))
    cache = SummaryCache(store, clock=clock)
    await cache.put("https://a.test/1", "Summary")
    settings = CompletionSettings(keys={ProviderKind.OPENAI: "ok"})
    history = [ChatMessage("user", "First?"), ChatMessage("assistant", "Yes.")]

    async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as client:
        answer = await CompletionService(client, summary_cache=cache).chat(
            "Why?",
            "Article text",
            settings,
            lambda chunk: None,
            history=history,
            url="https://a.test/1",
        )

    assert answer == "Because."
    sent = json.loads(server.requests[0].content)
    assert [m["role"] for m in sent["messages"]] == [
        "system",
        "user",
        "assistant",
        "user",
    ]
    cached = await cache.get("https://a.test/1")
    assert cached.summary == "Summary"
    assert cached.chat_history == [
        ChatMessage("user", "Why?"),
        ChatMessage("assistant", "Because."),
    ]


@pytest.mark.asyncio
async def test_summarize_article_serves_cache_without_network(store, clock):
    cache = SummaryCache(store, clock=clock)
    await cache.put("https://a.test/1", "Cached summary")
    server = ProviderServer()
    chunks = []

    async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as client:
        result = await CompletionService(client, summary_cache=cache).summarize_article(
            "https://a.test/1", "T", CompletionSettings(), chunks.append
        )

    assert result == "Cached summary"
    assert chunks == ["Cached summary"]
    assert server.requests == []


@pytest.mark.asyncio
async def test_summarize_article_without_keys_makes_no_requests(store):
    server = ProviderServer()

    async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as client:
        with pytest.raises(CredentialMissingError):
            await CompletionService(client).summarize_article(
                "https://a.test/1", "T", CompletionSettings(), lambda chunk: None
            )

    assert server.requests == []


@pytest.mark.asyncio
async def test_summarize_article_fetches_and_summarises(store, clock, monkeypatch):
    fetched = []

    async def fake_fetch(client, url, extractor, limit):
        fetched.append((url, extractor, limit))
        return "Readable article text"

    monkeypatch.setattr(completions, "fetch_article_text", fake_fetch)
    server = ProviderServer(_openai_stream("Done"))
    cache = SummaryCache(store, clock=clock)
    settings = CompletionSettings(keys={ProviderKind.GROQ: "gk"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as client:
        service = CompletionService(
            client, summary_cache=cache, extractor="newspaper", max_article_chars=500
        )
        result = await service.summarize_article(
            "https://a.test/2", "Title", settings, lambda chunk: None, force=True
        )

    assert result == "Done"
    assert fetched == [("https://a.test/2", "newspaper", 500)]
    sent = json.loads(server.requests[0].content)
    assert "Readable article text" in sent["messages"][1]["content"]
    assert (await cache.get("https://a.test/2")).summary == "Done"
