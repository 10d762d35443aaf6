import random

import httpx
import pytest

from rss_frontpage.cache import QUOTE_CACHE_TTL, TTLCache
from rss_frontpage.models import Quote
from rss_frontpage.quotes import FALLBACK_QUOTES, QUOTE_APIS, load_quote


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_first_api_answer_is_cached(store, clock):
    calls = []

    def handler(request):
        calls.append(str(request.url))
        return httpx.Response(200, json={"content": "Stay curious.", "author": "Ada"})

    cache = TTLCache(store, QUOTE_CACHE_TTL, clock=clock)
    async with _client(handler) as client:
        first = await load_quote(client, cache)
        second = await load_quote(client, cache)

    assert first == second == Quote("Stay curious.", "Ada")
    assert calls == [QUOTE_APIS[0].url]


@pytest.mark.asyncio
async def test_second_api_used_when_first_fails(store, clock):
    def handler(request):
        if request.url.host == "api.quotable.io":
            return httpx.Response(503)
        return httpx.Response(200, json={"text": "Bananas are berries."})

    cache = TTLCache(store, QUOTE_CACHE_TTL, clock=clock)
    async with _client(handler) as client:
        quote = await load_quote(client, cache)

    assert quote == Quote("Bananas are berries.", "Useless Fact")


@pytest.mark.asyncio
async def test_fallback_when_every_api_fails(store, clock):
    def handler(request):
        raise httpx.ConnectError("offline")

    cache = TTLCache(store, QUOTE_CACHE_TTL, clock=clock)
    async with _client(handler) as client:
        quote = await load_quote(client, cache, rng=random.Random(1))

    assert quote in FALLBACK_QUOTES
    assert await cache.get("cachedQuote") is None


@pytest.mark.asyncio
async def test_force_new_skips_cache(store, clock):
    cache = TTLCache(store, QUOTE_CACHE_TTL, clock=clock)
    await cache.put("cachedQuote", {"text": "old", "author": "me"})

    async with _client(
        lambda request: httpx.Response(200, json={"content": "new", "author": "you"})
    ) as client:
        assert await load_quote(client, cache) == Quote("old", "me")
        assert await load_quote(client, cache, force_new=True) == Quote("new", "you")
