"""Quote of the day, cached for an hour."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import httpx

from .cache import TTLCache
from .models import Quote

logger = logging.getLogger(__name__)

QUOTE_CACHE_NAME = "cachedQuote"


@dataclass(frozen=True)
class QuoteApi:
    url: str
    parse: Callable[[dict], Quote]


QUOTE_APIS: Sequence[QuoteApi] = (
    QuoteApi(
        url="https://api.quotable.io/random?maxLength=120",
        parse=lambda data: Quote(text=data["content"], author=data["author"]),
    ),
    QuoteApi(
        url="https://uselessfacts.jsph.pl/random.json?language=en",
        parse=lambda data: Quote(text=data["text"], author="Useless Fact"),
    ),
)

FALLBACK_QUOTES = (
    Quote("The only way to do great work is to love what you do.", "Steve Jobs"),
    Quote("Simplicity is the ultimate sophistication.", "Leonardo da Vinci"),
    Quote("First, solve the problem. Then, write the code.", "John Johnson"),
    Quote("Code is like humor. When you have to explain it, it's bad.", "Cory House"),
    Quote("The best error message is the one that never shows up.", "Thomas Fuchs"),
)


async def load_quote(
    client: httpx.AsyncClient,
    cache: TTLCache,
    force_new: bool = False,
    apis: Sequence[QuoteApi] = QUOTE_APIS,
    rng: Optional[random.Random] = None,
) -> Quote:
    """Return the cached quote, the first API that answers, or a fallback."""
    if not force_new:
        cached = await cache.get(QUOTE_CACHE_NAME)
        if cached:
            return Quote(text=cached["text"], author=cached["author"])

    for api in apis:
        try:
            response = await client.get(api.url)
            if not response.is_success:
                logger.debug("Quote API %s returned %d", api.url, response.status_code)
                continue
            quote = api.parse(response.json())
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
            logger.debug("Quote API %s failed: %s", api.url, exc)
            continue
        await cache.put(QUOTE_CACHE_NAME, {"text": quote.text, "author": quote.author})
        return quote

    logger.info("All quote APIs failed; using a fallback quote")
    return (rng or random).choice(FALLBACK_QUOTES)
