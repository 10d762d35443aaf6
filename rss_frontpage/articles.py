"""Article retrieval and reader-mode extraction."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
import trafilatura
from newspaper import Article, Config
from newspaper.article import ArticleException

from .errors import ArticleFetchError, ArticleParseError

logger = logging.getLogger(__name__)

MAX_ARTICLE_CHARS = 12000


@dataclass
class ExtractedArticle:
    """Reader-mode view of an article page."""

    title: Optional[str]
    content: Optional[str]
    text_content: str


def extract_article(
    html: str, url: Optional[str] = None, extractor: str = "trafilatura"
) -> Optional[ExtractedArticle]:
    """Return the readable part of an HTML page, or None when there is none."""
    logger.debug("Extracting article %s using %s", url, extractor)
    if extractor == "newspaper":
        return _extract_with_newspaper(html, url)
    return _extract_with_trafilatura(html, url)


def _extract_with_trafilatura(html: str, url: Optional[str]) -> Optional[ExtractedArticle]:
    try:
        text = trafilatura.extract(html, url=url, include_comments=False)
        if not text:
            logger.info("Article contains no readable text: %s", url)
            return None
        content = trafilatura.extract(
            html, url=url, include_comments=False, output_format="html"
        )
        metadata = trafilatura.extract_metadata(html)
        title = metadata.title if metadata else None
    except Exception as exc:  # noqa: BLE001 - defensive against library internals
        logger.warning(
            "Unexpected error while processing article %s with trafilatura: %s",
            url,
            exc,
        )
        return None

    return ExtractedArticle(title=title, content=content, text_content=text.strip())


def _extract_with_newspaper(html: str, url: Optional[str]) -> Optional[ExtractedArticle]:
    config = Config()
    config.fetch_images = False
    config.memoize_articles = False
    config.keep_article_html = True

    article = Article(url=url or "", config=config)

    try:
        article.download(input_html=html)
        article.parse()
    except ArticleException as exc:
        logger.warning("Failed to process article %s: %s", url, exc)
        return None
    except Exception as exc:  # noqa: BLE001 - defensive against library internals
        logger.warning("Unexpected error while processing article %s: %s", url, exc)
        return None

    text = (article.text or "").strip()
    if not text:
        logger.info("Article contains no readable text: %s", url)
        return None

    return ExtractedArticle(
        title=(article.title or "").strip() or None,
        content=getattr(article, "article_html", None) or None,
        text_content=text,
    )


async def fetch_article_text(
    client: httpx.AsyncClient,
    url: str,
    extractor: str = "trafilatura",
    limit: int = MAX_ARTICLE_CHARS,
) -> str:
    """Download an article and return its readable text, truncated to ``limit``."""
    try:
        response = await client.get(url)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise ArticleFetchError(
            f"Failed to fetch article: HTTP {exc.response.status_code}"
        ) from exc
    except httpx.HTTPError as exc:
        raise ArticleFetchError(f"Failed to fetch article: {exc}") from exc

    article = extract_article(response.text, url=url, extractor=extractor)
    if article is None or not article.text_content:
        raise ArticleParseError("Could not parse article")
    return truncate_text(article.text_content, limit=limit)


def truncate_text(value: str, limit: int = MAX_ARTICLE_CHARS) -> str:
    """Limit text length to the given number of characters."""
    if len(value) <= limit:
        return value
    logger.debug("Truncating article text to %d characters", limit)
    return value[:limit]
