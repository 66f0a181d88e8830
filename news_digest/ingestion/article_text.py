"""Article body extraction from the article page itself."""

from typing import Optional

import aiohttp
import structlog
from bs4 import BeautifulSoup

from ..config.settings import settings

logger = structlog.get_logger()

# Common article containers across news sites
CONTENT_SELECTORS = ", ".join([
    "article", ".article", ".article-body", ".article-content", ".news-content",
    ".entry-content", "#article-body", ".news_content", ".article_content",
    ".articleBody", ".article_view", "#articleBody", "#newsContent",
])

NOISE_SELECTORS = ", ".join([
    "script", "style", "iframe", ".reporter", ".share", ".social", ".related",
    ".recommend", ".copyright", ".ad", ".advertisement", ".banner",
])

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)


def extract_body(html: str, max_chars: int = None) -> Optional[str]:
    """Pull the readable article text out of a page, or None if no container matches."""
    max_chars = max_chars or settings.article_max_chars
    soup = BeautifulSoup(html, "html.parser")

    containers = soup.select(CONTENT_SELECTORS)
    if not containers:
        return None

    for container in containers:
        for noise in container.select(NOISE_SELECTORS):
            noise.decompose()

    # Nested matches (article > .article-body) would repeat text
    matched = {id(c) for c in containers}
    outermost = [c for c in containers if not any(id(p) in matched for p in c.parents)]
    text = " ".join(c.get_text(" ", strip=True) for c in outermost)
    text = " ".join(text.split())
    if not text:
        return None

    return text[:max_chars]


class ArticleTextExtractor:
    """Downloads article pages and extracts their body text."""

    def __init__(self, session: aiohttp.ClientSession = None):
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=settings.article_fetch_timeout_seconds),
                headers={"User-Agent": USER_AGENT}
            )
            self._owns_session = True
        return self._session

    async def close(self):
        """Close HTTP session."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def extract(self, url: str) -> Optional[str]:
        """Return the article body for url, or None when it cannot be extracted."""
        session = await self._get_session()
        try:
            async with session.get(url) as response:
                if response.status != 200:
                    logger.warning("article_fetch_failed", url=url, status=response.status)
                    return None
                html = await response.text()
        except Exception as e:
            logger.warning("article_fetch_error", url=url, error=str(e))
            return None

        body = extract_body(html)
        if body is None:
            logger.warning("article_body_not_found", url=url)
        else:
            logger.debug("article_body_extracted", url=url, chars=len(body))
        return body
