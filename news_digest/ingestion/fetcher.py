"""RSS Feed Fetcher with async support, bounded concurrency, and retries."""

import asyncio
import re
import time
from datetime import datetime, timezone
from typing import Iterator, List, Optional, Callable

import aiohttp
import feedparser
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential
import structlog

from .interfaces import ArticleCandidate, FeedDescriptor, FetcherInterface, FetchResult
from ..classification.categories import CategoryResolver, resolver as default_resolver
from ..config.settings import settings

logger = structlog.get_logger()

MISSING_DESCRIPTION = "Content not available in RSS feed. Please visit the article URL for full content."

_TAG_RE = re.compile(r"<[^>]*>")
_SPACE_RE = re.compile(r"\s+")


def clean_text(text: Optional[str]) -> str:
    """Strip markup tags and collapse whitespace."""
    if text is None:
        return ""
    text = _TAG_RE.sub("", text)
    return _SPACE_RE.sub(" ", text).strip()


def to_local_datetime(parsed) -> Optional[datetime]:
    """Convert a feedparser UTC struct_time to naive local time."""
    if not parsed:
        return None
    try:
        utc = datetime(*parsed[:6], tzinfo=timezone.utc)
    except (TypeError, ValueError):
        return None
    return utc.astimezone().replace(tzinfo=None)


def parse_feed(
    content,
    descriptor: FeedDescriptor,
    category_resolver: CategoryResolver = None,
) -> Iterator[ArticleCandidate]:
    """Lazily turn raw feed content into article candidates, in feed order."""
    category_resolver = category_resolver or default_resolver
    category_id = category_resolver.lookup_label(descriptor.category)

    feed = feedparser.parse(content)
    if feed.bozo and not feed.entries:
        raise ValueError(f"Not a valid RSS/Atom feed: {feed.get('bozo_exception')}")

    for entry in feed.entries:
        yield parse_entry(entry, descriptor, category_id)


def parse_entry(entry, descriptor: FeedDescriptor, category_id: Optional[int]) -> ArticleCandidate:
    """Parse a feed entry into an ArticleCandidate."""
    description = entry.get("summary")
    if description is None:
        summary = MISSING_DESCRIPTION
    else:
        summary = clean_text(description)

    published_at = None
    for attr in ("published_parsed", "updated_parsed"):
        published_at = to_local_datetime(entry.get(attr))
        if published_at:
            break

    return ArticleCandidate(
        source_name=descriptor.source_name,
        title=clean_text(entry.get("title")),
        summary=summary,
        published_at=published_at,
        url=entry.get("link"),
        category_id=category_id,
    )


class RSSFetcher(FetcherInterface):
    """Async RSS feed fetcher with bounded concurrency and retries."""

    def __init__(
        self,
        category_resolver: CategoryResolver = None,
        on_fetch_complete: Callable = None,
        session: aiohttp.ClientSession = None,
        concurrency: int = None,
    ):
        self.session = session
        self._owns_session = session is None
        self.category_resolver = category_resolver or default_resolver
        self.semaphore = asyncio.Semaphore(concurrency or settings.fetch_concurrency)
        self.on_fetch_complete = on_fetch_complete  # Callback for stats

    async def __aenter__(self):
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=settings.fetch_timeout_seconds),
                headers={"User-Agent": "NewsDigestBot/1.0 (RSS reader)"}
            )
        return self

    async def __aexit__(self, *args):
        if self.session and self._owns_session:
            await self.session.close()
            self.session = None

    @retry(
        retry=retry_if_exception_type((aiohttp.ClientError, asyncio.TimeoutError)),
        stop=stop_after_attempt(settings.fetch_max_retries),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _download(self, url: str) -> bytes:
        async with self.session.get(url) as response:
            response.raise_for_status()
            return await response.read()

    async def fetch_feed(self, descriptor: FeedDescriptor) -> List[ArticleCandidate]:
        """Fetch articles from a single feed."""
        async with self.semaphore:
            start_time = time.time()

            try:
                content = await self._download(descriptor.url)
                articles = list(parse_feed(content, descriptor, self.category_resolver))

                elapsed_ms = int((time.time() - start_time) * 1000)
                logger.info(
                    "feed_fetched",
                    source=descriptor.source_name,
                    category=descriptor.category,
                    articles=len(articles),
                    time_ms=elapsed_ms
                )

                if self.on_fetch_complete:
                    self.on_fetch_complete(
                        feed_name=descriptor.name,
                        articles=len(articles),
                        fetch_time_ms=elapsed_ms
                    )

                return articles

            except Exception as e:
                elapsed_ms = int((time.time() - start_time) * 1000)
                logger.error(
                    "feed_fetch_failed",
                    source=descriptor.source_name,
                    category=descriptor.category,
                    error=str(e)
                )

                if self.on_fetch_complete:
                    self.on_fetch_complete(
                        feed_name=descriptor.name,
                        error=str(e),
                        fetch_time_ms=elapsed_ms
                    )
                raise

    async def fetch_all(self, descriptors: List[FeedDescriptor]) -> FetchResult:
        """Fetch from all feeds concurrently; one failing feed never stops the others."""
        enabled = [d for d in descriptors if d.enabled]

        tasks = [self.fetch_feed(descriptor) for descriptor in enabled]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        outcome = FetchResult()
        for descriptor, result in zip(enabled, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "feed_fetch_exception",
                    source=descriptor.source_name,
                    url=descriptor.url,
                    error=str(result)
                )
                outcome.failed_feeds.append(descriptor.name)
                continue

            outcome.feeds_fetched += 1
            outcome.candidates.extend(result)

        logger.info(
            "all_feeds_fetched",
            total=len(outcome.candidates),
            feeds=len(enabled),
            failed=len(outcome.failed_feeds)
        )
        return outcome
