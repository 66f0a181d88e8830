"""Ingestion pipeline: feeds -> dedup -> summaries -> article store."""

import asyncio
from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import List, Optional

import structlog

from .dedup import Deduplicator
from ..classification.categories import CategoryResolver, resolver as default_resolver
from ..config.feeds import JsonFeedCatalog
from ..config.settings import settings
from ..errors import ConfigurationError
from ..ingestion.article_text import ArticleTextExtractor
from ..ingestion.fetcher import RSSFetcher
from ..ingestion.interfaces import ArticleCandidate, FeedCatalog, FeedDescriptor, FetchResult
from ..storage.factory import get_article_storage
from ..summarization.gateway import SummarizationGateway

logger = structlog.get_logger()

COLLECTION_COMPLETE = "News collection completed."


class PipelineState(Enum):
    """Batch-level states; a run walks them in order and returns to IDLE."""
    IDLE = "idle"
    FETCHING = "fetching"
    DEDUPLICATING = "deduplicating"
    SUMMARIZING = "summarizing"
    PERSISTING = "persisting"
    REPORTING = "reporting"


@dataclass
class BatchReport:
    """Counts for one run; per-item detail only goes to the logs."""
    feeds: int = 0
    feeds_failed: int = 0
    fetched: int = 0
    succeeded: int = 0
    skipped_duplicate: int = 0
    skipped_invalid: int = 0
    errored: int = 0
    summarized: int = 0
    elapsed_seconds: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


class IngestionPipeline:
    """Runs one ingestion batch across the configured feeds."""

    def __init__(
        self,
        storage=None,
        catalog: FeedCatalog = None,
        fetcher=None,
        gateway: SummarizationGateway = None,
        category_resolver: CategoryResolver = None,
        summarize_workers: int = None,
    ):
        self.storage = storage or get_article_storage()
        self.catalog = catalog or JsonFeedCatalog()
        self.fetcher = fetcher
        self.gateway = gateway
        self.category_resolver = category_resolver or default_resolver
        self.deduplicator = Deduplicator(self.storage)
        self.summarize_workers = summarize_workers or settings.summarize_workers
        self.state = PipelineState.IDLE

    async def run(self, category: str = None) -> BatchReport:
        """Run a batch over all feeds, or only those of one category.

        Only a failure to load the feed list propagates; everything else is
        counted in the report.
        """
        start = datetime.now()
        report = BatchReport()

        try:
            descriptors = self._select_feeds(category)
            report.feeds = len(descriptors)

            self._transition(PipelineState.FETCHING)
            fetched = await self._fetch(descriptors)
            report.feeds_failed = len(fetched.failed_feeds)
            report.fetched = len(fetched.candidates)

            self._transition(PipelineState.DEDUPLICATING)
            fresh = self._deduplicate(fetched.candidates, report)

            self._transition(PipelineState.SUMMARIZING)
            await self._summarize(fresh, report)

            self._transition(PipelineState.PERSISTING)
            self._persist(fresh, report)

            self._transition(PipelineState.REPORTING)
            report.elapsed_seconds = (datetime.now() - start).total_seconds()
            logger.info("batch_complete", category=category, **report.to_dict())
            return report
        finally:
            self._transition(PipelineState.IDLE)

    async def collect_news(self) -> str:
        """Manual trigger: run everything and acknowledge completion."""
        await self.run()
        return COLLECTION_COMPLETE

    def _transition(self, state: PipelineState) -> None:
        if state is not self.state:
            logger.debug("pipeline_state", previous=self.state.value, state=state.value)
            self.state = state

    def _select_feeds(self, category: Optional[str]) -> List[FeedDescriptor]:
        descriptors = self.catalog.list_feeds()
        if category is None:
            return descriptors

        wanted = self.category_resolver.lookup_label(category)
        return [
            d for d in descriptors
            if d.category == category
            or (wanted is not None and self.category_resolver.lookup_label(d.category) == wanted)
        ]

    async def _fetch(self, descriptors: List[FeedDescriptor]) -> FetchResult:
        if self.fetcher is not None:
            return await self.fetcher.fetch_all(descriptors)

        async with RSSFetcher(self.category_resolver, on_fetch_complete=self._record_fetch) as fetcher:
            return await fetcher.fetch_all(descriptors)

    def _record_fetch(self, feed_name: str, articles: int = 0, error: str = None, fetch_time_ms: int = 0):
        """Stats callback; a stats write failure never affects the batch."""
        try:
            self.storage.update_feed_stats(
                feed_name=feed_name,
                articles=articles,
                error=error,
                fetch_time_ms=fetch_time_ms
            )
        except Exception as e:
            logger.warning("feed_stats_update_failed", feed=feed_name, error=str(e))

    def _deduplicate(self, candidates: List[ArticleCandidate], report: BatchReport) -> List[ArticleCandidate]:
        """Keep valid candidates whose URL is neither stored nor already claimed this batch."""
        fresh = []
        claimed = set()

        for candidate in candidates:
            if not candidate.url or not candidate.url.strip():
                report.skipped_invalid += 1
                logger.warning("article_missing_url", title=candidate.title, source=candidate.source_name)
                continue

            if not candidate.title or not candidate.title.strip():
                report.skipped_invalid += 1
                logger.warning("article_missing_title", url=candidate.url)
                continue

            if candidate.url in claimed:
                report.skipped_duplicate += 1
                continue

            try:
                is_new = self.deduplicator.is_new(candidate.url)
            except Exception as e:
                report.errored += 1
                logger.error("dedup_check_failed", url=candidate.url, error=str(e))
                continue

            if not is_new:
                report.skipped_duplicate += 1
                continue

            claimed.add(candidate.url)
            fresh.append(candidate)

        logger.info(
            "candidates_deduplicated",
            fresh=len(fresh),
            duplicates=report.skipped_duplicate,
            invalid=report.skipped_invalid
        )
        return fresh

    async def _summarize(self, candidates: List[ArticleCandidate], report: BatchReport) -> None:
        if not candidates:
            return

        if self.gateway is not None:
            await self._summarize_with(self.gateway, candidates, report)
            return

        extractor = ArticleTextExtractor()
        try:
            gateway = SummarizationGateway(text_extractor=extractor)
        except ConfigurationError as e:
            # Articles keep their feed descriptions
            logger.error("summarization_unavailable", error=str(e), articles=len(candidates))
            return

        try:
            async with gateway:
                await self._summarize_with(gateway, candidates, report)
        finally:
            await extractor.close()

    async def _summarize_with(
        self,
        gateway: SummarizationGateway,
        candidates: List[ArticleCandidate],
        report: BatchReport,
    ) -> None:
        """Summarize concurrently; a failed summary keeps the feed description."""
        workers = asyncio.Semaphore(self.summarize_workers)

        async def summarize_one(candidate: ArticleCandidate):
            async with workers:
                try:
                    result = await gateway.summarize(candidate.url, candidate.title)
                except Exception as e:
                    logger.error("summary_error", url=candidate.url, error=str(e))
                    return

            if result.ok:
                candidate.summary = result.text
                report.summarized += 1
                logger.info("article_summarized", title=candidate.title[:80])
            else:
                logger.warning(
                    "summary_unavailable_keeping_original",
                    title=candidate.title[:80],
                    status=result.status.value,
                    detail=result.text[:200]
                )

        await asyncio.gather(*(summarize_one(c) for c in candidates))

    def _persist(self, candidates: List[ArticleCandidate], report: BatchReport) -> None:
        for candidate in candidates:
            if candidate.category_id is None:
                candidate.category_id = self.category_resolver.default_id
                logger.debug("category_defaulted", url=candidate.url, category_id=candidate.category_id)

            try:
                stored = self.storage.save_article(candidate)
            except Exception as e:
                report.errored += 1
                logger.error("article_save_failed", url=candidate.url, error=str(e))
                continue

            if stored is None:
                # Lost a unique-URL race with a concurrent run
                report.skipped_duplicate += 1
                continue

            report.succeeded += 1

        logger.info(
            "articles_persisted",
            succeeded=report.succeeded,
            duplicates=report.skipped_duplicate,
            errors=report.errored
        )


async def run_ingestion(category: str = None, storage=None) -> dict:
    """Run one ingestion batch with the default collaborators.

    Args:
        category: Only poll feeds of this category label
        storage: Article store to use instead of the shared one

    Returns:
        Dict with batch counts
    """
    pipeline = IngestionPipeline(storage=storage)
    report = await pipeline.run(category=category)
    return report.to_dict()
