"""Database operations for article storage."""

from datetime import datetime
from typing import Optional, List
from pathlib import Path

from sqlalchemy import or_
from sqlalchemy.orm import sessionmaker
from sqlalchemy.exc import IntegrityError
import structlog

from .models import ArticleModel, FeedSourceModel, FeedStatsModel, init_db
from ..classification.categories import resolver
from ..config.settings import settings
from ..errors import ArticleNotFoundError
from ..ingestion.interfaces import ArticleCandidate, FeedDescriptor, StoredArticle, StorageInterface

logger = structlog.get_logger()


class ArticleStorage(StorageInterface):
    """SQLAlchemy-based storage for articles (SQLite locally, PostgreSQL in production)."""

    def __init__(self, database_url: str = None):
        if database_url is None:
            database_url = settings.database_url

        # Ensure data directory exists
        if database_url.startswith("sqlite:///"):
            db_path = database_url.replace("sqlite:///", "")
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self.engine = init_db(database_url)
        self.Session = sessionmaker(bind=self.engine)

    def exists_by_url(self, url: str) -> bool:
        """Check if an article with the given URL is stored."""
        session = self.Session()
        try:
            return session.query(ArticleModel.id)\
                .filter(ArticleModel.url == url)\
                .first() is not None
        finally:
            session.close()

    def save_article(self, article: ArticleCandidate) -> Optional[StoredArticle]:
        """Save article, return the stored row or None if the URL is already taken."""
        session = self.Session()
        try:
            model = ArticleModel(
                source_name=article.source_name,
                url=article.url,
                title=article.title,
                summary=article.summary,
                category_id=article.category_id,
                created_at=article.published_at,
                collected_at=datetime.now(),
            )
            session.add(model)
            session.commit()
            stored = self._model_to_article(model)
            logger.debug("article_saved", id=stored.id, url=article.url[:80])
            return stored
        except IntegrityError:
            session.rollback()
            # Only a unique-URL clash is a duplicate
            if not article.url or not self.exists_by_url(article.url):
                raise
            logger.debug("article_duplicate", url=article.url[:80])
            return None
        finally:
            session.close()

    def find_all(self) -> List[StoredArticle]:
        session = self.Session()
        try:
            models = session.query(ArticleModel).order_by(ArticleModel.id).all()
            return [self._model_to_article(m) for m in models]
        finally:
            session.close()

    def find_latest(self, limit: int = 20) -> List[StoredArticle]:
        """Most recently collected articles first."""
        session = self.Session()
        try:
            models = session.query(ArticleModel)\
                .order_by(ArticleModel.collected_at.desc(), ArticleModel.id.desc())\
                .limit(limit)\
                .all()
            return [self._model_to_article(m) for m in models]
        finally:
            session.close()

    def find_by_category(self, category_id: int, page: int = 0, size: int = 20) -> List[StoredArticle]:
        """One page of a category, newest collected first."""
        session = self.Session()
        try:
            models = session.query(ArticleModel)\
                .filter(ArticleModel.category_id == category_id)\
                .order_by(ArticleModel.collected_at.desc(), ArticleModel.id.desc())\
                .offset(page * size)\
                .limit(size)\
                .all()
            return [self._model_to_article(m) for m in models]
        finally:
            session.close()

    def find_by_category_label(self, label: str, page: int = 0, size: int = 20) -> List[StoredArticle]:
        """Category page by label; an unknown label yields no articles."""
        category_id = resolver.lookup_label(label)
        if category_id is None:
            return []
        return self.find_by_category(category_id, page=page, size=size)

    def search_by_keyword(self, term: str, page: int = 0, size: int = 20) -> List[StoredArticle]:
        """Articles whose title or summary contains term."""
        session = self.Session()
        try:
            pattern = f"%{term}%"
            models = session.query(ArticleModel)\
                .filter(or_(ArticleModel.title.like(pattern), ArticleModel.summary.like(pattern)))\
                .order_by(ArticleModel.collected_at.desc(), ArticleModel.id.desc())\
                .offset(page * size)\
                .limit(size)\
                .all()
            return [self._model_to_article(m) for m in models]
        finally:
            session.close()

    def find_by_id(self, article_id: int) -> StoredArticle:
        """Get article by id."""
        session = self.Session()
        try:
            model = session.get(ArticleModel, article_id)
            if model is None:
                raise ArticleNotFoundError(article_id)
            return self._model_to_article(model)
        finally:
            session.close()

    def get_by_url(self, url: str) -> Optional[StoredArticle]:
        """Get article by URL."""
        session = self.Session()
        try:
            model = session.query(ArticleModel)\
                .filter(ArticleModel.url == url)\
                .first()
            return self._model_to_article(model) if model else None
        finally:
            session.close()

    def get_stats(self) -> dict:
        """Get database statistics."""
        session = self.Session()
        try:
            total = session.query(ArticleModel).count()
            by_category = {}
            for category_id in resolver.ids():
                by_category[resolver.label_for(category_id)] = session.query(ArticleModel)\
                    .filter(ArticleModel.category_id == category_id).count()
            return {
                "total_articles": total,
                "articles_by_category": by_category,
            }
        finally:
            session.close()

    def _model_to_article(self, model: ArticleModel) -> StoredArticle:
        """Convert database model to StoredArticle."""
        return StoredArticle(
            id=model.id,
            source_name=model.source_name,
            title=model.title,
            summary=model.summary,
            url=model.url,
            category_id=model.category_id,
            created_at=model.created_at,
            collected_at=model.collected_at,
        )

    def list_feed_sources(self) -> List[FeedDescriptor]:
        """Get all feeds configured in the database."""
        session = self.Session()
        try:
            models = session.query(FeedSourceModel)\
                .order_by(FeedSourceModel.category, FeedSourceModel.id)\
                .all()
            return [
                FeedDescriptor(
                    url=m.url,
                    category=m.category,
                    source_name=m.source_name,
                    enabled=bool(m.enabled),
                )
                for m in models
            ]
        finally:
            session.close()

    def add_feed_source(self, descriptor: FeedDescriptor) -> bool:
        """Register a feed; False if its URL is already configured."""
        session = self.Session()
        try:
            session.add(FeedSourceModel(
                url=descriptor.url,
                category=descriptor.category,
                source_name=descriptor.source_name,
                enabled=descriptor.enabled,
            ))
            session.commit()
            logger.info("feed_source_added", source=descriptor.source_name, url=descriptor.url)
            return True
        except IntegrityError:
            session.rollback()
            return False
        finally:
            session.close()

    def update_feed_stats(
        self,
        feed_name: str,
        articles: int = 0,
        error: str = None,
        fetch_time_ms: int = 0
    ) -> None:
        """Update feed statistics after a fetch."""
        session = self.Session()
        try:
            stats = session.get(FeedStatsModel, feed_name)
            if not stats:
                stats = FeedStatsModel(feed_name=feed_name)
                session.add(stats)

            stats.last_fetch_at = datetime.now()
            stats.total_articles = (stats.total_articles or 0) + articles
            stats.fetch_count = (stats.fetch_count or 0) + 1

            if error:
                stats.last_error = error
                stats.consecutive_failures = (stats.consecutive_failures or 0) + 1
            else:
                stats.last_error = None
                stats.consecutive_failures = 0

            # Update average fetch time
            old_avg = stats.avg_fetch_time_ms or 0
            stats.avg_fetch_time_ms = int((old_avg * 0.9) + (fetch_time_ms * 0.1))

            session.commit()
            logger.debug("feed_stats_updated", feed=feed_name, articles=articles)
        finally:
            session.close()

    def get_feed_stats(self, feed_name: str) -> Optional[dict]:
        """Get statistics for a specific feed."""
        session = self.Session()
        try:
            stats = session.get(FeedStatsModel, feed_name)
            return self._stats_to_dict(stats) if stats else None
        finally:
            session.close()

    def get_all_feed_stats(self) -> List[dict]:
        """Get statistics for all feeds."""
        session = self.Session()
        try:
            return [self._stats_to_dict(s) for s in session.query(FeedStatsModel).all()]
        finally:
            session.close()

    def _stats_to_dict(self, stats: FeedStatsModel) -> dict:
        return {
            "feed_name": stats.feed_name,
            "last_fetch_at": stats.last_fetch_at,
            "total_articles": stats.total_articles or 0,
            "last_error": stats.last_error,
            "consecutive_failures": stats.consecutive_failures or 0,
            "avg_fetch_time_ms": stats.avg_fetch_time_ms or 0,
            "fetch_count": stats.fetch_count or 0,
        }
