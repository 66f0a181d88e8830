"""Interface definitions for data ingestion."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List

from ..classification.categories import resolver


@dataclass(frozen=True)
class FeedDescriptor:
    """One external RSS source to poll."""
    url: str
    category: str
    source_name: str
    enabled: bool = True

    @property
    def name(self) -> str:
        """Per-feed key; one source publishes several category feeds."""
        return f"{self.source_name}:{self.category}"


@dataclass
class ArticleCandidate:
    """An article parsed from a feed, not yet persisted."""
    source_name: str = ""
    title: Optional[str] = None
    summary: Optional[str] = None
    published_at: Optional[datetime] = None
    url: Optional[str] = None
    category_id: Optional[int] = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "source_name": self.source_name,
            "title": self.title,
            "summary": self.summary,
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "url": self.url,
            "category_id": self.category_id,
        }


@dataclass
class StoredArticle:
    """An article as persisted by the article store."""
    id: int
    source_name: str
    title: str
    summary: Optional[str]
    url: str
    category_id: int
    created_at: Optional[datetime] = None
    collected_at: Optional[datetime] = None

    @property
    def category(self) -> Optional[str]:
        return resolver.label_for(self.category_id)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "source_name": self.source_name,
            "title": self.title,
            "summary": self.summary,
            "url": self.url,
            "category_id": self.category_id,
            "category": self.category,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "collected_at": self.collected_at.isoformat() if self.collected_at else None,
        }


@dataclass
class FetchResult:
    """Outcome of fetching a set of feeds."""
    candidates: List[ArticleCandidate] = field(default_factory=list)
    feeds_fetched: int = 0
    failed_feeds: List[str] = field(default_factory=list)


class FeedCatalog:
    """Interface for the list of feeds to poll."""

    def list_feeds(self) -> List[FeedDescriptor]:
        """Return every configured feed."""
        raise NotImplementedError


class FetcherInterface:
    """Interface for feed fetching."""

    async def fetch_feed(self, descriptor: FeedDescriptor) -> List[ArticleCandidate]:
        """Fetch articles from a single feed."""
        raise NotImplementedError

    async def fetch_all(self, descriptors: List[FeedDescriptor]) -> FetchResult:
        """Fetch from all given feeds, isolating per-feed failures."""
        raise NotImplementedError


class StorageInterface:
    """Interface for article storage."""

    def exists_by_url(self, url: str) -> bool:
        """Check if an article with the given URL is stored."""
        raise NotImplementedError

    def save_article(self, article: ArticleCandidate) -> Optional[StoredArticle]:
        """Save article, return the stored row or None if the URL is taken."""
        raise NotImplementedError

    def find_all(self) -> List[StoredArticle]:
        raise NotImplementedError

    def find_latest(self, limit: int = 20) -> List[StoredArticle]:
        raise NotImplementedError

    def find_by_category(self, category_id: int, page: int = 0, size: int = 20) -> List[StoredArticle]:
        raise NotImplementedError

    def search_by_keyword(self, term: str, page: int = 0, size: int = 20) -> List[StoredArticle]:
        raise NotImplementedError

    def find_by_id(self, article_id: int) -> StoredArticle:
        """Get article by id; raises ArticleNotFoundError if absent."""
        raise NotImplementedError
