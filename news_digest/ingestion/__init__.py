"""Data ingestion - fetching and parsing RSS feeds."""

from .interfaces import (
    FeedDescriptor, ArticleCandidate, StoredArticle, FetchResult,
    FeedCatalog, FetcherInterface, StorageInterface
)
from .fetcher import RSSFetcher, parse_feed, clean_text
from .article_text import ArticleTextExtractor

__all__ = [
    "FeedDescriptor", "ArticleCandidate", "StoredArticle", "FetchResult",
    "FeedCatalog", "FetcherInterface", "StorageInterface",
    "RSSFetcher", "parse_feed", "clean_text", "ArticleTextExtractor",
]
