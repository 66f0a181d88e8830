"""Factory functions to create storage instances.

The database type is detected from DATABASE_URL:
- PostgreSQL for production
- SQLite for local development
"""

import os
from functools import lru_cache

import structlog

logger = structlog.get_logger()


def get_database_url() -> str:
    """Get database URL from environment, with fallback to SQLite."""
    # Check for DATABASE_URL first (standard for cloud platforms)
    url = os.environ.get('DATABASE_URL')
    if url:
        return normalize_database_url(url)

    # Check for ND_ prefixed version
    url = os.environ.get('ND_DATABASE_URL')
    if url:
        return normalize_database_url(url)

    # Default to SQLite for local development
    from ..config.settings import settings
    return settings.database_url


def normalize_database_url(url: str) -> str:
    """SQLAlchemy only accepts the postgresql:// scheme."""
    if url.startswith('postgres://'):
        return 'postgresql://' + url[len('postgres://'):]
    return url


def is_postgres() -> bool:
    """Check if we're using PostgreSQL."""
    return get_database_url().startswith('postgresql')


@lru_cache(maxsize=1)
def get_article_storage():
    """Get the shared article storage instance."""
    from .database import ArticleStorage

    url = get_database_url()
    logger.info(
        "using_postgres_storage" if is_postgres() else "using_sqlite_storage",
        url=url[:40] + "..."
    )
    return ArticleStorage(url)


def clear_cache():
    """Clear cached instances (useful for testing)."""
    get_article_storage.cache_clear()
