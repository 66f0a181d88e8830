"""Feed catalog: where the list of RSS sources comes from."""

import json
from pathlib import Path
from typing import List

import structlog

from ..errors import FeedCatalogError
from ..ingestion.interfaces import FeedCatalog, FeedDescriptor
from .settings import settings

logger = structlog.get_logger()


def load_feeds(config_path: str = None) -> List[FeedDescriptor]:
    """Load feed descriptors from a JSON file."""
    if config_path is None:
        config_path = settings.feeds_config_path

    try:
        with open(config_path) as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise FeedCatalogError(f"Cannot load feeds from {config_path}: {e}") from e

    feeds = []
    for feed_data in data.get("feeds", []):
        if not feed_data.get("url"):
            continue
        feeds.append(FeedDescriptor(
            url=feed_data["url"],
            category=feed_data.get("category", ""),
            source_name=feed_data.get("source", ""),
            enabled=feed_data.get("enabled", True),
        ))

    return feeds


class JsonFeedCatalog(FeedCatalog):
    """Feeds listed in config/feeds.json."""

    def __init__(self, config_path: str = None):
        self.config_path = Path(config_path) if config_path else Path(settings.feeds_config_path)

    def list_feeds(self) -> List[FeedDescriptor]:
        feeds = load_feeds(self.config_path)
        logger.debug("feeds_loaded", path=str(self.config_path), count=len(feeds))
        return feeds


class StorageFeedCatalog(FeedCatalog):
    """Feeds registered in the database, ordered by category."""

    def __init__(self, storage):
        self.storage = storage

    def list_feeds(self) -> List[FeedDescriptor]:
        try:
            return self.storage.list_feed_sources()
        except Exception as e:
            raise FeedCatalogError(f"Cannot load feeds from database: {e}") from e
