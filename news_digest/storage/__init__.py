"""Database storage and models."""

from .database import ArticleStorage
from .models import ArticleModel, FeedSourceModel, FeedStatsModel, init_db

__all__ = ["ArticleStorage", "ArticleModel", "FeedSourceModel", "FeedStatsModel", "init_db"]
