"""SQLAlchemy models for the news digest database."""

from datetime import datetime

from sqlalchemy import create_engine, Column, Integer, String, Text, Boolean, DateTime, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class ArticleModel(Base):
    """Database model for summarized articles."""
    __tablename__ = "articles"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Source identification
    source_name = Column(String(255))
    url = Column(String(2048), unique=True, nullable=False)

    # Content
    title = Column(Text, nullable=False)
    summary = Column(Text)

    # Taxonomy
    category_id = Column(Integer, nullable=False)

    # Timestamps
    created_at = Column(DateTime)  # published time from the feed
    collected_at = Column(DateTime, default=datetime.now)

    __table_args__ = (
        Index('idx_articles_category', 'category_id'),
        Index('idx_articles_collected', 'collected_at'),
    )


class FeedSourceModel(Base):
    """Database model for configured feeds."""
    __tablename__ = "feed_sources"

    id = Column(Integer, primary_key=True, autoincrement=True)
    url = Column(String(2048), unique=True, nullable=False)
    category = Column(String(100), nullable=False)
    source_name = Column(String(255), nullable=False)
    enabled = Column(Boolean, default=True)


class FeedStatsModel(Base):
    """Database model for feed statistics."""
    __tablename__ = "feed_stats"

    feed_name = Column(String(255), primary_key=True)
    last_fetch_at = Column(DateTime)
    total_articles = Column(Integer, default=0)
    last_error = Column(Text)
    consecutive_failures = Column(Integer, default=0)
    avg_fetch_time_ms = Column(Integer, default=0)
    fetch_count = Column(Integer, default=0)


def init_db(database_url: str):
    """Initialize database and create all tables."""
    engine = create_engine(database_url, echo=False)
    Base.metadata.create_all(engine)
    return engine
