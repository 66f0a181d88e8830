"""Application settings with environment variable support."""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from pathlib import Path


# Compute base_dir at module level
_BASE_DIR = Path(__file__).parent.parent.parent.resolve()


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="ND_",  # ND_DATABASE_URL, ND_GEMINI_API_KEY, etc.
    )

    # Paths - computed from base_dir
    base_dir: Path = _BASE_DIR
    data_dir: Path = _BASE_DIR / "data"
    feeds_config_path: Path = _BASE_DIR / "config" / "feeds.json"

    # Database
    database_url: str = f"sqlite:///{_BASE_DIR / 'data' / 'news_digest.db'}"

    # Gemini
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash"
    gemini_api_base: str = "https://generativelanguage.googleapis.com/v1beta/models"
    gemini_max_concurrency: int = 5
    gemini_permit_timeout_seconds: float = 30.0
    gemini_max_retries: int = 5
    gemini_initial_backoff_seconds: float = 1.0
    gemini_backoff_multiplier: float = 1.5
    gemini_request_timeout_seconds: float = 60.0
    gemini_thinking_budget: int = 0  # 0 disables thinking, -1 lets the model decide

    # Ingestion
    fetch_timeout_seconds: int = 30
    fetch_concurrency: int = 5
    fetch_max_retries: int = 3
    article_fetch_timeout_seconds: int = 10
    article_max_chars: int = 15000

    # Processing
    summary_sentences: int = 3
    summarize_workers: int = 5
    default_category_id: int = 8  # opinion

    # Scheduling
    collect_interval_minutes: int = 10


settings = Settings()
