"""URL-based deduplication against the article store."""

from typing import Optional

from ..ingestion.interfaces import StorageInterface


class Deduplicator:
    """Decides whether a candidate URL has been stored before.

    The URL is the only replay-safety key, so a missing URL is never new.
    There is no cache: every check is a store round trip.
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage

    def is_new(self, url: Optional[str]) -> bool:
        if not url or not url.strip():
            return False
        return not self.storage.exists_by_url(url)
