"""Exceptions raised by the news digest pipeline."""


class NewsDigestError(Exception):
    """Base class for pipeline errors."""


class ConfigurationError(NewsDigestError):
    """Required configuration (API key, feed list) is missing or invalid."""


class FeedCatalogError(NewsDigestError):
    """The list of feeds could not be loaded; the whole run is aborted."""


class ArticleNotFoundError(NewsDigestError):
    """A requested article does not exist."""

    def __init__(self, article_id):
        self.article_id = article_id
        super().__init__(f"Article with id {article_id} not found")
