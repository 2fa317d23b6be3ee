"""
Site Intel — Exception hierarchy.

Fetch and extraction errors are recovered locally by the callers (next
strategy, then a neutral score). Persistence errors propagate.
"""


class SiteIntelError(Exception):
    """Base class for every error raised by the pipeline."""


class FetchError(SiteIntelError):
    """Network error or non-2xx response while fetching a page."""

    def __init__(self, url: str, message: str, status: int | None = None):
        self.url = url
        self.status = status
        super().__init__(f"{url}: {message}")


class FetchTimeout(FetchError):
    """A fetch exceeded its timeout."""

    def __init__(self, url: str, timeout: float):
        self.timeout = timeout
        super().__init__(url, f"timed out after {timeout:g}s")


class ContentExtractionError(SiteIntelError):
    """The page was fetched but no usable text could be extracted."""

    def __init__(self, url: str, reason: str = "could not extract content"):
        self.url = url
        self.reason = reason
        super().__init__(f"{url}: {reason}")


class SearchError(SiteIntelError):
    """A search provider failed (non-2xx, bad payload, network error)."""


class NoLeadsFoundError(SiteIntelError):
    """Discovery finished without a single lead of any rating."""

    def __init__(self, query: str):
        self.query = query
        super().__init__(f"No leads found for '{query}'")


class PersistenceError(SiteIntelError):
    """An audit record or asset reference could not be saved."""
