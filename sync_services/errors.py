"""
Error types raised by the listing sync services.

Fatal errors (validation, store reads) abort an operation before any
mutation is applied. Per-record errors (store writes, geocoding) are
collected into the operation's result instead of propagating.
"""

from typing import List, Optional


class ListingSyncError(Exception):
    """Base class for listing sync errors"""


class SnapshotFormatError(ListingSyncError):
    """Scraper output could not be read as a list of listing snapshots"""


class SyncValidationError(ListingSyncError):
    """A caller-supplied diff is inconsistent with the stored market state"""

    def __init__(self, market: str, problems: List[str]):
        self.market = market
        self.problems = problems
        super().__init__(
            f"Invalid sync input for {market}: " + "; ".join(problems)
        )


class StoreReadError(ListingSyncError):
    """Existing listing state could not be fetched"""


class StoreWriteError(ListingSyncError):
    """An insert, update or deactivation was rejected by the store"""

    def __init__(self, message: str, urls: Optional[List[str]] = None):
        self.urls = urls or []
        super().__init__(message)


class ProviderError(ListingSyncError):
    """The geocoding provider failed or returned an unusable response"""
