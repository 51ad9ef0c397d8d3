"""Exception types raised by the ingestion pipeline."""

from typing import Optional

__all__ = [
    "PartScrapeError",
    "FetchError",
    "ParseError",
    "IngestionItemError",
    "JobFatalError",
    "VariantSplitError",
    "SchedulerShutdownError",
]


class PartScrapeError(Exception):
    """Base class for all pipeline errors."""


class FetchError(PartScrapeError):
    """Raised when a page cannot be fetched (network, timeout or non-2xx)."""

    def __init__(self, url: str, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class ParseError(PartScrapeError):
    """Raised when a document or a value inside it cannot be parsed."""


class IngestionItemError(PartScrapeError):
    """Raised when a single scraped product cannot be stored."""


class JobFatalError(PartScrapeError):
    """Raised when a job cannot run at all (e.g. unknown vendor)."""


class VariantSplitError(PartScrapeError):
    """Raised when a variant split is rejected by the caller-side checks."""

    def __init__(self, product_id: int, message: str):
        super().__init__(message)
        self.product_id = product_id


class SchedulerShutdownError(PartScrapeError):
    """Raised when a job is triggered on a scheduler that has been shut down."""
