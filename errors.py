from __future__ import annotations


class CrawlError(Exception):
    """Base class for failures contained at the per-site boundary."""

    # Short machine-readable kind, stored on records as crawl_status.
    kind = "failed"


class InvalidURL(CrawlError):
    kind = "invalid_url"


class SeedUnresolved(CrawlError):
    """The seed had to be bypassed and the search fallback found nothing."""

    kind = "seed_unresolved"


class FetchFailure(CrawlError):
    """All fetch attempts for a URL were exhausted. Absorbed by the fetcher."""

    kind = "fetch_failed"


class ExtractionFailure(CrawlError):
    kind = "extraction_failed"
