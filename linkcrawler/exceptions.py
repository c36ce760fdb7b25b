"""
Error taxonomy for the crawler.

Only InvalidURL, UnreachableHost and UnhandledCrawlError end a job. FetchFailure
and DomainCheckFailure describe a single page or a single background lookup.
"""

from typing import Optional


class CrawlerError(Exception):
    """Base class for all crawler errors."""
    pass


class InvalidURL(CrawlerError):
    """Raised when the seed input cannot be parsed as an absolute URL."""

    def __init__(self, raw_url: str):
        self.raw_url = raw_url
        super().__init__("Invalid URL format. Please enter a valid URL.")


class UnreachableHost(CrawlerError):
    """Raised when every probe profile and scheme failed."""

    def __init__(self, url: str, last_error: Optional[BaseException] = None):
        self.url = url
        self.last_error = last_error
        reason = str(last_error) if last_error else 'Unknown error'
        super().__init__(f"Cannot connect to {url}. Error: {reason}")


class FetchFailure(CrawlerError):
    """A single page could not be fetched."""

    def __init__(self, url: str, message: str, status_code: Optional[int] = None):
        self.url = url
        self.status_code = status_code
        super().__init__(message)

    @property
    def is_client_error(self) -> bool:
        return self.status_code is not None and 400 <= self.status_code < 500


class DomainCheckFailure(CrawlerError):
    """A domain expiry lookup failed."""

    def __init__(self, domain: str, message: str):
        self.domain = domain
        super().__init__(f"Domain check failed for {domain}: {message}")


class UnhandledCrawlError(CrawlerError):
    """Wraps any unexpected exception that escaped the crawl loop."""

    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(str(cause) or cause.__class__.__name__)
