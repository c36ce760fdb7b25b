"""
Crawler core components.
"""

from .url_validator import validate_url
from .retry import RetryExecutor, is_client_error
from .fetcher import WebFetcher, FetchResult, RequestProfile
from .prober import ConnectionProber
from .parser import LinkExtractor
from .link_classifier import LinkClassifier
from .domain_checker import DomainExpiryChecker
from .engine import CrawlEngine

__all__ = [
    'validate_url', 'RetryExecutor', 'is_client_error',
    'WebFetcher', 'FetchResult', 'RequestProfile',
    'ConnectionProber', 'LinkExtractor', 'LinkClassifier',
    'DomainExpiryChecker', 'CrawlEngine'
]
