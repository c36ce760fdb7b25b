"""
Web page fetcher built on a shared aiohttp session.
"""

import asyncio
import aiohttp
import logging
import time
from typing import Optional, Dict
from urllib.parse import urlsplit
from urllib.request import getproxies, proxy_bypass
from dataclasses import dataclass, field
from aiohttp import ClientSession, ClientTimeout, ClientError

from .parser import is_html_content
from ..exceptions import FetchFailure
from ..utils.config import CrawlerConfig


@dataclass(frozen=True)
class RequestProfile:
    """A request configuration: extra headers and whether to honour environment proxies."""
    name: str
    headers: Dict[str, str] = field(default_factory=dict)
    use_env_proxy: bool = True


DEFAULT_PROFILE = RequestProfile(name='default')


@dataclass
class FetchResult:
    """Result of a successful fetch."""
    url: str
    status_code: int
    content: Optional[str] = None
    content_type: str = ''


class WebFetcher:
    """
    Fetches web pages with a bounded timeout and redirect count.

    Responses with status 400 or above raise FetchFailure carrying the status,
    so callers can tell client errors (not retried) from server errors.
    """

    def __init__(self, user_agent: str, request_timeout: float = 30,
                 max_redirects: int = 5, accept: Optional[str] = None,
                 accept_language: Optional[str] = None,
                 max_content_size: int = 10 * 1024 * 1024):
        self.user_agent = user_agent
        self.request_timeout = request_timeout
        self.max_redirects = max_redirects
        self.max_content_size = max_content_size
        self.default_headers = {'User-Agent': user_agent}
        if accept:
            self.default_headers['Accept'] = accept
        if accept_language:
            self.default_headers['Accept-Language'] = accept_language

        self.logger = logging.getLogger(__name__)
        self.session: Optional[ClientSession] = None

        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'total_bytes_downloaded': 0
        }

    @classmethod
    def from_config(cls, config: CrawlerConfig) -> 'WebFetcher':
        return cls(
            user_agent=config.user_agent,
            request_timeout=config.request_timeout,
            max_redirects=config.max_redirects,
            accept=config.accept,
            accept_language=config.accept_language
        )

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self):
        """Initialize the fetcher session."""
        if self.session is None:
            # Proxies are resolved per request profile, not from the session.
            self.session = aiohttp.ClientSession(
                timeout=ClientTimeout(total=self.request_timeout),
                headers=self.default_headers,
                trust_env=False
            )
            self.logger.info("WebFetcher session started")

    async def close(self):
        """Close the fetcher session."""
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.info("WebFetcher session closed")

    @staticmethod
    def _env_proxy_for(url: str) -> Optional[str]:
        parsed = urlsplit(url)
        proxies = getproxies()
        if not proxies or proxy_bypass(parsed.hostname or ''):
            return None
        return proxies.get(parsed.scheme)

    async def fetch(self, url: str, profile: RequestProfile = DEFAULT_PROFILE,
                    read_body: bool = True) -> FetchResult:
        """
        Fetch a single URL.

        Args:
            url: The URL to fetch
            profile: Request profile supplying extra headers and proxy behavior
            read_body: Download the body of HTML responses

        Returns:
            FetchResult for any response below 400

        Raises:
            FetchFailure: on 4xx/5xx responses, timeouts and connection errors
        """
        if self.session is None:
            await self.start()

        start_time = time.time()
        # Proxy from the environment unless the profile bypasses it
        proxy =self._env_proxy_for(url) if profile.use_env_proxy else None
        self.stats['total_requests'] += 1

        try:
            async with self.session.get(url, headers=profile.headers or None, proxy=proxy,
                                        max_redirects=self.max_redirects) as response:
                if response.status >= 400:
                    raise FetchFailure(
                        url,
                        f"HTTP {response.status} {response.reason or ''}".strip(),
                        status_code=response.status
                    )

                # Only hypertext bodies are downloaded
                content_type = response.headers.get('content-type', '').lower()
                content = None
                if read_body and is_html_content(content_type):
                    content = await self._read_content_safely(response)
                    if content:
                        self.stats['total_bytes_downloaded'] += len(content)

                self.stats['successful_requests'] += 1
                self.logger.debug(
                    f"Fetched {url}: {response.status} ({len(content) if content else 0} chars) "
                    f"in {time.time() - start_time:.2f}s"
                )
                return FetchResult(
                    url=url,
                    status_code=response.status,
                    content=content,
                    content_type=content_type
                )

        except FetchFailure:
            self.stats['failed_requests'] += 1
            raise

        except asyncio.TimeoutError as e:
            self.stats['failed_requests'] += 1
            self.logger.debug(f"Timeout fetching {url}")
            raise FetchFailure(url, "Request timeout") from e

        except ClientError as e:
            self.stats['failed_requests'] += 1
            self.logger.debug(f"Client error fetching {url}: {e}")
            raise FetchFailure(url, f"Client error: {e}") from e

        except ValueError as e:
            self.stats['failed_requests'] += 1
            raise FetchFailure(url, f"Invalid URL: {e}") from e

    async def _read_content_safely(self, response) -> Optional[str]:
        """
        Read response content with a size limit.

        Returns:
            Content string or None if the body is too large
        """
        content_length = response.headers.get('content-length')
        if content_length and content_length.isdigit() and int(content_length) > self.max_content_size:
            self.logger.warning(f"Content too large ({content_length} bytes): {response.url}")
            return None

        # Read content in chunks to handle large files
        content_bytes = b''
        async for chunk in response.content.iter_chunked(8192):
            content_bytes += chunk
            if len(content_bytes) > self.max_content_size:
                self.logger.warning(f"Content exceeded size limit during reading: {response.url}")
                return None

        encoding = response.charset or 'utf-8'
        try:
            return content_bytes.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            # latin-1 maps every byte, so this cannot fail
            return content_bytes.decode('latin-1')

    def get_stats(self) -> Dict[str, int]:
        """Get fetcher statistics."""
        return self.stats.copy()
