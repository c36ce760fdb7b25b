"""
Pytest fixtures for the link crawler tests.

Fixtures:
- fast_config: configuration with retry delays and jitter disabled
- memory_store: empty in-memory job store
- fake_fetcher: scripted fetcher keyed by URL
- fake_checker: scripted domain expiry checker keyed by hostname
- site_server: factory for local aiohttp servers
"""

import asyncio
from typing import Dict, List, Optional, Union

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from linkcrawler.crawler.engine import CrawlEngine
from linkcrawler.crawler.fetcher import DEFAULT_PROFILE, FetchResult, RequestProfile
from linkcrawler.crawler.retry import RetryExecutor
from linkcrawler.exceptions import FetchFailure
from linkcrawler.models import DomainCheck
from linkcrawler.storage.job_store import MemoryJobStore
from linkcrawler.utils.config import Config


def html_page(*hrefs: str) -> str:
    anchors = "".join(f'<a href="{href}">link</a>' for href in hrefs)
    return f"<html><head><title>t</title></head><body>{anchors}</body></html>"


class RecordingSleep:
    """Stands in for asyncio.sleep and records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float):
        self.delays.append(delay)


class FakeFetcher:
    """
    Fetcher returning scripted responses.

    A page is either a (status, content_type, body) tuple or an exception
    instance raised on every call. Unknown URLs return 404.
    """

    def __init__(self, pages: Optional[Dict[str, Union[tuple, Exception]]] = None):
        self.pages = pages or {}
        self.calls: List[str] = []
        self.profiles: List[RequestProfile] = []
        self.hooks = {}

    async def fetch(self, url: str, profile: RequestProfile = DEFAULT_PROFILE,
                    read_body: bool = True) -> FetchResult:
        self.calls.append(url)
        self.profiles.append(profile)
        hook = self.hooks.get(url)
        if hook is not None:
            await hook()

        page = self.pages.get(url, (404, 'text/html', ''))
        if isinstance(page, Exception):
            raise page

        status, content_type, body = page
        if status >= 400:
            raise FetchFailure(url, f"HTTP {status}", status_code=status)
        return FetchResult(
            url=url,
            status_code=status,
            content=body if read_body else None,
            content_type=content_type
        )


class FakeChecker:
    """Domain checker returning scripted results, optionally gated on an event."""

    def __init__(self, results: Optional[Dict[str, Union[DomainCheck, Exception]]] = None,
                 gate: Optional[asyncio.Event] = None):
        self.results = results or {}
        self.gate = gate
        self.calls: List[str] = []

    async def check(self, hostname: str) -> DomainCheck:
        self.calls.append(hostname)
        if self.gate is not None:
            await self.gate.wait()
        result = self.results.get(hostname, DomainCheck(domain=hostname, is_expired=False))
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture(autouse=True)
def no_proxy_env(monkeypatch):
    """Keep environment proxies away from requests to local test servers."""
    for name in ('HTTP_PROXY', 'HTTPS_PROXY', 'ALL_PROXY', 'http_proxy', 'https_proxy', 'all_proxy'):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fast_config():
    config = Config.default()
    config.crawler.retry_base_delay = 0.0
    config.crawler.retry_max_jitter = 0.0
    config.crawler.request_timeout = 5
    config.domain_checker.drain_timeout = 5
    return config


@pytest.fixture
def memory_store():
    return MemoryJobStore()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def fast_retry(recording_sleep):
    return RetryExecutor(max_jitter=0.0, sleep=recording_sleep)


@pytest.fixture
def fake_fetcher():
    return FakeFetcher()


@pytest.fixture
def fake_checker():
    return FakeChecker()


@pytest.fixture
def make_engine(fast_config, memory_store, fast_retry, fake_fetcher, fake_checker):
    """Build an engine wired to the fakes; keyword arguments override them."""
    def factory(**overrides) -> CrawlEngine:
        kwargs = {
            'fetcher': fake_fetcher,
            'domain_checker': fake_checker,
            'retry': fast_retry,
        }
        kwargs.update(overrides)
        return CrawlEngine(fast_config, memory_store, **kwargs)
    return factory


@pytest_asyncio.fixture
async def site_server():
    """Start local aiohttp servers from a {path: handler} mapping."""
    servers = []

    async def factory(routes) -> TestServer:
        app = web.Application()
        for path, handler in routes.items():
            app.router.add_get(path, handler)
        server = TestServer(app)
        await server.start_server()
        servers.append(server)
        return server

    yield factory

    for server in servers:
        await server.close()

