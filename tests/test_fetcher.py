"""
Integration tests for WebFetcher against a local aiohttp server.
"""

import asyncio

import pytest
import pytest_asyncio
from aiohttp import web

from linkcrawler.crawler.fetcher import RequestProfile, WebFetcher
from linkcrawler.crawler.parser import is_html_content
from linkcrawler.exceptions import FetchFailure

pytestmark = [pytest.mark.integration]


async def html_handler(request):
    return web.Response(text='<a href="/next">next</a>', content_type='text/html')


async def json_handler(request):
    return web.json_response({'ok': True})


async def missing_handler(request):
    raise web.HTTPNotFound()


async def broken_handler(request):
    raise web.HTTPServiceUnavailable()


async def headers_handler(request):
    text = f"{request.headers.get('User-Agent')}|{request.headers.get('Cache-Control')}"
    return web.Response(text=text, content_type='text/html')


async def slow_handler(request):
    await asyncio.sleep(2)
    return web.Response(text='late', content_type='text/html')


async def redirect_loop_handler(request):
    raise web.HTTPFound('/loop')


ROUTES = {
    '/': html_handler,
    '/data': json_handler,
    '/missing': missing_handler,
    '/broken': broken_handler,
    '/headers': headers_handler,
    '/slow': slow_handler,
    '/loop': redirect_loop_handler,
}


class TestWebFetcher:
    """Test cases for WebFetcher."""

    @pytest_asyncio.fixture
    async def server(self, site_server):
        return await site_server(ROUTES)

    @pytest_asyncio.fixture
    async def fetcher(self):
        fetcher = WebFetcher(user_agent='linkcrawler-test', request_timeout=1, max_redirects=3)
        await fetcher.start()
        yield fetcher
        await fetcher.close()

    @pytest.mark.asyncio
    async def test_fetches_html(self, server, fetcher):
        result = await fetcher.fetch(str(server.make_url('/')))

        assert result.status_code == 200
        assert is_html_content(result.content_type)
        assert 'href="/next"' in result.content
        assert fetcher.get_stats()['successful_requests'] == 1

    @pytest.mark.asyncio
    async def test_non_html_body_is_not_downloaded(self, server, fetcher):
        result = await fetcher.fetch(str(server.make_url('/data')))

        assert result.status_code == 200
        assert not is_html_content(result.content_type)
        assert result.content is None

    @pytest.mark.asyncio
    async def test_client_error_raises_with_status(self, server, fetcher):
        with pytest.raises(FetchFailure) as exc_info:
            await fetcher.fetch(str(server.make_url('/missing')))

        assert exc_info.value.status_code == 404
        assert exc_info.value.is_client_error
        assert "404" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_server_error_raises_retryable(self, server, fetcher):
        with pytest.raises(FetchFailure) as exc_info:
            await fetcher.fetch(str(server.make_url('/broken')))

        assert exc_info.value.status_code == 503
        assert not exc_info.value.is_client_error

    @pytest.mark.asyncio
    async def test_timeout_raises_without_status(self, server, fetcher):
        with pytest.raises(FetchFailure) as exc_info:
            await fetcher.fetch(str(server.make_url('/slow')))

        assert exc_info.value.status_code is None
        assert str(exc_info.value) == "Request timeout"

    @pytest.mark.asyncio
    async def test_redirect_cap(self, server, fetcher):
        with pytest.raises(FetchFailure) as exc_info:
            await fetcher.fetch(str(server.make_url('/loop')))

        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_connection_refused(self, fetcher, unused_tcp_port):
        with pytest.raises(FetchFailure) as exc_info:
            await fetcher.fetch(f"http://127.0.0.1:{unused_tcp_port}/")

        assert exc_info.value.status_code is None
        assert fetcher.get_stats()['failed_requests'] == 1

    @pytest.mark.asyncio
    async def test_profile_headers_are_sent(self, server, fetcher):
        profile = RequestProfile(name='no-cache', headers={'Cache-Control': 'no-cache'})

        result = await fetcher.fetch(str(server.make_url('/headers')), profile=profile)

        assert result.content == 'linkcrawler-test|no-cache'

    @pytest.mark.asyncio
    async def test_read_body_false_skips_download(self, server, fetcher):
        result = await fetcher.fetch(str(server.make_url('/')), read_body=False)

        assert result.status_code == 200
        assert result.content is None
