"""
Reachability check run before a crawl is committed.
"""

import logging
from typing import List, Optional, Sequence

from .fetcher import WebFetcher, RequestProfile
from .retry import RetryExecutor
from ..exceptions import FetchFailure, UnreachableHost

PROBE_PROFILES: List[RequestProfile] = [
    RequestProfile(name='default'),
    RequestProfile(name='no-proxy', use_env_proxy=False),
    RequestProfile(name='no-cache', headers={'Cache-Control': 'no-cache', 'Pragma': 'no-cache'}),
]


def downgrade_scheme(url: str) -> Optional[str]:
    """Return the http:// form of an https:// URL, or None."""
    if url.lower().startswith('https://'):
        return 'http://' + url[len('https://'):]
    return None


class ConnectionProber:
    """
    Confirms a host answers before the crawl starts.

    Every profile is tried against the URL as given. If the URL is https and
    all of them fail, every profile is tried again over plain http. Any HTTP
    response, including a 4xx, counts as reachable.
    """

    def __init__(self, fetcher: WebFetcher, retry: RetryExecutor,
                 attempts: int = 3, base_delay: float = 1.0,
                 profiles: Sequence[RequestProfile] = PROBE_PROFILES):
        self.fetcher = fetcher
        self.retry = retry
        self.attempts = attempts
        self.base_delay = base_delay
        self.profiles = list(profiles)
        self.logger = logging.getLogger(__name__)

    async def probe(self, url: str):
        """
        Raises:
            UnreachableHost: once every profile and scheme combination failed
        """
        candidates = [url]
        insecure_url = downgrade_scheme(url)
        if insecure_url:
            candidates.append(insecure_url)

        last_error: Optional[BaseException] = None
        for candidate in candidates:
            for profile in self.profiles:
                try:
                    await self._try(candidate, profile)
                    self.logger.info(f"Connection to {candidate} confirmed using '{profile.name}' profile")
                    return
                except FetchFailure as e:
                    last_error = e
                    self.logger.warning(f"Probe of {candidate} with '{profile.name}' profile failed: {e}")

        raise UnreachableHost(url, last_error)

    async def _try(self, url: str, profile: RequestProfile):
        async def attempt():
            try:
                return await self.fetcher.fetch(url, profile=profile, read_body=False)
            except FetchFailure as e:
                if e.is_client_error:
                    # the server answered, which is all a probe needs
                    return None
                raise

        await self.retry.execute(attempt, self.attempts, self.base_delay)
