"""
Resolution and internal/external classification of discovered links.
"""

import logging
from typing import Optional
from urllib.parse import urldefrag, urljoin, urlsplit

from .url_validator import canonical_url


class LinkClassifier:
    """Classifies links relative to the hostname of the seed URL."""

    def __init__(self, seed_url: str):
        self.seed_url = seed_url
        self.seed_hostname = self.hostname(seed_url)
        self.logger = logging.getLogger(__name__)

    def resolve(self, href: str, page_url: str) -> Optional[str]:
        """
        Resolve ``href`` against the page it was found on.

        Returns:
            The canonical absolute http(s) URL without its fragment, or None
            for references that cannot be resolved (malformed, or non-web
            schemes such as mailto:)
        """
        try:
            absolute_url = urldefrag(urljoin(page_url, href.strip())).url
            if urlsplit(absolute_url).scheme not in ('http', 'https'):
                return None
            return canonical_url(absolute_url)
        except ValueError:
            return None

    def hostname(self, url: str) -> str:
        return urlsplit(url).hostname or ''

    def is_external(self, url: str) -> bool:
        """True if the hostname differs from the seed's; subdomains count as different hosts."""
        return self.hostname(url) != self.seed_hostname
