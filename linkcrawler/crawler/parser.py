"""
Anchor extraction from fetched HTML.
"""

import logging
from typing import List

from bs4 import BeautifulSoup

HTML_CONTENT_TYPES = ('text/html', 'application/xhtml+xml')


def is_html_content(content_type: str) -> bool:
    """Check if a Content-Type header value declares hypertext markup."""
    content_type = (content_type or '').lower()
    return any(html_type in content_type for html_type in HTML_CONTENT_TYPES)


class LinkExtractor:
    """Extracts raw ``href`` values from anchor elements."""

    def __init__(self, features: str = 'lxml'):
        self.features = features
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def is_html(content_type: str) -> bool:
        return is_html_content(content_type)

    def extract_hrefs(self, html_content: str) -> List[str]:
        """
        Return the href of every ``<a>`` element in document order.

        Args:
            html_content: Raw HTML markup

        Returns:
            Stripped, non-empty href strings; duplicates are kept
        """
        if not html_content:
            return []

        soup = BeautifulSoup(html_content, self.features)
        hrefs = []
        for anchor in soup.find_all('a', href=True):
            href = anchor['href'].strip()
            if href:
                hrefs.append(href)

        self.logger.debug(f"Extracted {len(hrefs)} anchors")
        return hrefs
