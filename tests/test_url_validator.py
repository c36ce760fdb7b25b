"""
Unit tests for seed URL validation.
"""

import pytest

from linkcrawler.crawler.url_validator import canonical_url, validate_url
from linkcrawler.exceptions import InvalidURL

pytestmark = [pytest.mark.unit]


class TestValidateUrl:
    """Test cases for validate_url."""

    def test_bare_host_assumes_https(self):
        assert validate_url("example.com") == "https://example.com/"

    def test_whitespace_is_trimmed(self):
        assert validate_url("  http://example.com/about  ") == "http://example.com/about"

    def test_existing_scheme_is_kept(self):
        assert validate_url("http://example.com") == "http://example.com/"

    def test_scheme_match_is_case_insensitive(self):
        assert validate_url("HTTPS://Example.COM/Path") == "https://example.com/Path"

    def test_query_and_port_preserved(self):
        assert validate_url("example.com:8080/search?q=1") == "https://example.com:8080/search?q=1"

    def test_default_port_dropped(self):
        assert validate_url("https://example.com:443/") == "https://example.com/"

    @pytest.mark.parametrize("raw", ["", "   ", "https://", "http://exa mple.com", "example.com:99999"])
    def test_invalid_input_raises(self, raw):
        with pytest.raises(InvalidURL) as exc_info:
            validate_url(raw)
        assert "Invalid URL format" in str(exc_info.value)

    def test_path_is_percent_encoded(self):
        assert validate_url("example.com/über") == "https://example.com/%C3%BCber"
        assert validate_url("example.com/%C3%BCber") == "https://example.com/%C3%BCber"

    def test_idn_host_is_punycoded(self):
        assert validate_url("Bücher.de") == "https://xn--bcher-kva.de/"


class TestCanonicalUrl:
    """Test cases for canonical_url."""

    @pytest.mark.parametrize("raw,expected", [
        ("https://example.com", "https://example.com/"),
        ("HTTP://EXAMPLE.com:80/a", "http://example.com/a"),
        ("https://example.com/a b", "https://example.com/a%20b"),
    ])
    def test_canonical_form(self, raw, expected):
        assert canonical_url(raw) == expected

    @pytest.mark.parametrize("raw", ["https://", "https://exa mple.com/", "https://example.com:port/"])
    def test_unusable_url_raises_value_error(self, raw):
        with pytest.raises(ValueError):
            canonical_url(raw)
