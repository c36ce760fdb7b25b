"""
Seed URL normalization and validation.
"""

import re
from urllib.parse import urlsplit, urlunsplit

from yarl import URL

from ..exceptions import InvalidURL

_SCHEME_PATTERN = re.compile(r'^https?://', re.IGNORECASE)
_DEFAULT_PORTS = {'http': 80, 'https': 443}


def canonical_url(url: str) -> str:
    """
    Put an absolute URL in the form used for crawl bookkeeping.

    Scheme and host are lowercased, a default port is dropped and an empty
    path becomes ``/``. The host is IDNA-encoded and the path, query and
    fragment are percent-encoded, so ``/über`` and ``/%C3%BCber`` compare
    equal.

    Raises:
        ValueError: if the URL has no usable host or a malformed port
    """
    parsed = urlsplit(url)
    hostname = parsed.hostname
    port = parsed.port
    if not hostname or any(ch.isspace() for ch in parsed.netloc):
        raise ValueError(f"No usable host in {url!r}")

    scheme = parsed.scheme.lower()
    host = f"[{hostname}]" if ':' in hostname else hostname
    netloc = host
    if port is not None and port != _DEFAULT_PORTS.get(scheme):
        netloc = f"{host}:{port}"
    if parsed.username is not None:
        userinfo = parsed.username
        if parsed.password is not None:
            userinfo = f"{userinfo}:{parsed.password}"
        netloc = f"{userinfo}@{netloc}"

    # yarl requotes without double-encoding existing escapes
    return str(URL(urlunsplit((scheme, netloc, parsed.path or '/', parsed.query, parsed.fragment))))


def validate_url(raw_url: str) -> str:
    """
    Normalize raw user input into an absolute URL.

    Input without an ``http://`` or ``https://`` prefix is assumed to use
    https. The result is in canonical form (see ``canonical_url``).

    Raises:
        InvalidURL: if the input cannot be parsed as an absolute http(s) URL
    """
    if raw_url is None:
        raise InvalidURL(raw_url)

    processed = raw_url.strip()
    if not _SCHEME_PATTERN.match(processed):
        processed = f"https://{processed}"

    try:
        return canonical_url(processed)
    except ValueError as e:
        raise InvalidURL(raw_url) from e
