"""
Domain expiry lookups over WHOIS.
"""

import asyncio
import ipaddress
import logging
from datetime import datetime, timezone
from typing import Dict, Optional

import tldextract
import whois
from whois.exceptions import PywhoisError, WhoisDomainNotFoundError
from whois.parser import WhoisEntry

from ..exceptions import DomainCheckFailure
from ..models import DomainCheck
from ..utils.config import DomainCheckerConfig

# Bundled suffix list snapshot only, never fetched over the network
_extract = tldextract.TLDExtract(cache_dir=None, suffix_list_urls=())


def registrable_domain(hostname: str) -> str:
    """
    Reduce a hostname to the name a registrar would sell.

    ``www.blog.example.co.uk`` becomes ``example.co.uk``. Hosts with no
    registrable part (``localhost``, a bare suffix such as ``com.ar``)
    give an empty string.
    """
    host = (hostname or '').strip().lower().rstrip('.')
    return _extract(host).top_domain_under_public_suffix


def _first(value):
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def _is_past(moment: datetime) -> bool:
    if moment.tzinfo is None:
        return moment < datetime.now()
    return moment < datetime.now(timezone.utc)


class DomainExpiryChecker:
    """
    Checks whether a hostname's domain registration has lapsed.

    Lookups run the blocking WHOIS client in a worker thread, bounded by a
    timeout and a concurrency limit. A domain with no WHOIS record is
    reported as expired since it is available for registration.
    """

    def __init__(self, timeout: float = 20.0, max_concurrent: int = 5):
        self.timeout = timeout
        self.semaphore = asyncio.Semaphore(max_concurrent)
        self.logger = logging.getLogger(__name__)
        self._cache: Dict[str, DomainCheck] = {}
        self._in_flight: Dict[str, asyncio.Task] = {}

    @classmethod
    def from_config(cls, config: DomainCheckerConfig) -> 'DomainExpiryChecker':
        return cls(timeout=config.timeout, max_concurrent=config.max_concurrent)

    async def check(self, hostname: str) -> DomainCheck:
        """
        Args:
            hostname: Host taken from an external link

        Returns:
            DomainCheck for the registrable domain of ``hostname``

        Raises:
            DomainCheckFailure: if the lookup could not be completed
        """
        try:
            ipaddress.ip_address((hostname or '').strip('[]'))
        except ValueError:
            pass
        else:
            raise DomainCheckFailure(hostname, "IP addresses have no registration")

        domain = registrable_domain(hostname)
        if not domain:
            raise DomainCheckFailure(hostname, "not a registrable domain name")

        cached = self._cache.get(domain)
        if cached is not None:
            return cached

        # Hosts under one domain share a single lookup
        lookup = self._in_flight.get(domain)
        if lookup is None:
            lookup = asyncio.create_task(self._resolve(domain), name=f"whois:{domain}")
            self._in_flight[domain] = lookup
            lookup.add_done_callback(lambda task, key=domain: self._on_lookup_done(key, task))

        # a cancelled caller must not cancel the lookup other callers wait on
        return await asyncio.shield(lookup)

    def _on_lookup_done(self, domain: str, task: asyncio.Task):
        self._in_flight.pop(domain, None)
        if not task.cancelled():
            # mark the exception retrieved when every caller has gone away
            task.exception()

    async def _resolve(self, domain: str) -> DomainCheck:
        async with self.semaphore:
            try:
                record = await asyncio.wait_for(asyncio.to_thread(self._lookup, domain), self.timeout)
            except asyncio.TimeoutError as e:
                raise DomainCheckFailure(domain, f"WHOIS lookup timed out after {self.timeout}s") from e

        result = self._interpret(domain, record)
        self._cache[domain] = result
        self.logger.debug(f"Domain {domain}: expired={result.is_expired}")
        return result

    @staticmethod
    def _lookup(domain: str) -> Optional[WhoisEntry]:
        """Blocking WHOIS query; None means the registry has no record."""
        try:
            return whois.whois(domain)
        except WhoisDomainNotFoundError:
            return None
        except PywhoisError as e:
            raise DomainCheckFailure(domain, str(e).splitlines()[0] if str(e) else 'WHOIS error') from e
        except (OSError, UnicodeError) as e:
            raise DomainCheckFailure(domain, str(e) or e.__class__.__name__) from e

    @staticmethod
    def _interpret(domain: str, record: Optional[WhoisEntry]) -> DomainCheck:
        if record is None:
            return DomainCheck(domain=domain, is_expired=True)

        expiration = _first(record.get('expiration_date'))
        registrar = _first(record.get('registrar'))
        if not isinstance(expiration, datetime):
            expiration = None

        if expiration is not None:
            is_expired = _is_past(expiration)
        else:
            # an entry without a domain name is an empty response for an unregistered name
            is_expired = not record.get('domain_name')

        return DomainCheck(
            domain=domain,
            is_expired=is_expired,
            expiration_date=expiration,
            registrar=registrar
        )
