"""
Data model for crawl jobs and their results.
"""

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class JobStatus(str, Enum):
    """Lifecycle states of a crawl job."""
    RUNNING = 'running'
    COMPLETED = 'completed'
    ERROR = 'error'
    STOPPED = 'stopped'

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.RUNNING


@dataclass(frozen=True)
class ExternalLink:
    """An off-site link and the status of the page it was found on."""
    url: str
    status_code: int

    def to_dict(self) -> dict:
        return {'url': self.url, 'status_code': self.status_code}

    @classmethod
    def from_dict(cls, data: dict) -> 'ExternalLink':
        return cls(url=data['url'], status_code=data['status_code'])


@dataclass(frozen=True)
class DomainCheck:
    """Result of a domain expiry lookup."""
    domain: str
    is_expired: bool
    expiration_date: Optional[datetime] = None
    registrar: Optional[str] = None
    checked_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            'domain': self.domain,
            'is_expired': self.is_expired,
            'expiration_date': self.expiration_date.isoformat() if self.expiration_date else None,
            'registrar': self.registrar,
            'checked_at': self.checked_at
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'DomainCheck':
        expiration = data.get('expiration_date')
        return cls(
            domain=data['domain'],
            is_expired=data['is_expired'],
            expiration_date=datetime.fromisoformat(expiration) if expiration else None,
            registrar=data.get('registrar'),
            checked_at=data.get('checked_at', time.time())
        )


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_job_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Job:
    """
    Observable record of one crawl.

    ``progress`` is crawled / (crawled + queued) and is only an estimate: the
    denominator grows as links are discovered, so it can move backwards.
    """
    seed_url: str
    id: str = field(default_factory=_new_job_id)
    status: JobStatus = JobStatus.RUNNING
    progress: float = 0.0
    crawled_urls: List[str] = field(default_factory=list)
    external_links: List[ExternalLink] = field(default_factory=list)
    expired_domains: List[DomainCheck] = field(default_factory=list)
    start_time: datetime = field(default_factory=_now)
    end_time: Optional[datetime] = None
    error: Optional[str] = None

    def has_external_link(self, url: str) -> bool:
        return any(link.url == url for link in self.external_links)

    def has_expired_domain(self, domain: str) -> bool:
        return any(check.domain == domain for check in self.expired_domains)

    def finish(self, status: JobStatus, error: Optional[str] = None):
        """Move the job into a terminal state."""
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal status")
        self.status = status
        self.end_time = _now()
        if status is JobStatus.ERROR:
            self.error = error

    @property
    def duration(self) -> Optional[float]:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'id': self.id,
            'seed_url': self.seed_url,
            'status': self.status.value,
            'progress': self.progress,
            'crawled_urls': list(self.crawled_urls),
            'external_links': [link.to_dict() for link in self.external_links],
            'expired_domains': [check.to_dict() for check in self.expired_domains],
            'start_time': self.start_time.isoformat(),
            'end_time': self.end_time.isoformat() if self.end_time else None,
            'error': self.error
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Job':
        """Create Job from dictionary."""
        end_time = data.get('end_time')
        return cls(
            id=data['id'],
            seed_url=data['seed_url'],
            status=JobStatus(data['status']),
            progress=data.get('progress', 0.0),
            crawled_urls=list(data.get('crawled_urls', [])),
            external_links=[ExternalLink.from_dict(item) for item in data.get('external_links', [])],
            expired_domains=[DomainCheck.from_dict(item) for item in data.get('expired_domains', [])],
            start_time=datetime.fromisoformat(data['start_time']),
            end_time=datetime.fromisoformat(end_time) if end_time else None,
            error=data.get('error')
        )
