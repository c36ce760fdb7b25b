"""
Job state containers.

A store holds the published snapshot of every job and the registry of
active job ids used for cooperative cancellation. Writes to a job that has
reached a terminal state are ignored, so late background results cannot
corrupt a finished record.
"""

import asyncio
import copy
import json
import logging
from typing import Any, Dict, List, Optional

import redis.asyncio as redis

from ..models import DomainCheck, Job, JobStatus
from ..utils.config import Config, RedisConfig

_IMMUTABLE_FIELDS = {'id', 'start_time'}


class JobStoreError(Exception):
    """Raised for unknown jobs and invalid updates."""
    pass


class JobStore:
    """Abstract base class for job stores."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._lock = asyncio.Lock()

    async def add_job(self, job: Job):
        """Store a new job and mark it active."""
        raise NotImplementedError

    async def get_job(self, job_id: str) -> Optional[Job]:
        """Return a snapshot of the job, or None."""
        raise NotImplementedError

    async def list_jobs(self) -> List[Job]:
        raise NotImplementedError

    async def is_active(self, job_id: str) -> bool:
        raise NotImplementedError

    async def remove(self, job_id: str) -> bool:
        """Remove a job from the active registry. Returns False if it was not active."""
        raise NotImplementedError

    async def _load(self, job_id: str) -> Optional[Job]:
        raise NotImplementedError

    async def _save(self, job: Job):
        raise NotImplementedError

    async def close(self):
        pass

    async def update_job(self, job_id: str, **changes: Any) -> bool:
        """
        Apply field changes to a running job.

        Returns:
            False if the job is already terminal and the update was dropped
        """
        unknown = set(changes) - set(Job.__dataclass_fields__)
        if unknown or _IMMUTABLE_FIELDS & set(changes):
            raise JobStoreError(f"Cannot update fields: {', '.join(sorted(unknown | (_IMMUTABLE_FIELDS & set(changes))))}")

        if 'progress' in changes and not 0 <= changes['progress'] <= 100:
            raise JobStoreError(f"progress out of range: {changes['progress']}")

        async with self._lock:
            job = await self._require(job_id)
            if job.status.is_terminal:
                self.logger.debug(f"Ignoring update to finished job {job_id}")
                return False

            for name, value in changes.items():
                setattr(job, name, copy.deepcopy(value))
            await self._save(job)

            if job.status.is_terminal:
                await self._deactivate(job_id)
            return True

    async def add_expired_domain(self, job_id: str, check: DomainCheck) -> bool:
        """
        Append an expired-domain result unless the domain is already present.

        Returns:
            True if the record changed
        """
        async with self._lock:
            job = await self._require(job_id)
            if job.status.is_terminal:
                self.logger.debug(f"Ignoring expiry result for finished job {job_id}: {check.domain}")
                return False
            if job.has_expired_domain(check.domain):
                return False

            job.expired_domains.append(check)
            await self._save(job)
            return True

    async def _require(self, job_id: str) -> Job:
        job = await self._load(job_id)
        if job is None:
            raise JobStoreError(f"Unknown job: {job_id}")
        return job

    async def _deactivate(self, job_id: str):
        await self.remove(job_id)


class MemoryJobStore(JobStore):
    """In-process job store."""

    def __init__(self):
        super().__init__()
        self._jobs: Dict[str, Job] = {}
        self._active: set = set()

    async def add_job(self, job: Job):
        async with self._lock:
            if job.id in self._jobs:
                raise JobStoreError(f"Job already exists: {job.id}")
            self._jobs[job.id] = copy.deepcopy(job)
            if job.status is JobStatus.RUNNING:
                self._active.add(job.id)
        self.logger.debug(f"Added job {job.id} for {job.seed_url}")

    async def get_job(self, job_id: str) -> Optional[Job]:
        job = self._jobs.get(job_id)
        return copy.deepcopy(job) if job else None

    async def list_jobs(self) -> List[Job]:
        return [copy.deepcopy(job) for job in self._jobs.values()]

    async def is_active(self, job_id: str) -> bool:
        return job_id in self._active

    async def remove(self, job_id: str) -> bool:
        if job_id in self._active:
            self._active.discard(job_id)
            return True
        return False

    async def _load(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    async def _save(self, job: Job):
        self._jobs[job.id] = job


class RedisJobStore(JobStore):
    """
    Job store backed by Redis, so another process can poll or stop jobs.

    Snapshots are JSON strings under ``<prefix>job:<id>``; the active
    registry is the set ``<prefix>active``. The lock serializes writers
    within this process only.
    """

    def __init__(self, redis_client: redis.Redis, key_prefix: str = 'linkcrawler:'):
        super().__init__()
        self.redis_client = redis_client
        self.key_prefix = key_prefix
        self.active_key = f"{key_prefix}active"
        self.jobs_key = f"{key_prefix}jobs"

    @classmethod
    def from_config(cls, config: RedisConfig) -> 'RedisJobStore':
        client = redis.Redis(
            host=config.host,
            port=config.port,
            db=config.db,
            password=config.password,
            decode_responses=True
        )
        return cls(client, config.key_prefix)

    def _job_key(self, job_id: str) -> str:
        return f"{self.key_prefix}job:{job_id}"

    async def add_job(self, job: Job):
        async with self._lock:
            created = await self.redis_client.set(self._job_key(job.id), json.dumps(job.to_dict()), nx=True)
            if not created:
                raise JobStoreError(f"Job already exists: {job.id}")
            await self.redis_client.rpush(self.jobs_key, job.id)
            if job.status is JobStatus.RUNNING:
                await self.redis_client.sadd(self.active_key, job.id)
        self.logger.debug(f"Added job {job.id} for {job.seed_url}")

    async def get_job(self, job_id: str) -> Optional[Job]:
        return await self._load(job_id)

    async def list_jobs(self) -> List[Job]:
        job_ids = await self.redis_client.lrange(self.jobs_key, 0, -1)
        jobs = []
        for job_id in job_ids:
            job = await self._load(job_id)
            if job is not None:
                jobs.append(job)
        return jobs

    async def is_active(self, job_id: str) -> bool:
        return bool(await self.redis_client.sismember(self.active_key, job_id))

    async def remove(self, job_id: str) -> bool:
        return bool(await self.redis_client.srem(self.active_key, job_id))

    async def _load(self, job_id: str) -> Optional[Job]:
        raw = await self.redis_client.get(self._job_key(job_id))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode('utf-8')
        return Job.from_dict(json.loads(raw))

    async def _save(self, job: Job):
        await self.redis_client.set(self._job_key(job.id), json.dumps(job.to_dict()))

    async def close(self):
        await self.redis_client.aclose()


def create_job_store(config: Config) -> JobStore:
    """Select the job store named by ``storage.type``."""
    if config.storage.type == 'redis':
        return RedisJobStore.from_config(config.redis)
    if config.storage.type == 'memory':
        return MemoryJobStore()
    raise ValueError(f"Unsupported storage type: {config.storage.type}")
