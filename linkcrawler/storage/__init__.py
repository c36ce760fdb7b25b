"""
Job state storage for the link crawler.
"""

from .job_store import JobStore, JobStoreError, MemoryJobStore, RedisJobStore, create_job_store

__all__ = ['JobStore', 'JobStoreError', 'MemoryJobStore', 'RedisJobStore', 'create_job_store']
