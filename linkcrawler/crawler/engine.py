"""
Crawl engine: drives one breadth-first crawl per job and manages job lifecycles.
"""

import asyncio
import logging
from collections import deque
from typing import Deque, Dict, Optional, Set
from urllib.parse import urldefrag

from .domain_checker import DomainExpiryChecker
from .fetcher import FetchResult, WebFetcher
from .link_classifier import LinkClassifier
from .parser import LinkExtractor
from .prober import ConnectionProber
from .retry import RetryExecutor
from .url_validator import validate_url
from ..exceptions import (
    DomainCheckFailure, FetchFailure, InvalidURL, UnhandledCrawlError, UnreachableHost
)
from ..models import ExternalLink, Job, JobStatus
from ..storage.job_store import JobStore
from ..utils.config import Config
from ..utils.logger import get_crawler_logger


class CrawlRun:
    """
    State of a single running job.

    The frontier, visited set and the working copy of the job belong to this
    object alone. Background expiry results go straight to the job store,
    which merges them under its lock.
    """

    def __init__(self, engine: 'CrawlEngine', job: Job):
        self.engine = engine
        self.job = job
        self.store = engine.store
        self.crawler_config = engine.config.crawler
        self.frontier: Deque[str] = deque()
        self.visited: Set[str] = set()
        self.queued: Set[str] = set()
        self.classifier: Optional[LinkClassifier] = None
        self.expiry_tasks: Set[asyncio.Task] = set()
        self.checked_hosts: Set[str] = set()
        self.logger = get_crawler_logger(__name__, job_id=job.id)

    async def run(self):
        """Run the job to a terminal state. Never raises except on cancellation."""
        try:
            seed_url = validate_url(self.job.seed_url)
            if seed_url != self.job.seed_url:
                self.job.seed_url = seed_url
                await self._publish(seed_url=seed_url)

            await self.engine.prober.probe(seed_url)

            self.classifier = LinkClassifier(seed_url)
            start_url = urldefrag(seed_url).url
            self.frontier.append(start_url)
            self.queued.add(start_url)
            self.logger.info(f"Starting crawl of {seed_url}")

            stopped = await self._crawl_loop()
            if stopped:
                self.logger.info("Stop requested, ending crawl")
                await self._cancel_expiry_tasks()
                await self._finish(JobStatus.STOPPED)
            else:
                await self._drain_expiry_tasks()
                await self._finish(JobStatus.COMPLETED)

        except (InvalidURL, UnreachableHost) as e:
            self.logger.error(f"Crawl error: {e}")
            await self._cancel_expiry_tasks()
            await self._finish(JobStatus.ERROR, str(e))

        except asyncio.CancelledError:
            self.logger.info("Crawl task cancelled")
            await self._cancel_expiry_tasks()
            await self._finish(JobStatus.STOPPED)
            raise

        except Exception as e:
            error = UnhandledCrawlError(e)
            self.logger.error(f"Crawl error: {error}", exc_info=True)
            await self._cancel_expiry_tasks()
            await self._finish(JobStatus.ERROR, str(error))

    async def _crawl_loop(self) -> bool:
        """
        Process the frontier in FIFO order.

        Returns:
            True if the loop ended because the job left the active registry
        """
        while True:
            if not await self.store.is_active(self.job.id):
                return True
            if not self.frontier:
                return False

            url = self.frontier.popleft()
            self.queued.discard(url)
            if url in self.visited:
                continue
            self.visited.add(url)

            await self._process_url(url)

    async def _process_url(self, url: str):
        """Fetch one page, record its links and publish the new snapshot."""
        try:
            result = await self.engine.retry.execute(
                lambda: self.engine.fetcher.fetch(url),
                self.crawler_config.retry_attempts,
                self.crawler_config.retry_base_delay
            )
        except FetchFailure as e:
            self.logger.log_url_event(logging.WARNING, url, f"Error crawling {url}: {e}")
            self.job.crawled_urls.append(f"{url} (Failed: {e})")
            self.job.progress = self._compute_progress()
            await self._publish(crawled_urls=self.job.crawled_urls, progress=self.job.progress)
            return

        if self.engine.link_extractor.is_html(result.content_type) and result.content:
            self._collect_links(result)

        self.job.crawled_urls.append(url)
        self.job.progress = self._compute_progress()
        await self._publish(
            crawled_urls=self.job.crawled_urls,
            external_links=self.job.external_links,
            progress=self.job.progress
        )
        self.logger.debug(f"Crawled {url} ({len(self.frontier)} queued)")

    def _collect_links(self, result: FetchResult):
        for href in self.engine.link_extractor.extract_hrefs(result.content):
            absolute_url = self.classifier.resolve(href, result.url)
            if absolute_url is None:
                self.logger.debug(f"Invalid URL: {href}")
                continue

            if self.classifier.is_external(absolute_url):
                if not self.job.has_external_link(absolute_url):
                    self.job.external_links.append(
                        ExternalLink(url=absolute_url, status_code=result.status_code)
                    )
                    self._dispatch_expiry_check(self.classifier.hostname(absolute_url))
            elif absolute_url not in self.visited and absolute_url not in self.queued:
                self.frontier.append(absolute_url)
                self.queued.add(absolute_url)

    def _compute_progress(self) -> float:
        crawled = len(self.job.crawled_urls)
        total = crawled + len(self.frontier)
        if total == 0:
            return 0.0
        return round(min(100.0, max(0.0, crawled / total * 100)), 2)

    def _dispatch_expiry_check(self, hostname: str):
        checker = self.engine.domain_checker
        if checker is None or hostname in self.checked_hosts:
            return
        self.checked_hosts.add(hostname)

        task = asyncio.create_task(
            self._check_domain(checker, hostname),
            name=f"expiry-check:{self.job.id}:{hostname}"
        )
        self.expiry_tasks.add(task)
        task.add_done_callback(self._on_expiry_task_done)

    async def _check_domain(self, checker: DomainExpiryChecker, hostname: str):
        try:
            check = await checker.check(hostname)
        except DomainCheckFailure as e:
            self.logger.warning(f"Error checking domain {hostname}: {e}")
            return
        except Exception as e:
            self.logger.warning(f"Error checking domain {hostname}: {e}", exc_info=True)
            return

        if check.is_expired and await self.store.add_expired_domain(self.job.id, check):
            self.logger.info(f"Expired domain found: {check.domain}")

    def _on_expiry_task_done(self, task: asyncio.Task):
        self.expiry_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self.logger.error(f"Domain check task {task.get_name()} failed: {task.exception()}")

    async def _drain_expiry_tasks(self):
        """Give in-flight expiry checks a bounded time to land before completion."""
        if not self.expiry_tasks:
            return

        timeout = self.engine.config.domain_checker.drain_timeout
        self.logger.debug(f"Waiting for {len(self.expiry_tasks)} domain checks")
        _, pending = await asyncio.wait(set(self.expiry_tasks), timeout=timeout)
        if pending:
            self.logger.warning(f"{len(pending)} domain checks still running after {timeout}s, cancelling")
            await self._cancel_expiry_tasks()

    async def _cancel_expiry_tasks(self):
        tasks = list(self.expiry_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _finish(self, status: JobStatus, error: Optional[str] = None):
        self.job.finish(status, error)
        await self._publish(
            status=self.job.status,
            end_time=self.job.end_time,
            error=self.job.error,
            progress=self.job.progress
        )
        self.logger.info(
            f"Crawl {status.value}: {len(self.job.crawled_urls)} URLs crawled, "
            f"{len(self.job.external_links)} external links"
        )

    async def _publish(self, **changes):
        await self.store.update_job(self.job.id, **changes)


class CrawlEngine:
    """
    Runs crawl jobs against a job store.

    Dependencies are passed in explicitly so the engine can run against any
    store and with fake fetchers or checkers in tests.
    """

    def __init__(self, config: Config, store: JobStore,
                 fetcher: Optional[WebFetcher] = None,
                 domain_checker: Optional[DomainExpiryChecker] = None,
                 retry: Optional[RetryExecutor] = None,
                 link_extractor: Optional[LinkExtractor] = None):
        self.config = config
        self.store = store
        self.logger = logging.getLogger(__name__)

        self._owns_fetcher = fetcher is None
        self.fetcher = fetcher or WebFetcher.from_config(config.crawler)
        if domain_checker is None and config.domain_checker.enabled:
            domain_checker = DomainExpiryChecker.from_config(config.domain_checker)
        self.domain_checker = domain_checker
        self.retry = retry or RetryExecutor(max_jitter=config.crawler.retry_max_jitter)
        self.link_extractor = link_extractor or LinkExtractor()
        self.prober = ConnectionProber(
            self.fetcher,
            self.retry,
            attempts=config.crawler.probe_attempts,
            base_delay=config.crawler.retry_base_delay
        )

        self._tasks: Dict[str, asyncio.Task] = {}

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self):
        if self._owns_fetcher:
            await self.fetcher.start()

    async def close(self):
        """Cancel running jobs and release the fetcher."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        if self._owns_fetcher:
            await self.fetcher.close()
        self.logger.info("Crawl engine closed")

    async def create_job(self, url: str) -> Job:
        """Register a new running job for ``url``."""
        job = Job(seed_url=url)
        await self.store.add_job(job)
        return job

    async def start_crawl(self, url: str) -> Job:
        """Run a crawl to completion and return the final snapshot."""
        job = await self.create_job(url)
        await CrawlRun(self, job).run()
        return await self.store.get_job(job.id)

    async def submit(self, url: str) -> str:
        """Start a crawl in the background and return its job id."""
        job = await self.create_job(url)
        task = asyncio.create_task(CrawlRun(self, job).run(), name=f"crawl:{job.id}")
        self._tasks[job.id] = task
        task.add_done_callback(lambda t, job_id=job.id: self._on_job_done(job_id, t))
        return job.id

    def _on_job_done(self, job_id: str, task: asyncio.Task):
        self._tasks.pop(job_id, None)
        if not task.cancelled() and task.exception() is not None:
            self.logger.error(f"Crawl task for job {job_id} failed: {task.exception()}")

    async def wait(self, job_id: str) -> Optional[Job]:
        """Wait for a submitted job to finish and return its snapshot."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        return await self.store.get_job(job_id)

    async def stop(self, job_id: str) -> bool:
        """Request a cooperative stop; the job ends before its next fetch."""
        removed = await self.store.remove(job_id)
        if removed:
            self.logger.info(f"Stop requested for job {job_id}")
        return removed

    def running_jobs(self) -> Set[str]:
        return set(self._tasks)
