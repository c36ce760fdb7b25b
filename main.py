#!/usr/bin/env python3
"""
Main entry point for the link crawler.
"""

import asyncio
import argparse
import json
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from linkcrawler import __version__
from linkcrawler.crawler.engine import CrawlEngine
from linkcrawler.crawler.url_validator import validate_url
from linkcrawler.exceptions import CrawlerError
from linkcrawler.models import Job
from linkcrawler.storage.job_store import JobStore, create_job_store
from linkcrawler.utils.config import Config, load_config
from linkcrawler.utils.logger import setup_logging


def render_job_summary(job: Job, recent: int = 10) -> str:
    """Render a plain-text report of a job snapshot."""
    lines = [
        f"Job {job.id}: {job.seed_url}",
        f"Status: {job.status.value}",
        f"Progress: {round(job.progress)}%",
        f"Started: {job.start_time:%Y-%m-%d %H:%M:%S %Z}",
    ]
    if job.end_time:
        lines.append(f"Ended: {job.end_time:%Y-%m-%d %H:%M:%S %Z} ({job.duration:.1f}s)")
    lines.append(
        f"Crawled URLs: {len(job.crawled_urls)} | External links: {len(job.external_links)} | "
        f"Expired domains: {len(job.expired_domains)}"
    )
    if job.error:
        lines.append(f"Error: {job.error}")

    if job.crawled_urls:
        lines.append(f"\nRecently crawled URLs (last {recent}):")
        lines.extend(f"  {url}" for url in reversed(job.crawled_urls[-recent:]))

    if job.external_links:
        lines.append(f"\nExternal links (last {recent}):")
        lines.extend(f"  [{link.status_code}] {link.url}" for link in reversed(job.external_links[-recent:]))

    if job.expired_domains:
        lines.append("\nExpired domains:")
        for check in job.expired_domains:
            expiry = f" (expired {check.expiration_date:%Y-%m-%d})" if check.expiration_date else ""
            lines.append(f"  {check.domain}{expiry}")

    return "\n".join(lines)


class CrawlerApp:
    """Main application class for the link crawler."""

    def __init__(self):
        self.engine: Optional[CrawlEngine] = None
        self.store: Optional[JobStore] = None
        self.job_id: Optional[str] = None
        self.logger = logging.getLogger(__name__)

    def setup_signal_handlers(self):
        """Turn SIGINT/SIGTERM into a stop request for the running job."""
        loop = asyncio.get_running_loop()

        def request_stop(signum):
            self.logger.info(f"Received signal {signum}, stopping crawl...")
            if self.engine and self.job_id:
                asyncio.ensure_future(self.engine.stop(self.job_id))

        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, request_stop, signum)
            except NotImplementedError:
                signal.signal(signum, lambda s, f: loop.call_soon_threadsafe(request_stop, s))

    async def run(self, url: str, config: Config, dry_run: bool = False,
                  json_logs: bool = False, output: Optional[str] = None) -> int:
        """Run one crawl and print its summary."""
        setup_logging(config.logging, enable_json=json_logs or None)
        self.logger.info("=== LINK CRAWLER STARTING ===")
        self.logger.info(f"Storage type: {config.storage.type}")
        self.logger.info(f"Domain expiry checks: {'enabled' if config.domain_checker.enabled else 'disabled'}")

        self.store = create_job_store(config)
        try:
            async with CrawlEngine(config, self.store) as engine:
                self.engine = engine
                if dry_run:
                    return await self._dry_run(url)

                self.setup_signal_handlers()
                self.job_id = await engine.submit(url)
                self.logger.info(f"Submitted job {self.job_id}")
                job = await engine.wait(self.job_id)

            print(render_job_summary(job))
            if output:
                Path(output).write_text(json.dumps(job.to_dict(), indent=2), encoding='utf-8')
                self.logger.info(f"Job written to {output}")
            return 0 if job.error is None else 1

        except Exception as e:
            self.logger.error(f"Fatal error: {e}", exc_info=True)
            return 1

        finally:
            await self.store.close()
            self.logger.info("=== LINK CRAWLER FINISHED ===")

    async def _dry_run(self, url: str) -> int:
        """Validate and probe the URL without crawling."""
        self.logger.info("DRY RUN MODE: validating and probing only")
        try:
            validated = validate_url(url)
            self.logger.info(f"Validated URL: {validated}")
            await self.engine.prober.probe(validated)
        except CrawlerError as e:
            self.logger.error(f"Dry run failed: {e}")
            return 1
        self.logger.info("Dry run completed")
        return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Crawl a website and flag expired external domains",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py example.com                       # Crawl with built-in defaults
  python main.py example.com --config config.yaml  # Crawl with a config file
  python main.py example.com --output job.json     # Save the final job record
  python main.py example.com --dry-run             # Validate and probe only
        """
    )

    parser.add_argument('url', help='Seed URL; https:// is assumed when no scheme is given')

    parser.add_argument(
        '--config',
        help='Path to configuration file (default: built-in defaults)'
    )

    parser.add_argument(
        '--json-logs',
        action='store_true',
        help='Emit logs as JSON'
    )

    parser.add_argument(
        '--output',
        help='Write the final job record as JSON to this file'
    )

    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Validate and probe the URL without crawling'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'Link Crawler {__version__}'
    )

    args = parser.parse_args(argv)

    if args.config:
        try:
            config = load_config(args.config)
        except FileNotFoundError:
            print(f"Error: Configuration file '{args.config}' not found.")
            return 1
        except ValueError as e:
            print(f"Error: Invalid configuration: {e}")
            return 1
    else:
        config = Config.default()

    app = CrawlerApp()
    try:
        return asyncio.run(app.run(
            url=args.url,
            config=config,
            dry_run=args.dry_run,
            json_logs=args.json_logs,
            output=args.output
        ))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 1


if __name__ == '__main__':
    sys.exit(main())
