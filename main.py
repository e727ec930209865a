#!/usr/bin/env python3
"""
Main entry point for the site scraper.
"""

import asyncio
import argparse
import dataclasses
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from site_scraper import __version__
from site_scraper.crawler.job import CrawlJob, JobStatus
from site_scraper.crawler.parser import FileSelectorProvider
from site_scraper.utils.config import Config, ConfigError, build_config, load_config, validate_config
from site_scraper.utils.logger import setup_logging
from site_scraper.utils.monitoring import CrawlerMonitor, MetricsCollector


class ScraperApp:
    """Main application class for the site scraper."""

    def __init__(self):
        self.job: Optional[CrawlJob] = None
        self.logger = logging.getLogger(__name__)
        self._shutdown_event: Optional[asyncio.Event] = None

    def setup_signal_handlers(self):
        """Force-end the running job on SIGINT/SIGTERM."""
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self._on_signal, signum)
            except NotImplementedError:
                # Windows event loops do not support signal handlers
                pass

    def _on_signal(self, signum):
        self.logger.info(f"Received signal {signum}, saving results and shutting down...")
        self._shutdown_event.set()

    async def run(self, config: Config, selectors_file: Optional[str] = None,
                  job_id: Optional[str] = None, dry_run: bool = False) -> int:
        """Run one crawl job."""
        self._shutdown_event = asyncio.Event()
        self.setup_signal_handlers()

        crawl = config.crawler
        self.logger.info("=== SITE SCRAPER STARTING ===")
        self.logger.info(f"Base URL: {crawl.base_url}")
        self.logger.info(f"Whole site: {crawl.crawl_whole_site}, product pages: {crawl.is_page_with_products}")
        self.logger.info(f"Max depth: {crawl.max_depth}, max visited links: {crawl.max_visited_links}")
        self.logger.info(f"Workers: {config.workers.count}, retry: {crawl.should_use_retry}")

        if dry_run:
            self.logger.info("DRY RUN MODE: No actual crawling will be performed")
            return await self._dry_run(config)

        monitor = CrawlerMonitor(MetricsCollector(
            enable_prometheus=config.monitoring.metrics_enabled,
            prometheus_port=config.monitoring.prometheus_port
        ))
        monitor.metrics.start_prometheus_server()

        selector_provider = None
        if selectors_file:
            selector_provider = FileSelectorProvider(selectors_file)
            try:
                selectors = selector_provider.get_selectors()
            except ConfigError as e:
                self.logger.error(f"Could not load selectors: {e}")
                return 1
            self.logger.info(f"Loaded product selectors for fields: {sorted(selectors or {})}")

        self.job = CrawlJob(config, job_id=job_id, selector_provider=selector_provider, monitor=monitor)

        crawl_task = asyncio.create_task(self.job.run())
        shutdown_task = asyncio.create_task(self._shutdown_event.wait())

        done, pending = await asyncio.wait(
            [crawl_task, shutdown_task],
            return_when=asyncio.FIRST_COMPLETED
        )

        if shutdown_task in done:
            self.logger.info("Shutdown requested, stopping crawler...")
            await self.job.force_end()
            await crawl_task
        else:
            shutdown_task.cancel()

        summary = self.job.summary()
        self.logger.info(f"Job summary: {summary}")
        self.logger.info("=== SITE SCRAPER FINISHED ===")

        if self.job.status == JobStatus.FAILED or not self.job.saved:
            return 1
        return 0

    async def _dry_run(self, config: Config) -> int:
        """Fetch the base URL once to test configuration and connectivity."""
        from site_scraper.crawler.fetcher import WebFetcher, FetchError

        async with WebFetcher(
            user_agent=config.fetcher.user_agent,
            request_timeout=config.fetcher.request_timeout,
            max_content_size=config.fetcher.max_content_size
        ) as fetcher:
            try:
                result = await fetcher.fetch(config.crawler.base_url)
            except FetchError as e:
                self.logger.error(f"✗ Test fetch failed: {e}")
                return 1
            self.logger.info(f"✓ Test fetch successful: {result.status_code} ({len(result.content)} chars)")

        self.logger.info("Dry run completed")
        return 0


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Apply command-line overrides on top of the loaded configuration."""
    crawler_changes = {}
    if args.base_url:
        crawler_changes['base_url'] = args.base_url
    if args.whole_site:
        crawler_changes['crawl_whole_site'] = True
    if args.product_pattern:
        crawler_changes['is_page_with_products'] = True
        crawler_changes['product_url_pattern'] = args.product_pattern
    if args.max_visited_links is not None:
        crawler_changes['max_visited_links'] = args.max_visited_links
    if args.max_depth is not None:
        crawler_changes['max_depth'] = args.max_depth
    if args.retry:
        crawler_changes['should_use_retry'] = True

    if crawler_changes:
        config.crawler = dataclasses.replace(config.crawler, **crawler_changes)
    if args.text_output:
        config.output.text_path = args.text_output
    if args.products_output:
        config.output.products_path = args.products_output
    return config


def load_app_config(args: argparse.Namespace) -> Config:
    """
    Load the configuration file, or build one from --base-url when there is
    none, then apply command-line overrides and validate the result.
    """
    if Path(args.config).exists():
        config = load_config(args.config)
    elif args.base_url:
        config = build_config({'crawler': {'base_url': args.base_url}})
    else:
        raise ConfigError(
            f"Configuration file '{args.config}' not found. "
            "Create a config.yaml file, pass --config, or pass --base-url"
        )
    config = apply_overrides(config, args)
    validate_config(config)
    return config


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Site Scraper",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                                   # Run with default config.yaml
  python main.py --base-url https://shop.test/     # Crawl without a config file
  python main.py --whole-site --max-depth 3        # Crawl the whole host, 3 levels deep
  python main.py --product-pattern /product/ --selectors selectors.yaml
  python main.py --dry-run                         # Test configuration only
        """
    )

    parser.add_argument('--config', default='config.yaml',
                        help='Path to configuration file (default: config.yaml)')
    parser.add_argument('--base-url', help='URL to start crawling from')
    parser.add_argument('--whole-site', action='store_true',
                        help='Follow every link on the base URL host')
    parser.add_argument('--product-pattern',
                        help='Also follow links containing this substring')
    parser.add_argument('--selectors',
                        help='YAML/JSON file mapping product fields to CSS selectors')
    parser.add_argument('--max-visited-links', type=int,
                        help='Maximum number of URLs to visit')
    parser.add_argument('--max-depth', type=int, help='Maximum link depth')
    parser.add_argument('--retry', action='store_true',
                        help='Retry transient fetch errors')
    parser.add_argument('--text-output', help='Path of the text result file')
    parser.add_argument('--products-output', help='Path of the products JSON file')
    parser.add_argument('--job-id', help='Identifier used in logs')
    parser.add_argument('--json-logs', action='store_true', help='Log as JSON lines')
    parser.add_argument('--dry-run', action='store_true',
                        help='Test configuration without actually crawling')
    parser.add_argument('--version', action='version',
                        version=f'Site Scraper {__version__}')

    args = parser.parse_args()

    try:
        config = load_app_config(args)
    except (ConfigError, FileNotFoundError) as e:
        print(f"Configuration error: {e}")
        return 1

    setup_logging(dataclasses.asdict(config.logging), enable_json=args.json_logs)

    app = ScraperApp()
    try:
        return asyncio.run(app.run(
            config,
            selectors_file=args.selectors,
            job_id=args.job_id,
            dry_run=args.dry_run
        ))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 1


if __name__ == '__main__':
    sys.exit(main())
