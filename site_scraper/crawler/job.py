"""
Crawl job: the per-job context that wraps one crawl engine with a status,
a bounded log buffer and a single save of its results.
"""

import asyncio
import logging
import threading
import uuid
from enum import Enum
from typing import Any, Dict, List, Optional

from .fetcher import WebFetcher
from .parser import SelectorProvider
from .scheduler import CrawlerScheduler
from ..storage.results import SaveError
from ..utils.config import Config, CrawlConfig
from ..utils.logger import JobLogBuffer, get_crawler_logger
from ..utils.monitoring import CrawlerMonitor


class JobStatus(Enum):
    """Lifecycle states of a crawl job."""
    PENDING = "pending"
    SCRAPING = "scraping"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class CrawlJob:
    """
    One crawl job. Results are saved exactly once, either when the crawl
    finishes or when the job is force-ended, whichever comes first.
    """

    def __init__(self, config: Config,
                 job_id: Optional[str] = None,
                 fetcher: Optional[WebFetcher] = None,
                 selector_provider: Optional[SelectorProvider] = None,
                 monitor: Optional[CrawlerMonitor] = None):
        self.config = config
        self.job_id = job_id or str(uuid.uuid4())
        self.text_path = config.output.text_path
        self.products_path = config.output.products_path
        self.status = JobStatus.PENDING
        self.error: Optional[str] = None
        self.saved: Optional[bool] = None

        self.logger = get_crawler_logger(__name__, job_id=self.job_id)
        self.log_buffer = JobLogBuffer(self.job_id, capacity=config.logging.job_buffer_size)

        self._fetcher = fetcher
        self._selector_provider = selector_provider
        self.monitor = monitor or CrawlerMonitor()
        self.scheduler: Optional[CrawlerScheduler] = None

        self._save_lock = threading.Lock()
        self._save_done = False
        self._force_ended = False

    @property
    def crawl_config(self) -> CrawlConfig:
        return self.config.crawler

    @property
    def is_running(self) -> bool:
        return self.status == JobStatus.SCRAPING

    async def run(self) -> JobStatus:
        """
        Run the crawl to completion and save its results.
        Only an exception from the crawl itself marks the job failed.
        """
        if self._force_ended:
            return self.status

        self.log_buffer.attach()
        self.status = JobStatus.SCRAPING
        self.logger.info(f"Job started for {self.crawl_config.base_url}")
        try:
            self.scheduler = CrawlerScheduler(
                self.crawl_config,
                fetcher=self._fetcher,
                fetcher_config=self.config.fetcher,
                retry_config=self.config.retry,
                worker_config=self.config.workers,
                selector_provider=self._selector_provider,
                monitor=self.monitor,
                job_id=self.job_id
            )
            await self.scheduler.start_crawling()

            if self._force_ended:
                self.status = JobStatus.CANCELLED
            else:
                self.status = JobStatus.COMPLETED
                self.save_results()

        except asyncio.CancelledError:
            self.status = JobStatus.CANCELLED
            self.save_results()
            raise
        except Exception as e:
            self.logger.error(f"Job failed: {e}", exc_info=True)
            self.status = JobStatus.FAILED
            self.error = str(e)
            self.save_results()
        finally:
            self.logger.info(f"Job finished with status {self.status.value}")
            self.log_buffer.detach()

        return self.status

    async def force_end(self) -> bool:
        """
        Stop the crawl and save whatever was collected so far.

        Returns:
            True if the results were saved successfully
        """
        self._force_ended = True
        self.logger.info("Force-ending job")
        if self.scheduler:
            await self.scheduler.stop_crawling()
        if self.status in (JobStatus.PENDING, JobStatus.SCRAPING):
            self.status = JobStatus.CANCELLED
        return self.save_results()

    def save_results(self) -> bool:
        """
        Save text and products once. Later calls return the first outcome.

        A failed save is logged and reported, never raised; in-memory
        results stay intact.
        """
        with self._save_lock:
            if self._save_done:
                return bool(self.saved)
            self._save_done = True

            if self.scheduler is None:
                self.saved = False
                return False

            results = self.scheduler.results
            try:
                results.save_text(self.text_path)
                if results.product_count:
                    results.save_products(self.products_path)
                else:
                    self.logger.info("No products found, products file not written")
                self.saved = True
            except SaveError as e:
                self.logger.error(f"Error saving results: {e}")
                self.saved = False

            return self.saved

    def get_logs(self) -> List[str]:
        return self.log_buffer.get_messages()

    def get_result_text(self) -> Optional[str]:
        if self.scheduler is None:
            return None
        return self.scheduler.results.all_text()

    def get_products_json(self) -> Optional[str]:
        if self.scheduler is None:
            return None
        return self.scheduler.results.products_as_json()

    def summary(self) -> Dict[str, Any]:
        """Get a status summary of the job."""
        summary: Dict[str, Any] = {
            'job_id': self.job_id,
            'status': self.status.value,
            'base_url': self.crawl_config.base_url,
            'error': self.error,
            'saved': self.saved,
        }
        if self.scheduler:
            summary.update(self.scheduler.get_stats())
        return summary
