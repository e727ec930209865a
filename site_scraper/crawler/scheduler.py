"""
Crawler scheduler that runs one crawl job: a fixed pool of workers consumes
admitted URLs from a bounded queue, fetches and extracts each page, and
dispatches the links it finds.
"""

import asyncio
import time
from collections import deque
from typing import Deque, Dict, List, Optional
from dataclasses import dataclass

from .url_frontier import URLFrontier, URLTask
from .fetcher import WebFetcher, FetchResult, FetchError
from .parser import ContentParser, SelectorProvider, StaticSelectorProvider
from ..storage.results import ResultStore
from ..utils.config import CrawlConfig, FetcherConfig, RetryConfig, WorkerConfig
from ..utils.logger import get_crawler_logger
from ..utils.monitoring import CrawlerMonitor


@dataclass
class CrawlStats:
    """Statistics for one crawl."""
    start_time: float
    pages_crawled: int = 0
    products_found: int = 0
    fetch_attempts: int = 0
    retries: int = 0
    errors: int = 0
    abandoned_urls: int = 0

    @property
    def elapsed_time(self) -> float:
        return time.time() - self.start_time

    @property
    def pages_per_minute(self) -> float:
        elapsed_minutes = self.elapsed_time / 60
        return self.pages_crawled / elapsed_minutes if elapsed_minutes > 0 else 0


class CrawlerScheduler:
    """
    Crawl engine for a single job. Owns the frontier (visited set) and the
    result store; nothing is shared with other jobs.
    """

    def __init__(self, config: CrawlConfig,
                 fetcher: Optional[WebFetcher] = None,
                 fetcher_config: Optional[FetcherConfig] = None,
                 retry_config: Optional[RetryConfig] = None,
                 worker_config: Optional[WorkerConfig] = None,
                 selector_provider: Optional[SelectorProvider] = None,
                 monitor: Optional[CrawlerMonitor] = None,
                 job_id: Optional[str] = None):
        self.config = config
        self.fetcher_config = fetcher_config or FetcherConfig()
        self.retry_config = retry_config or RetryConfig()
        self.worker_config = worker_config or WorkerConfig()
        self.job_id = job_id or "N/A"
        self.logger = get_crawler_logger(__name__, job_id=self.job_id)

        # An injected fetcher is owned by the caller and never closed here
        self._owns_fetcher = fetcher is None
        self.fetcher = fetcher or WebFetcher(
            user_agent=self.fetcher_config.user_agent,
            request_timeout=self.fetcher_config.request_timeout,
            max_content_size=self.fetcher_config.max_content_size,
            max_connections=self.worker_config.count * 2,
            job_id=self.job_id
        )

        if selector_provider is None:
            selector_provider = StaticSelectorProvider(config.product_field_selectors)

        self.url_frontier = URLFrontier(config, job_id=self.job_id)
        self.parser = ContentParser(config.base_url, selector_provider, job_id=self.job_id)
        self.results = ResultStore(job_id=self.job_id)
        self.monitor = monitor or CrawlerMonitor()

        # Crawl state
        self.stats = CrawlStats(start_time=time.time())
        self.is_running = False
        self.workers: List[asyncio.Task] = []
        self._queue: Optional[asyncio.Queue] = None
        self._overflow: Deque[URLTask] = deque()
        self._outstanding = 0
        self._active_workers = 0
        self._done: Optional[asyncio.Event] = None
        self._stopped = False

    async def start_crawling(self):
        """
        Crawl from the base URL until no admitted work remains or stop_crawling is called.
        Per-page failures are logged and never abort the crawl.
        """
        if self.is_running:
            self.logger.warning("Crawler is already running")
            return

        self.is_running = True
        self._stopped = False
        self.stats = CrawlStats(start_time=time.time())
        self._queue = asyncio.Queue(maxsize=self.worker_config.max_queue_size)
        self._overflow = deque()
        self._done = asyncio.Event()
        self._outstanding = 0

        stats_task: Optional[asyncio.Task] = None
        try:
            if self._owns_fetcher:
                await self.fetcher.start()

            if not self._dispatch(URLTask(url=self.config.base_url, depth=0)):
                self.logger.warning(f"Base URL was not admitted: {self.config.base_url}")
                return

            self.workers = [
                asyncio.create_task(self._worker(f"worker-{i}"))
                for i in range(self.worker_config.count)
            ]
            stats_task = asyncio.create_task(self._stats_reporter())

            self.logger.info(f"Started crawling {self.config.base_url} with {len(self.workers)} workers")

            await self._done.wait()

        finally:
            self.is_running = False
            if stats_task:
                stats_task.cancel()
            await self._cleanup_workers()
            if self._owns_fetcher:
                await self.fetcher.close()
            self._log_final_stats()

    def _dispatch(self, task: URLTask) -> bool:
        """
        Admit a task through the frontier and hand it to the workers.

        When the queue is full the task waits in the shared overflow deque and
        moves into the queue as workers take work, so producers never block.
        """
        if self._stopped:
            return False

        if not self.url_frontier.admit(task.url, task.depth):
            return False

        self._outstanding += 1
        if self._overflow or self._queue.full():
            self._overflow.append(task)
        else:
            self._queue.put_nowait(task)

        self.monitor.update_queue_size(self._queue.qsize() + len(self._overflow))
        return True

    def _refill_queue(self):
        """Move overflow tasks into the queue while it has room."""
        while self._overflow and not self._queue.full():
            self._queue.put_nowait(self._overflow.popleft())

    async def _next_task(self) -> URLTask:
        # Every get frees a slot, so the overflow never strands work while
        # the queue is empty.
        url_task = await self._queue.get()
        self._refill_queue()
        return url_task

    def _task_finished(self):
        self._outstanding -= 1
        if self._outstanding <= 0:
            self._done.set()

    async def _worker(self, worker_id: str):
        """
        Worker coroutine that processes admitted URLs.
        """
        self.logger.debug(f"Worker {worker_id} started")

        while not self._stopped:
            url_task = await self._next_task()

            self._active_workers += 1
            self.monitor.update_active_workers(self._active_workers)
            try:
                await self._process_url(url_task)
            except Exception as e:
                self.logger.error(f"Worker {worker_id} error on {url_task.url}: {e}", exc_info=True)
                self.stats.errors += 1
                self.monitor.record_error('processing')
            finally:
                self._active_workers -= 1
                self.monitor.update_active_workers(self._active_workers)
                self._queue.task_done()
                self._task_finished()

        self.logger.debug(f"Worker {worker_id} finished")

    async def _process_url(self, url_task: URLTask):
        """Fetch, extract and fan out one admitted URL."""
        self.logger.debug(f"Crawling: {url_task.url} (depth {url_task.depth})")

        fetch_result = await self._fetch_with_retry(url_task.url)
        if fetch_result is None:
            return

        page = self.parser.parse(fetch_result.url, fetch_result.content)

        self.results.add_text(page.text)
        self.stats.pages_crawled += 1
        self.monitor.record_page_crawled(fetch_result.fetch_time)

        if page.product:
            self.results.add_product(page.product)
            self.stats.products_found += 1
            self.monitor.record_product()
            self.logger.info(f"Product detected: {page.product.name}, {page.product.price}, {page.url}")

        self._queue_new_urls(page.links, url_task)

    def _queue_new_urls(self, links: List[str], url_task: URLTask):
        """Dispatch every followable link found on a page at the next depth."""
        next_depth = url_task.depth + 1
        queued = 0
        for link in links:
            if self._stopped:
                break
            if not self.url_frontier.is_valid_resource(link):
                continue
            if not self.url_frontier.should_follow(link):
                continue
            task = URLTask(url=link, depth=next_depth, parent_url=url_task.url)
            if self._dispatch(task):
                queued += 1

        if queued:
            self.logger.debug(f"Queued {queued} new URLs from {url_task.url}")

    def should_retry(self, error: FetchError) -> bool:
        """Retry only transient errors, and only when the job enables retries."""
        if not self.config.should_use_retry:
            return False
        message = str(error)
        return any(marker in message for marker in self.retry_config.transient_markers)

    async def _fetch_with_retry(self, url: str) -> Optional[FetchResult]:
        """
        Fetch a URL, retrying transient failures with a fixed delay.
        Returns None once the URL is abandoned.
        """
        max_attempts = self.retry_config.max_attempts
        attempt = 0
        while True:
            self.stats.fetch_attempts += 1
            try:
                return await self.fetcher.fetch(url)
            except FetchError as e:
                attempt += 1
                if self.should_retry(e) and attempt < max_attempts:
                    self.logger.warning(f"Error crawling {url}: {e}. Retrying ({attempt}/{max_attempts})...")
                    self.stats.retries += 1
                    self.monitor.record_retry()
                    await asyncio.sleep(self.retry_config.delay)
                else:
                    self.logger.error(f"Error crawling {url}: {e}. Giving up after {attempt} attempts.")
                    self.stats.errors += 1
                    self.stats.abandoned_urls += 1
                    self.monitor.record_error('fetch')
                    return None

    async def _stats_reporter(self, interval: float = 30.0):
        """Periodically log crawl statistics."""
        while self.is_running:
            await asyncio.sleep(interval)
            self._log_current_stats()

    def _log_current_stats(self):
        self.logger.info(
            f"Crawl Progress: "
            f"Crawled={self.stats.pages_crawled}, "
            f"Products={self.stats.products_found}, "
            f"Queued={(self._queue.qsize() if self._queue else 0) + len(self._overflow)}, "
            f"Visited={len(self.url_frontier.visited)}, "
            f"Errors={self.stats.errors}, "
            f"Rate={self.stats.pages_per_minute:.1f} pages/min"
        )

    def _log_final_stats(self):
        self.logger.info("=== CRAWL FINISHED ===")
        self.logger.info(f"Pages crawled: {self.stats.pages_crawled}")
        self.logger.info(f"Text blocks: {self.results.text_count}")
        self.logger.info(f"Products found: {self.stats.products_found}")
        self.logger.info(f"Errors: {self.stats.errors} ({self.stats.abandoned_urls} URLs abandoned)")
        self.logger.info(f"Total time: {self.stats.elapsed_time:.2f} seconds")
        self.logger.info(f"Frontier stats: {self.url_frontier.get_stats()}")

    async def stop_crawling(self):
        """
        Stop the crawl: no more URLs are dispatched and in-flight fetches are cancelled.
        """
        if self._stopped:
            return
        self.logger.info("Stopping crawler...")
        self._stopped = True
        self.is_running = False
        if self._done:
            self._done.set()
        await self._cleanup_workers()

    async def _cleanup_workers(self):
        """Cancel and cleanup worker tasks."""
        self._stopped = True
        if self.workers:
            for worker in self.workers:
                if not worker.done():
                    worker.cancel()

            await asyncio.gather(*self.workers, return_exceptions=True)
            self.workers.clear()

    def get_stats(self) -> Dict:
        """Get current crawl statistics."""
        return {
            'pages_crawled': self.stats.pages_crawled,
            'products_found': self.stats.products_found,
            'fetch_attempts': self.stats.fetch_attempts,
            'retries': self.stats.retries,
            'errors': self.stats.errors,
            'abandoned_urls': self.stats.abandoned_urls,
            'visited_urls': len(self.url_frontier.visited),
            'text_blocks': self.results.text_count,
            'elapsed_time': self.stats.elapsed_time,
            'is_running': self.is_running
        }
