"""
Shared fixtures for the site scraper tests.
"""

import asyncio
from typing import Dict, List, Optional, Set, Union

import pytest

from site_scraper.crawler.fetcher import FetchError, FetchResult
from site_scraper.utils.config import Config, CrawlConfig, OutputConfig, RetryConfig, WorkerConfig


class FakeFetcher:
    """
    In-memory fetcher. ``errors`` maps a URL to an error message, or to a
    list of messages consumed one per call (None in the list means success).
    ``delay`` makes every fetch take that long, and ``peak_in_flight`` records
    how many fetches ran at once.
    """

    def __init__(self, pages: Dict[str, str],
                 errors: Optional[Dict[str, Union[str, List[Optional[str]]]]] = None,
                 hang: Optional[Set[str]] = None,
                 delay: float = 0.0):
        self.pages = pages
        self.errors = errors or {}
        self.hang = hang or set()
        self.delay = delay
        self.calls: List[str] = []
        self.in_flight = 0
        self.peak_in_flight = 0
        self.started = False
        self.closed = False

    async def start(self):
        self.started = True

    async def close(self):
        self.closed = True

    async def fetch(self, url: str) -> FetchResult:
        self.calls.append(url)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            return await self._respond(url)
        finally:
            self.in_flight -= 1

    async def _respond(self, url: str) -> FetchResult:
        await asyncio.sleep(self.delay)

        if url in self.hang:
            await asyncio.Event().wait()

        error = self.errors.get(url)
        if isinstance(error, list):
            error = error.pop(0) if error else None
        if error:
            raise FetchError(error, url)

        if url not in self.pages:
            raise FetchError(f"HTTP error fetching URL. Status=404, URL=[{url}]", url, 404)

        return FetchResult(url=url, status_code=200, content=self.pages[url])


def page(body: str, title: str = "Page") -> str:
    return f"<html><head><title>{title}</title></head><body>{body}</body></html>"


@pytest.fixture
def make_config(tmp_path):
    def _make(crawler: Optional[CrawlConfig] = None, **crawler_kwargs) -> Config:
        if crawler is None:
            crawler_kwargs.setdefault('base_url', 'https://shop.test/')
            crawler = CrawlConfig(**crawler_kwargs)
        return Config(
            crawler=crawler,
            retry=RetryConfig(delay=0),
            workers=WorkerConfig(count=4, max_queue_size=100),
            output=OutputConfig(
                text_path=str(tmp_path / 'out' / 'all_website_info.txt'),
                products_path=str(tmp_path / 'out' / 'products.json'),
            ),
        )
    return _make
