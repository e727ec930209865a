"""
URL Frontier implementation for deciding which URLs a crawl job visits.
Owns the visited set and the link-following policy.
"""

import threading
import time
from typing import Callable, Dict, Optional, Set
from urllib.parse import urlparse
from dataclasses import dataclass, field

from ..utils.config import CrawlConfig
from ..utils.logger import get_crawler_logger


SKIPPED_EXTENSIONS = ('.png', '.jpg', '.mp3', '.mp4')


class CrawlError(Exception):
    """Raised when a crawl cannot be started."""
    pass


@dataclass
class URLTask:
    """Represents a URL admitted for crawling."""
    url: str
    depth: int
    parent_url: Optional[str] = None
    discovered_time: float = field(default_factory=time.time)


def normalize_sort_order(url: str) -> str:
    """
    Collapse sort-order variants of a URL by removing "asc" and "desc".

    This is a blind substring removal, so it also alters URLs that contain
    those letters elsewhere (e.g. "/description" becomes "/ription").
    """
    return url.replace("asc", "").replace("desc", "")


class VisitedSet:
    """Set of normalized URLs with an atomic test-and-insert."""

    def __init__(self):
        self._urls: Set[str] = set()
        self._lock = threading.Lock()

    def add(self, url: str) -> bool:
        """Insert url. Returns True only for the caller that inserted it."""
        with self._lock:
            if url in self._urls:
                return False
            self._urls.add(url)
            return True

    def add_within_limit(self, url: str, limit: Optional[int]) -> Optional[bool]:
        """
        Insert url unless the set already holds ``limit`` entries.

        Returns None when the limit was reached, otherwise the result of add.
        """
        with self._lock:
            if limit is not None and len(self._urls) >= limit:
                return None
            if url in self._urls:
                return False
            self._urls.add(url)
            return True

    def __contains__(self, url: str) -> bool:
        with self._lock:
            return url in self._urls

    def __len__(self) -> int:
        with self._lock:
            return len(self._urls)

    def snapshot(self) -> Set[str]:
        with self._lock:
            return set(self._urls)


class URLFrontier:
    """
    Decides whether a URL is admitted into a crawl and whether a link is followed.
    One frontier belongs to exactly one crawl job.
    """

    def __init__(self, config: CrawlConfig,
                 normalizer: Callable[[str], str] = normalize_sort_order,
                 job_id: Optional[str] = None):
        self.config = config
        self.normalizer = normalizer
        self.visited = VisitedSet()
        self.logger = get_crawler_logger(__name__, job_id=job_id)

        parsed = urlparse(config.base_url)
        if not parsed.scheme or not parsed.hostname:
            raise CrawlError(f"Cannot resolve base URL: {config.base_url!r}")
        self.base_host = parsed.hostname.lower()

        self.stats = {
            'admitted': 0,
            'rejected_duplicate': 0,
            'rejected_depth': 0,
            'rejected_limit': 0,
        }

    def _visit_limit(self) -> Optional[int]:
        limit = self.config.max_visited_links
        if limit is not None and limit > 0:
            return limit
        return None

    def admit(self, url: str, depth: int) -> bool:
        """
        Decide whether url at the given depth is crawled.

        A URL rejected for depth stays in the visited set and is never
        admitted later, even at a shallower depth.
        """
        normalized = self.normalizer(url)
        inserted = self.visited.add_within_limit(normalized, self._visit_limit())

        if inserted is None:
            self.stats['rejected_limit'] += 1
            return False

        if not inserted:
            self.stats['rejected_duplicate'] += 1
            self.logger.debug(f"URL already visited: {url} (depth {depth})")
            return False

        if self.config.max_depth is not None and depth > self.config.max_depth:
            self.stats['rejected_depth'] += 1
            return False

        self.stats['admitted'] += 1
        return True

    def _get_host(self, url: str) -> Optional[str]:
        try:
            host = urlparse(url).hostname
        except ValueError:
            return None
        return host.lower() if host else None

    def should_follow(self, url: str) -> bool:
        """Check whether a link found on a page belongs to this crawl."""
        base_url = self.config.base_url

        if self.config.crawl_whole_site:
            return self._get_host(url) == self.base_host

        if self.config.is_page_with_products:
            pattern = self.config.product_url_pattern
            return url.startswith(base_url) or bool(pattern and pattern in url)

        return url.startswith(base_url)

    @staticmethod
    def is_valid_resource(url: str) -> bool:
        """Reject links to images, audio and video files."""
        try:
            path = urlparse(url).path.lower()
        except ValueError:
            return False
        return not path.endswith(SKIPPED_EXTENSIONS)

    def get_stats(self) -> Dict[str, int]:
        """Get frontier statistics."""
        stats = dict(self.stats)
        stats['visited'] = len(self.visited)
        return stats
