"""
Web page fetcher. Performs a single HTTP GET per call with a fixed timeout;
retrying is left to the caller.
"""

import asyncio
import aiohttp
import time
from typing import Optional, Dict
from dataclasses import dataclass
from aiohttp import ClientSession, ClientTimeout, ClientError

from ..utils.logger import get_crawler_logger


HTML_CONTENT_TYPES = (
    'text/html',
    'application/xhtml+xml',
    'application/xml',
    'text/xml',
)


class FetchError(Exception):
    """Raised when a page cannot be fetched."""

    def __init__(self, message: str, url: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


@dataclass
class FetchResult:
    """A fetched page. ``url`` is the final URL after redirects."""
    url: str
    status_code: int
    content: str
    requested_url: Optional[str] = None
    content_type: Optional[str] = None
    fetch_time: float = 0.0


class WebFetcher:
    """
    Fetches HTML pages over a shared aiohttp session.
    """

    def __init__(self, user_agent: str, request_timeout: float = 100.0,
                 max_content_size: int = 10 * 1024 * 1024, max_connections: int = 20,
                 job_id: Optional[str] = None):
        self.user_agent = user_agent
        self.request_timeout = request_timeout
        self.max_content_size = max_content_size
        self.max_connections = max_connections

        self.logger = get_crawler_logger(__name__, job_id=job_id)
        self.session: Optional[ClientSession] = None

        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'total_bytes_downloaded': 0
        }

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self):
        """Initialize the fetcher session."""
        if self.session is None:
            timeout = ClientTimeout(
                total=None,
                sock_connect=self.request_timeout,
                sock_read=self.request_timeout
            )
            headers = {'User-Agent': self.user_agent}

            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers=headers,
                connector=aiohttp.TCPConnector(
                    limit=self.max_connections,
                    ttl_dns_cache=300,
                    use_dns_cache=True
                )
            )
            self.logger.info("WebFetcher session started")

    async def close(self):
        """Close the fetcher session."""
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.info("WebFetcher session closed")

    async def fetch(self, url: str) -> FetchResult:
        """
        Fetch a single URL.

        Args:
            url: The URL to fetch

        Returns:
            FetchResult with the decoded HTML

        Raises:
            FetchError: on network errors, timeouts, HTTP error statuses,
                non-HTML content or oversized bodies
        """
        if self.session is None:
            await self.start()

        start_time = time.time()
        self.stats['total_requests'] += 1

        try:
            async with self.session.get(url) as response:
                if response.status >= 400:
                    raise FetchError(
                        f"HTTP error fetching URL. Status={response.status}, URL=[{url}]",
                        url, response.status
                    )

                content_type = response.headers.get('content-type', '').lower()
                if not self._is_html_content(content_type):
                    raise FetchError(
                        f"Unhandled content type. Must be text/* or application/xml. "
                        f"Mimetype={content_type}, URL=[{url}]",
                        url, response.status
                    )

                content = await self._read_content(response)

                self.stats['successful_requests'] += 1
                self.stats['total_bytes_downloaded'] += len(content)

                fetch_time = time.time() - start_time
                self.logger.debug(f"Fetched {url}: {response.status} ({len(content)} chars)")

                return FetchResult(
                    url=str(response.url),
                    status_code=response.status,
                    content=content,
                    requested_url=url,
                    content_type=content_type,
                    fetch_time=fetch_time
                )

        except FetchError:
            self.stats['failed_requests'] += 1
            raise
        except asyncio.TimeoutError as e:
            self.stats['failed_requests'] += 1
            raise FetchError(f"Read timed out fetching {url}", url) from e
        except ClientError as e:
            self.stats['failed_requests'] += 1
            raise FetchError(f"Client error: {e}", url) from e
        except ValueError as e:
            # Malformed URLs are rejected by yarl before any request is made
            self.stats['failed_requests'] += 1
            raise FetchError(f"Invalid URL {url}: {e}", url) from e

    def _is_html_content(self, content_type: str) -> bool:
        if not content_type:
            return True
        return any(html_type in content_type for html_type in HTML_CONTENT_TYPES)

    async def _read_content(self, response) -> str:
        """
        Read response content with a size limit.

        Raises:
            FetchError: if the body exceeds max_content_size
        """
        url = str(response.url)
        content_length = response.headers.get('content-length')
        if content_length and content_length.isdigit() and int(content_length) > self.max_content_size:
            raise FetchError(f"Content too large ({content_length} bytes): {url}", url, response.status)

        content_bytes = b''
        async for chunk in response.content.iter_chunked(8192):
            content_bytes += chunk
            if len(content_bytes) > self.max_content_size:
                raise FetchError(f"Content exceeded size limit during reading: {url}", url, response.status)

        encoding = response.charset or 'utf-8'
        try:
            return content_bytes.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            for fallback_encoding in ['utf-8', 'cp1252']:
                try:
                    return content_bytes.decode(fallback_encoding)
                except UnicodeDecodeError:
                    continue

            return content_bytes.decode('utf-8', errors='ignore')

    def get_stats(self) -> Dict[str, int]:
        """Get fetcher statistics."""
        return self.stats.copy()
