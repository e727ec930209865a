"""
Web crawler core components.
"""

from .url_frontier import URLFrontier, URLTask, VisitedSet, CrawlError, normalize_sort_order
from .fetcher import WebFetcher, FetchResult, FetchError
from .parser import ContentParser, ParsedPage, Product, ProductExtractor, ExtractionError

__all__ = [
    'URLFrontier', 'URLTask', 'VisitedSet', 'CrawlError', 'normalize_sort_order',
    'WebFetcher', 'FetchResult', 'FetchError',
    'ContentParser', 'ParsedPage', 'Product', 'ProductExtractor', 'ExtractionError'
]
