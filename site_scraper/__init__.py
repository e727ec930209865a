"""
Site Scraper

Crawls a web site from a base URL and collects page text and product records.
"""

__version__ = "1.0.0"
__description__ = "An asyncio site crawler with text and product extraction"
