"""
Storage layer for crawl results.
"""

from .results import ResultStore, SaveError

__all__ = ['ResultStore', 'SaveError']
