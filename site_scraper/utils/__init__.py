"""
Utility modules for the site scraper.
"""

from .config import Config, ConfigError, ConfigManager, CrawlConfig, load_config, load_selectors

__all__ = ['Config', 'ConfigError', 'ConfigManager', 'CrawlConfig', 'load_config', 'load_selectors']
