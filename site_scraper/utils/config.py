"""
Configuration management for the site scraper.
"""

import yaml
import logging
from pathlib import Path
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field


class ConfigError(ValueError):
    """Raised when configuration values are invalid."""
    pass


PRODUCT_FIELDS = (
    'name',
    'price',
    'description',
    'availability',
    'specifications',
    'brand',
    'main_image_link',
)


@dataclass(frozen=True)
class CrawlConfig:
    """Immutable parameters of a single crawl job."""
    base_url: str
    crawl_whole_site: bool = False
    is_page_with_products: bool = False
    product_url_pattern: Optional[str] = None
    product_field_selectors: Optional[Dict[str, str]] = None
    max_visited_links: Optional[int] = None
    max_depth: Optional[int] = None
    should_use_retry: bool = False

    def __post_init__(self):
        if self.max_visited_links is not None and self.max_visited_links < 0:
            raise ConfigError("max_visited_links cannot be negative")

        if self.max_depth is not None and self.max_depth < 0:
            raise ConfigError("max_depth cannot be negative")

        if self.product_field_selectors is not None:
            unknown = set(self.product_field_selectors) - set(PRODUCT_FIELDS)
            if unknown:
                logging.getLogger(__name__).warning(
                    f"Ignoring unknown product fields: {sorted(unknown)}"
                )


@dataclass
class FetcherConfig:
    """Configuration for the page fetcher."""
    request_timeout: float = 100.0
    user_agent: str = "site-scraper/1.0"
    max_content_size: int = 10 * 1024 * 1024


@dataclass
class RetryConfig:
    """Retry policy for transient fetch errors."""
    max_attempts: int = 3
    delay: float = 5.0
    transient_markers: List[str] = field(
        default_factory=lambda: ['500', '502', '508', 'timed out']
    )


@dataclass
class WorkerConfig:
    """Configuration for the crawl worker pool."""
    count: int = 10
    max_queue_size: int = 1000


@dataclass
class OutputConfig:
    """Where crawl results are written."""
    text_path: str = "output/all_website_info.txt"
    products_path: str = "output/products.json"


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"
    file: str = "logs/scraper.log"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    job_buffer_size: int = 100


@dataclass
class MonitoringConfig:
    """Configuration for monitoring."""
    prometheus_port: int = 8000
    metrics_enabled: bool = False


@dataclass
class Config:
    """Main configuration class."""
    crawler: CrawlConfig
    fetcher: FetcherConfig = field(default_factory=FetcherConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    workers: WorkerConfig = field(default_factory=WorkerConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: str = "config.yaml"):
        self.config_path = Path(config_path)
        self._config: Optional[Config] = None

    def load_config(self) -> Config:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        with open(self.config_path, 'r', encoding='utf-8') as file:
            config_data = yaml.safe_load(file) or {}

        self._config = build_config(config_data)
        validate_config(self._config)
        return self._config

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ConfigError("Configuration not loaded. Call load_config() first.")
        return self._config


def build_config(config_data: Dict[str, Any]) -> Config:
    """Build a Config from a parsed YAML mapping."""
    if 'crawler' not in config_data:
        raise ConfigError("Configuration must contain a 'crawler' section")

    try:
        crawler_data = dict(config_data['crawler'])
        selectors_file = crawler_data.pop('selectors_file', None)
        if selectors_file and not crawler_data.get('product_field_selectors'):
            crawler_data['product_field_selectors'] = load_selectors(selectors_file)

        return Config(
            crawler=CrawlConfig(**crawler_data),
            fetcher=FetcherConfig(**(config_data.get('fetcher') or {})),
            retry=RetryConfig(**(config_data.get('retry') or {})),
            workers=WorkerConfig(**(config_data.get('workers') or {})),
            output=OutputConfig(**(config_data.get('output') or {})),
            logging=LoggingConfig(**(config_data.get('logging') or {})),
            monitoring=MonitoringConfig(**(config_data.get('monitoring') or {})),
        )
    except TypeError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def validate_config(config: Config):
    """Validate configuration values."""
    if not config.crawler.base_url:
        raise ConfigError("base_url must be provided")

    if config.fetcher.request_timeout <= 0:
        raise ConfigError("request_timeout must be positive")

    if config.retry.max_attempts < 1:
        raise ConfigError("retry.max_attempts must be at least 1")

    if config.retry.delay < 0:
        raise ConfigError("retry.delay must be non-negative")

    if config.workers.count < 1:
        raise ConfigError("workers.count must be at least 1")

    if config.workers.max_queue_size < 1:
        raise ConfigError("workers.max_queue_size must be at least 1")

    if config.logging.job_buffer_size < 1:
        raise ConfigError("logging.job_buffer_size must be at least 1")

    logging.getLogger(__name__).debug("Configuration validation passed")


def load_selectors(path: str) -> Dict[str, str]:
    """
    Load a field to CSS selector mapping from a YAML or JSON file.

    Args:
        path: Path to the mapping file

    Returns:
        Mapping of product field name to CSS selector
    """
    selectors_path = Path(path)
    if not selectors_path.exists():
        raise ConfigError(f"Selectors file not found: {selectors_path}")

    with open(selectors_path, 'r', encoding='utf-8') as file:
        data = yaml.safe_load(file) or {}

    if not isinstance(data, dict):
        raise ConfigError(f"Selectors file must contain a mapping: {selectors_path}")

    return {str(key): str(value) for key, value in data.items() if value}


def load_config(config_path: str = "config.yaml") -> Config:
    """Load configuration from file."""
    return ConfigManager(config_path).load_config()
