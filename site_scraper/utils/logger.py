"""
Logging utilities for the site scraper.
"""

import logging
import logging.handlers
import json
import sys
import threading
from collections import deque
from pathlib import Path
from typing import Dict, Any, List, Optional
from datetime import datetime, timezone


PACKAGE_LOGGER = 'site_scraper'

# logger name -> (attached buffers, level to restore)
_lowered_levels: Dict[str, tuple] = {}
_attach_lock = threading.Lock()


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        job_id = getattr(record, 'job_id', None)
        if job_id is not None:
            log_entry['job_id'] = job_id

        return json.dumps(log_entry, ensure_ascii=False)


class CrawlerLogAdapter(logging.LoggerAdapter):
    """Logger adapter that tags every record with the crawl job id."""

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None):
        super().__init__(logger, extra or {})

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        """Add job context to log messages."""
        if 'extra' not in kwargs:
            kwargs['extra'] = {}

        kwargs['extra'].update(self.extra)

        job_id = self.extra.get('job_id')
        if job_id is not None:
            msg = f"[Job {job_id}] {msg}"

        return msg, kwargs


class PerformanceFilter(logging.Filter):
    """Filter to suppress noisy third-party logs."""

    def __init__(self, suppress_modules: Optional[list] = None):
        super().__init__()
        self.suppress_modules = suppress_modules or [
            'aiohttp.access',
            'aiohttp.client',
            'urllib3.connectionpool',
        ]

    def filter(self, record: logging.LogRecord) -> bool:
        """Filter out noisy log records."""
        if any(record.name.startswith(module) for module in self.suppress_modules):
            return False

        if record.levelno == logging.DEBUG:
            if 'connection pool' in record.getMessage().lower():
                return False

        return True


class JobLogBuffer(logging.Handler):
    """
    Keeps the most recent log messages of one crawl job.

    Records are matched on the ``job_id`` attribute set by CrawlerLogAdapter.
    The buffer has a fixed capacity and drops the oldest message when full.
    """

    def __init__(self, job_id: str, capacity: int = 100, level: int = logging.NOTSET):
        super().__init__(level)
        self.job_id = job_id
        self.capacity = capacity
        self._messages: deque = deque(maxlen=capacity)
        self.setFormatter(logging.Formatter('%(message)s'))

    def emit(self, record: logging.LogRecord):
        if getattr(record, 'job_id', None) != self.job_id:
            return
        try:
            self._messages.append(self.format(record))
        except Exception:
            self.handleError(record)

    def get_messages(self) -> List[str]:
        """Return buffered messages, oldest first."""
        self.acquire()
        try:
            return list(self._messages)
        finally:
            self.release()

    def clear(self):
        self.acquire()
        try:
            self._messages.clear()
        finally:
            self.release()

    def attach(self, logger_name: str = PACKAGE_LOGGER) -> 'JobLogBuffer':
        """
        Start capturing records from ``logger_name``.

        A logger left at the default WARNING threshold would never hand INFO
        records to the buffer, so it is lowered to INFO while any buffer is
        attached and restored when the last one detaches.
        """
        logger = logging.getLogger(logger_name)
        with _attach_lock:
            count, previous = _lowered_levels.get(logger_name, (0, None))
            if count == 0 and logger.getEffectiveLevel() > logging.INFO:
                previous = logger.level
                logger.setLevel(logging.INFO)
            _lowered_levels[logger_name] = (count + 1, previous)
            logger.addHandler(self)
        return self

    def detach(self, logger_name: str = PACKAGE_LOGGER):
        logger = logging.getLogger(logger_name)
        with _attach_lock:
            logger.removeHandler(self)
            count, previous = _lowered_levels.pop(logger_name, (1, None))
            if count > 1:
                _lowered_levels[logger_name] = (count - 1, previous)
            elif previous is not None:
                logger.setLevel(previous)


def setup_logging(config: Dict[str, Any],
                  enable_json: bool = False,
                  enable_performance_filtering: bool = True) -> logging.Logger:
    """
    Setup logging for the scraper.

    Args:
        config: Logging configuration dictionary
        enable_json: Enable JSON formatted logging
        enable_performance_filtering: Enable filtering of noisy logs

    Returns:
        Configured root logger
    """
    log_file = Path(config.get('file', 'logs/scraper.log'))
    log_file.parent.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.get('level', 'INFO').upper()))

    root_logger.handlers.clear()

    if enable_json:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            config.get('format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)

    if enable_performance_filtering:
        console_handler.addFilter(PerformanceFilter())

    root_logger.addHandler(console_handler)

    # File handler with rotation
    file_handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=50 * 1024 * 1024,  # 50MB
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)

    if enable_performance_filtering:
        file_handler.addFilter(PerformanceFilter())

    root_logger.addHandler(file_handler)

    third_party_loggers = {
        'aiohttp': logging.WARNING,
        'urllib3': logging.WARNING,
        'asyncio': logging.WARNING,
    }

    for logger_name, level in third_party_loggers.items():
        logging.getLogger(logger_name).setLevel(level)

    root_logger.info("Logging system initialized")
    root_logger.info(f"Log file: {log_file}")
    root_logger.info(f"Log level: {config.get('level', 'INFO')}")

    return root_logger


def get_crawler_logger(name: str, **extra_context) -> CrawlerLogAdapter:
    """
    Get a crawler-specific logger with additional context.

    Args:
        name: Logger name
        **extra_context: Additional context fields to include in all log messages

    Returns:
        CrawlerLogAdapter instance
    """
    logger = logging.getLogger(name)
    return CrawlerLogAdapter(logger, extra_context)
