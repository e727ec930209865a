"""
Monitoring and metrics collection for the site scraper.
"""

import time
import logging
from typing import Dict, Optional, Any
from dataclasses import dataclass

from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry, generate_latest
from prometheus_client import start_http_server


@dataclass
class Metric:
    """Latest value of one metric."""
    name: str
    description: str
    metric_type: str  # counter, gauge, histogram
    current_value: float = 0.0


class MetricsCollector:
    """Collects and manages crawl metrics for one job."""

    def __init__(self, enable_prometheus: bool = False, prometheus_port: int = 8000):
        self.logger = logging.getLogger(__name__)
        self.metrics: Dict[str, Metric] = {}
        self.enable_prometheus = enable_prometheus
        self.prometheus_port = prometheus_port

        self.prometheus_registry: Optional[CollectorRegistry] = None
        self.prometheus_metrics = {}

        if self.enable_prometheus:
            self._setup_prometheus()

    def _setup_prometheus(self):
        """Setup Prometheus metrics on a registry owned by this collector."""
        self.prometheus_registry = CollectorRegistry()

        self.prometheus_metrics = {
            'pages_crawled_total': Counter(
                'scraper_pages_crawled_total',
                'Total number of pages fetched and extracted',
                registry=self.prometheus_registry
            ),
            'products_found_total': Counter(
                'scraper_products_found_total',
                'Total number of product records extracted',
                registry=self.prometheus_registry
            ),
            'errors_total': Counter(
                'scraper_errors_total',
                'Total number of crawl errors',
                ['error_type'],
                registry=self.prometheus_registry
            ),
            'retries_total': Counter(
                'scraper_retries_total',
                'Total number of fetch retries',
                registry=self.prometheus_registry
            ),
            'response_time_seconds': Histogram(
                'scraper_response_time_seconds',
                'Response time for HTTP requests',
                registry=self.prometheus_registry
            ),
            'queue_size': Gauge(
                'scraper_queue_size',
                'Number of admitted URLs waiting in the work queue',
                registry=self.prometheus_registry
            ),
            'active_workers': Gauge(
                'scraper_active_workers',
                'Number of crawl workers currently processing a URL',
                registry=self.prometheus_registry
            ),
        }

        self.logger.info("Prometheus metrics initialized")

    def start_prometheus_server(self):
        """Start Prometheus metrics HTTP server."""
        if not self.enable_prometheus:
            return

        try:
            start_http_server(self.prometheus_port, registry=self.prometheus_registry)
            self.logger.info(f"Prometheus metrics server started on port {self.prometheus_port}")
        except OSError as e:
            self.logger.error(f"Failed to start Prometheus server: {e}")

    def record_metric(self, name: str, value: float, labels: Optional[Dict[str, str]] = None,
                      description: str = "", metric_type: str = "gauge", increment: float = 0.0):
        """Record a metric value."""
        labels = labels or {}

        if name not in self.metrics:
            self.metrics[name] = Metric(
                name=name,
                description=description,
                metric_type=metric_type
            )

        metric = self.metrics[name]
        metric.current_value = value

        if self.enable_prometheus and name in self.prometheus_metrics:
            prom_metric = self.prometheus_metrics[name]
            if labels:
                prom_metric = prom_metric.labels(**labels)

            if metric_type == 'counter':
                prom_metric.inc(increment)
            elif metric_type == 'histogram':
                prom_metric.observe(value)
            else:
                prom_metric.set(value)

    def increment_counter(self, name: str, labels: Optional[Dict[str, str]] = None,
                          description: str = "", amount: float = 1.0):
        """Increment a counter metric."""
        current_value = 0.0
        if name in self.metrics:
            current_value = self.metrics[name].current_value

        self.record_metric(name, current_value + amount, labels, description, "counter", amount)

    def set_gauge(self, name: str, value: float, labels: Optional[Dict[str, str]] = None,
                  description: str = ""):
        """Set a gauge metric value."""
        self.record_metric(name, value, labels, description, "gauge")

    def observe_histogram(self, name: str, value: float, labels: Optional[Dict[str, str]] = None,
                          description: str = ""):
        """Record a histogram observation."""
        self.record_metric(name, value, labels, description, "histogram")

    def get_current_values(self) -> Dict[str, float]:
        """Get current values of all metrics."""
        return {name: metric.current_value for name, metric in self.metrics.items()}

    def export_prometheus(self) -> bytes:
        """Render the Prometheus exposition text for this collector."""
        if not self.enable_prometheus:
            return b''
        return generate_latest(self.prometheus_registry)


class CrawlerMonitor:
    """High-level monitoring interface for one crawl."""

    def __init__(self, metrics_collector: Optional[MetricsCollector] = None):
        self.metrics = metrics_collector or MetricsCollector()
        self.start_time = time.time()

    def record_page_crawled(self, response_time: float):
        """Record a successfully fetched and extracted page."""
        self.metrics.increment_counter('pages_crawled_total', description='Pages crawled')
        self.metrics.observe_histogram('response_time_seconds', response_time,
                                       description='HTTP response time')

    def record_product(self):
        self.metrics.increment_counter('products_found_total', description='Products found')

    def record_retry(self):
        self.metrics.increment_counter('retries_total', description='Fetch retries')

    def record_error(self, error_type: str):
        """Record an error event."""
        self.metrics.increment_counter('errors_total', {'error_type': error_type}, 'Crawl errors')

    def update_queue_size(self, size: int):
        self.metrics.set_gauge('queue_size', size, description='URLs in queue')

    def update_active_workers(self, count: int):
        self.metrics.set_gauge('active_workers', count, description='Active workers')

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics."""
        current_values = self.metrics.get_current_values()
        runtime = time.time() - self.start_time

        return {
            'runtime_seconds': runtime,
            'metrics': current_values,
            'rates': {
                'pages_per_minute': current_values.get('pages_crawled_total', 0) / (runtime / 60) if runtime > 0 else 0,
            }
        }
