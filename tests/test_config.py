"""
Tests for configuration loading and validation.
"""

import dataclasses

import pytest

from site_scraper.utils.config import ConfigError, CrawlConfig, load_config, load_selectors


def write(tmp_path, text: str, name: str = "config.yaml") -> str:
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_negative_visit_limit_is_rejected():
    with pytest.raises(ConfigError):
        CrawlConfig(base_url="https://shop.test/", max_visited_links=-1)


def test_negative_visit_limit_rejected_on_replace():
    config = CrawlConfig(base_url="https://shop.test/")
    with pytest.raises(ConfigError):
        dataclasses.replace(config, max_visited_links=-5)


def test_crawl_config_is_immutable():
    config = CrawlConfig(base_url="https://shop.test/")
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.max_depth = 3


def test_minimal_config_uses_defaults(tmp_path):
    config = load_config(write(tmp_path, "crawler:\n  base_url: https://shop.test/\n"))
    assert config.crawler.base_url == "https://shop.test/"
    assert config.crawler.should_use_retry is False
    assert config.fetcher.request_timeout == 100.0
    assert config.retry.max_attempts == 3
    assert config.retry.delay == 5.0
    assert config.retry.transient_markers == ['500', '502', '508', 'timed out']
    assert config.logging.job_buffer_size == 100


def test_full_crawler_section(tmp_path):
    config = load_config(write(tmp_path, """
crawler:
  base_url: https://shop.test/
  is_page_with_products: true
  product_url_pattern: /product/
  max_visited_links: 50
  max_depth: 2
  should_use_retry: true
  product_field_selectors:
    name: h1
    price: .price
workers:
  count: 3
"""))
    assert config.crawler.product_field_selectors == {'name': 'h1', 'price': '.price'}
    assert config.crawler.max_depth == 2
    assert config.workers.count == 3


def test_selectors_file_is_loaded(tmp_path):
    selectors = write(tmp_path, '{"name": "h1", "price": ".price", "brand": null}', "selectors.json")
    config = load_config(write(tmp_path, f"crawler:\n  base_url: https://shop.test/\n  selectors_file: {selectors}\n"))
    assert config.crawler.product_field_selectors == {'name': 'h1', 'price': '.price'}


def test_missing_crawler_section(tmp_path):
    with pytest.raises(ConfigError):
        load_config(write(tmp_path, "workers:\n  count: 2\n"))


def test_unknown_key(tmp_path):
    with pytest.raises(ConfigError):
        load_config(write(tmp_path, "crawler:\n  base_url: https://shop.test/\n  speed: 11\n"))


@pytest.mark.parametrize("section", [
    "workers:\n  count: 0\n",
    "retry:\n  max_attempts: 0\n",
    "retry:\n  delay: -1\n",
    "fetcher:\n  request_timeout: 0\n",
    "workers:\n  max_queue_size: 0\n",
    "logging:\n  job_buffer_size: 0\n",
])
def test_invalid_values(tmp_path, section):
    with pytest.raises(ConfigError):
        load_config(write(tmp_path, "crawler:\n  base_url: https://shop.test/\n" + section))


def test_missing_file():
    with pytest.raises(FileNotFoundError):
        load_config("/nonexistent/config.yaml")


def test_selectors_must_be_mapping(tmp_path):
    with pytest.raises(ConfigError):
        load_selectors(write(tmp_path, "- h1\n- .price\n", "selectors.yaml"))
