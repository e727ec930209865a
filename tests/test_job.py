"""
Tests for the crawl job lifecycle: completion, force-end, failure and logs.
"""

import asyncio
import json
import logging
from pathlib import Path
from unittest import mock

import pytest

from conftest import FakeFetcher, page
from site_scraper.crawler.job import CrawlJob, JobStatus


BASE = "https://shop.test/"


async def wait_for(predicate, timeout: float = 5.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_completed_job_saves_text_and_products(make_config):
    config = make_config(product_field_selectors={'name': 'h1', 'price': '.price'})
    fetcher = FakeFetcher({
        BASE: page('<a href="/product/1">Widget</a>'),
        BASE + "product/1": page('<h1>Widget</h1><span class="price">$9.99</span>'),
    })
    job = CrawlJob(config, job_id="job-1", fetcher=fetcher)

    status = await job.run()

    assert status == JobStatus.COMPLETED
    assert job.saved is True
    text = Path(config.output.text_path).read_text(encoding="utf-8")
    assert len(text.split("\n\n")) == 2
    products = json.loads(Path(config.output.products_path).read_text(encoding="utf-8"))
    assert products[0]['name'] == "Widget"
    assert products[0]['url'] == BASE + "product/1"
    assert json.loads(job.get_products_json()) == products


@pytest.mark.asyncio
async def test_products_file_skipped_without_products(make_config):
    config = make_config()
    job = CrawlJob(config, fetcher=FakeFetcher({BASE: page("Home")}))

    await job.run()

    assert Path(config.output.text_path).exists()
    assert not Path(config.output.products_path).exists()
    assert job.get_result_text().endswith("Home")


@pytest.mark.asyncio
async def test_force_end_saves_partial_results_once(make_config):
    config = make_config()
    fetcher = FakeFetcher(
        {
            BASE: page('<a href="/p1">1</a><a href="/p2">2</a><a href="/slow">s</a>'),
            BASE + "p1": page("First"),
            BASE + "p2": page("Second"),
        },
        hang={BASE + "slow"},
    )
    job = CrawlJob(config, job_id="job-2", fetcher=fetcher)
    run_task = asyncio.create_task(job.run())

    await wait_for(lambda: job.scheduler is not None and job.scheduler.stats.pages_crawled == 3)
    assert job.is_running

    saved = await job.force_end()
    status = await asyncio.wait_for(run_task, timeout=5)

    assert saved is True
    assert status == JobStatus.CANCELLED
    assert not job.scheduler.is_running
    blocks = Path(config.output.text_path).read_text(encoding="utf-8").split("\n\n")
    assert len(blocks) == 3

    with mock.patch.object(job.scheduler.results, 'save_text') as save_text:
        assert job.save_results() is True
        assert await job.force_end() is True
    save_text.assert_not_called()


@pytest.mark.asyncio
async def test_force_end_before_run(make_config):
    fetcher = FakeFetcher({BASE: page("Home")})
    job = CrawlJob(make_config(), fetcher=fetcher)

    assert await job.force_end() is False
    assert await job.run() == JobStatus.CANCELLED
    assert fetcher.calls == []


@pytest.mark.asyncio
async def test_unresolvable_base_url_fails_job(make_config):
    job = CrawlJob(make_config(base_url="no-scheme"), fetcher=FakeFetcher({}))

    status = await job.run()

    assert status == JobStatus.FAILED
    assert "no-scheme" in job.error
    assert job.summary()['status'] == "failed"


@pytest.mark.asyncio
async def test_per_page_errors_still_complete(make_config):
    fetcher = FakeFetcher({BASE: page('<a href="/missing">x</a>')})
    job = CrawlJob(make_config(), fetcher=fetcher)

    assert await job.run() == JobStatus.COMPLETED
    assert job.summary()['errors'] == 1


@pytest.mark.asyncio
async def test_save_failure_is_reported(make_config, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("file")
    config = make_config()
    config.output.text_path = str(blocker / "all.txt")
    job = CrawlJob(config, fetcher=FakeFetcher({BASE: page("Home")}))

    assert await job.run() == JobStatus.COMPLETED
    assert job.saved is False
    assert job.get_result_text() == "Page Home"


@pytest.mark.asyncio
async def test_job_logs_are_buffered(make_config):
    config = make_config()
    config.logging.job_buffer_size = 5
    job = CrawlJob(config, job_id="job-logs", fetcher=FakeFetcher({BASE: page("Home")}))

    await job.run()

    logs = job.get_logs()
    assert 0 < len(logs) <= 5
    assert all(line.startswith("[Job job-logs]") for line in logs)
    assert logs[-1].endswith("Job finished with status completed")


@pytest.mark.asyncio
async def test_job_logs_captured_without_logging_setup(make_config):
    package_logger = logging.getLogger("site_scraper")
    package_logger.setLevel(logging.NOTSET)
    job = CrawlJob(make_config(), job_id="job-quiet", fetcher=FakeFetcher({BASE: page("Home")}))

    await job.run()

    logs = job.get_logs()
    assert any("Job started for" in line for line in logs)
    assert package_logger.level == logging.NOTSET


@pytest.mark.asyncio
async def test_component_logs_reach_job_buffer(make_config):
    job = CrawlJob(make_config(), job_id="job-parts", fetcher=FakeFetcher({BASE: page("Home")}))

    await job.run()

    logs = job.get_logs()
    assert any(line.startswith("[Job job-parts] All text data saved to") for line in logs)
