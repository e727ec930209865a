"""
Tests for job-scoped logging.
"""

import json
import logging

from site_scraper.utils.logger import JSONFormatter, JobLogBuffer, get_crawler_logger


def test_job_buffer_keeps_newest_messages():
    name = "site_scraper.tests.buffer"
    logging.getLogger(name).setLevel(logging.INFO)
    buffer = JobLogBuffer("job-1", capacity=3).attach(name)
    try:
        log = get_crawler_logger(name, job_id="job-1")
        for i in range(5):
            log.info(f"message {i}")
    finally:
        buffer.detach(name)

    assert buffer.get_messages() == [
        "[Job job-1] message 2",
        "[Job job-1] message 3",
        "[Job job-1] message 4",
    ]


def test_job_buffer_ignores_other_jobs():
    name = "site_scraper.tests.isolation"
    logging.getLogger(name).setLevel(logging.INFO)
    buffer = JobLogBuffer("job-a").attach(name)
    try:
        get_crawler_logger(name, job_id="job-b").info("not mine")
        logging.getLogger(name).info("untagged")
        get_crawler_logger(name, job_id="job-a").info("mine")
    finally:
        buffer.detach(name)

    assert buffer.get_messages() == ["[Job job-a] mine"]
    buffer.clear()
    assert buffer.get_messages() == []


def test_json_formatter_includes_job_id():
    record = logging.LogRecord("site_scraper", logging.INFO, __file__, 1, "hello", None, None)
    record.job_id = "job-9"
    data = json.loads(JSONFormatter().format(record))
    assert data['message'] == "hello"
    assert data['job_id'] == "job-9"
    assert data['level'] == "INFO"


def test_attach_lowers_quiet_logger_until_last_detach():
    name = "site_scraper.tests.levels"
    logger = logging.getLogger(name)
    logger.setLevel(logging.WARNING)

    first = JobLogBuffer("job-1").attach(name)
    second = JobLogBuffer("job-2").attach(name)
    assert logger.level == logging.INFO

    first.detach(name)
    get_crawler_logger(name, job_id="job-2").info("still captured")
    assert second.get_messages() == ["[Job job-2] still captured"]

    second.detach(name)
    assert logger.level == logging.WARNING


def test_attach_keeps_verbose_logger_level():
    name = "site_scraper.tests.verbose"
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)

    buffer = JobLogBuffer("job-1").attach(name)
    buffer.detach(name)

    assert logger.level == logging.DEBUG
