"""Shared fixtures for the operator API tests."""

import os
import tempfile
import threading

import pytest

from partscrape.db import init_db
from partscrape.rate_limit import RateLimiter
from partscrape.scheduler import ScrapeScheduler
from web.app import create_app


class RecordingRunner:
    """Job runner that records job ids instead of crawling."""

    def __init__(self):
        self.calls = []
        self.called = threading.Event()

    def __call__(self, db_path, job_id):
        self.calls.append(job_id)
        self.called.set()
        return job_id


@pytest.fixture
def db_path():
    """Temporary initialized catalog database."""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    init_db(path)
    yield path
    os.unlink(path)


@pytest.fixture
def runner():
    return RecordingRunner()


@pytest.fixture
def scheduler(db_path, runner):
    sched = ScrapeScheduler(db_path=db_path, full_interval=3600, price_interval=600, runner=runner)
    yield sched
    sched.shutdown(wait=True)


@pytest.fixture
def app(db_path, scheduler, monkeypatch):
    monkeypatch.delenv("OPERATOR_USER", raising=False)
    monkeypatch.delenv("OPERATOR_PASS", raising=False)
    app = create_app(db_path=db_path, scheduler=scheduler, rate_limiter=RateLimiter(max_requests=1000))
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    """Create Flask test client."""
    with app.test_client() as test_client:
        yield test_client
