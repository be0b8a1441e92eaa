"""Shared fixtures."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import pytest

from chatlink.config import ClientConfig
from test_helpers import BASE_URL, FakeApi, FakeClock, RecordingSleep


@pytest.fixture
def api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def sleeps() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig(
        base_url=BASE_URL,
        user_id="tester",
        timeout_sec=5,
        max_attempts=3,
        retry_delay_sec=0.01,
    )


@pytest.fixture(autouse=True)
def _reset_logging_disable():
    """The CLI disables logging globally when no log file is given."""
    yield
    logging.disable(logging.NOTSET)
