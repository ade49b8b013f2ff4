"""Pytest configuration and fixtures."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from docqueue.config import DocQueueConfig
from docqueue.memory_store import InMemoryDocumentStore
from docqueue.registry import ProcessorRegistry


class FixedClock:
    """Settable clock for deterministic timestamps."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def store():
    """Empty in-memory document store."""
    return InMemoryDocumentStore()


@pytest.fixture
def registry():
    """Empty processor registry."""
    return ProcessorRegistry()


@pytest.fixture
def fast_config():
    """Config with short polling intervals and retry delays."""
    return DocQueueConfig(
        max_concurrent_jobs=5,
        retry_delays=[0.01, 0.02, 0.03],
        idle_poll_seconds=0.01,
        busy_poll_seconds=0.01,
        error_backoff_seconds=0.01,
        cleanup_interval_seconds=3600,
    )


@pytest.fixture
def fixed_clock():
    """Clock pinned to 2024-05-01 12:00 UTC."""
    return FixedClock(datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def wait_until():
    """Poll an async predicate until it is truthy or the timeout elapses."""

    async def _wait_until(predicate, timeout: float = 3.0, interval: float = 0.01):
        deadline = asyncio.get_running_loop().time() + timeout
        while True:
            result = await predicate()
            if result:
                return result
            if asyncio.get_running_loop().time() > deadline:
                raise AssertionError("Condition not met before timeout")
            await asyncio.sleep(interval)

    return _wait_until


@pytest.fixture
def sample_job_data():
    """Sample job payload for testing."""
    return {
        "to": "test@example.com",
        "subject": "Hello",
        "body": "Test message",
    }
