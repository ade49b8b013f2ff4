"""Unit tests for registry module."""

import pytest

from docqueue.models import Job
from docqueue.registry import ProcessorRegistry


@pytest.mark.asyncio
async def test_registry_processor_decorator():
    """Test registering processors with decorator."""
    registry = ProcessorRegistry()

    @registry.processor("email", concurrency=3, timeout=30)
    async def send_email(job):
        return {"result": "success"}

    processor = registry.get("email")
    assert processor is not None
    assert processor.concurrency == 3
    assert processor.timeout == 30

    result = await processor.handler(Job(type="email"))
    assert result == {"result": "success"}


def test_registry_decorator_returns_function():
    """Test that the decorator leaves the function usable."""
    registry = ProcessorRegistry()

    @registry.processor("sync")
    async def sync(job):
        pass

    assert registry.get("sync").handler is sync
    assert registry.get("sync").concurrency is None
    assert registry.get("sync").timeout is None


def test_registry_get_nonexistent_processor():
    """Test getting a processor that doesn't exist."""
    registry = ProcessorRegistry()

    assert registry.get("nonexistent") is None
    assert "nonexistent" not in registry


def test_registry_all_processors():
    """Test getting all registered processors."""
    registry = ProcessorRegistry()

    async def handler(job):
        pass

    registry.register("processor1", handler)
    registry.register("processor2", handler)

    all_processors = registry.all_processors()
    assert len(all_processors) == 2
    assert "processor1" in all_processors
    assert "processor2" in registry

    # Returned mapping is a copy
    all_processors.clear()
    assert len(registry.all_processors()) == 2


def test_registry_processor_overwrites():
    """Test that registering the same type replaces the processor."""
    registry = ProcessorRegistry()

    async def first(job):
        return "first"

    async def second(job):
        return "second"

    registry.register("test", first, concurrency=1)
    registry.register("test", second)

    processor = registry.get("test")
    assert processor.handler is second
    assert processor.concurrency is None


def test_registry_rejects_invalid_concurrency():
    """Test that a concurrency below one is rejected."""
    registry = ProcessorRegistry()

    async def handler(job):
        pass

    with pytest.raises(ValueError):
        registry.register("test", handler, concurrency=0)
