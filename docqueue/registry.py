"""Job processor registry."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Optional

from docqueue.models import Job

ProcessorFunc = Callable[[Job], Awaitable[Any]]


@dataclass
class Processor:
    """
    Async handler for one job type.

    ``concurrency`` caps how many jobs of this type run at once (None means
    only the global cap applies). ``timeout`` overrides the queue's default
    per-job timeout, in seconds.
    """

    type: str
    handler: ProcessorFunc
    concurrency: Optional[int] = None
    timeout: Optional[float] = None


class ProcessorRegistry:
    """Registry for job processors. One processor per job type."""

    def __init__(self):
        self._processors: dict[str, Processor] = {}

    def register(
        self,
        type: str,
        handler: ProcessorFunc,
        concurrency: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> Processor:
        """Register a processor, silently replacing any previous one for the type."""
        if concurrency is not None and concurrency < 1:
            raise ValueError(f"concurrency for {type} must be at least 1")
        processor = Processor(
            type=type, handler=handler, concurrency=concurrency, timeout=timeout
        )
        self._processors[type] = processor
        return processor

    def processor(
        self,
        type: str,
        concurrency: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        """
        Decorator to register a job processor.

        Usage:
            @registry.processor("email", concurrency=3, timeout=30)
            async def send_email(job):
                ...
        """

        def decorator(func: ProcessorFunc):
            self.register(type, func, concurrency=concurrency, timeout=timeout)
            return func

        return decorator

    def get(self, type: str) -> Optional[Processor]:
        """Get a processor by job type."""
        return self._processors.get(type)

    def all_processors(self) -> dict[str, Processor]:
        """Get all registered processors."""
        return self._processors.copy()

    def __contains__(self, type: str) -> bool:
        return type in self._processors
