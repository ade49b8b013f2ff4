"""Job queue engine: polls the document store and dispatches jobs to processors."""

import asyncio
import logging
from collections import defaultdict
from collections.abc import Awaitable
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, Union

from docqueue.config import DocQueueConfig
from docqueue.documents import DocumentStore, Filter, OrderBy
from docqueue.errors import InvalidJobStateError, JobNotFoundError, JobTimeoutError
from docqueue.models import (
    RUNNABLE_STATUSES,
    TERMINAL_STATUSES,
    Job,
    JobMetadata,
    JobPriority,
    JobStatus,
    QueueStats,
    utcnow,
)
from docqueue.registry import Processor, ProcessorFunc, ProcessorRegistry


def _error_message(error: BaseException) -> str:
    return str(error) or type(error).__name__


class JobQueue:
    """
    In-process job queue on top of a document store.

    A single polling loop picks the highest-priority, oldest runnable job,
    claims it with a conditional update, and hands it to the registered
    processor without waiting for it. Failures are retried on the configured
    backoff table until the job's ``max_attempts`` is reached.

    Only one JobQueue may poll a given collection: the claim is atomic per
    store, but nothing coordinates separate processes.

    Example:
        ```python
        registry = ProcessorRegistry()

        @registry.processor("email", concurrency=3, timeout=30)
        async def send_email(job):
            ...
            return {"sent": True}

        queue = JobQueue(InMemoryDocumentStore(), registry)
        job_id = await queue.add_job("email", {"to": "a@example.com"})
        job = await queue.get_job_status(job_id)
        await queue.stop()
        ```
    """

    def __init__(
        self,
        store: DocumentStore,
        registry: Optional[ProcessorRegistry] = None,
        config: Optional[DocQueueConfig] = None,
        logger: Optional[logging.Logger] = None,
        clock: Optional[Callable[[], datetime]] = None,
        auto_start: bool = True,
    ):
        """
        Args:
            store: Document store holding the job collection
            registry: Processors by job type. A fresh empty registry if None.
            config: Queue configuration (defaults if None)
            logger: Logger instance
            clock: Returns the current aware UTC time
            auto_start: Start the processing loop on the first add_job
        """
        self.store = store
        self.registry = registry if registry is not None else ProcessorRegistry()
        self.config = config or DocQueueConfig()
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock or utcnow
        self.auto_start = auto_start
        self.collection = self.config.jobs_collection

        self._running = False
        self._has_logged_start = False
        self._loop_task: Optional[asyncio.Task] = None
        self._cleanup_task: Optional[asyncio.Task] = None
        self._wake_event: Optional[asyncio.Event] = None
        self._active_jobs = 0
        self._active_by_type: dict[str, int] = defaultdict(int)
        self._job_tasks: set[asyncio.Task] = set()
        self._abandoned: set[asyncio.Future] = set()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def active_jobs(self) -> int:
        """Number of dispatched jobs that have not settled yet."""
        return self._active_jobs

    def register_processor(
        self,
        type: str,
        handler: ProcessorFunc,
        concurrency: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> Processor:
        """Register a processor for a job type, replacing any existing one."""
        return self.registry.register(
            type, handler, concurrency=concurrency, timeout=timeout
        )

    async def add_job(
        self,
        type: str,
        data: Any = None,
        *,
        priority: Union[JobPriority, str] = JobPriority.NORMAL,
        max_attempts: Optional[int] = None,
        scheduled_for: Optional[datetime] = None,
        user_id: Optional[str] = None,
        metadata: Optional[Union[JobMetadata, dict[str, Any]]] = None,
    ) -> str:
        """
        Add a job to the queue.

        Args:
            type: Job type, selects the processor
            data: Processor-specific payload
            priority: Advisory ordering key
            max_attempts: Attempt ceiling (config.max_retries if None)
            scheduled_for: Earliest run time (now if None)
            user_id: Optional owning user
            metadata: Optional source/description/tags

        Returns:
            str: The created job ID
        """
        now = self.clock()
        job = Job(
            type=type,
            status=JobStatus.PENDING,
            priority=priority,
            data=data if data is not None else {},
            attempts=0,
            max_attempts=max_attempts or self.config.max_retries,
            created_at=now,
            updated_at=now,
            scheduled_for=scheduled_for or now,
            user_id=user_id,
            metadata=metadata,
        )

        job_id = await self.store.add(self.collection, job.to_document())
        self.logger.info(f"Job added to queue: {job_id} ({type})")

        if self._running:
            self._wake()
        elif self.auto_start:
            await self.start()

        return job_id

    async def start(self) -> None:
        """Start the processing loop and the periodic cleanup sweep."""
        if self._running:
            return

        self._running = True
        self._wake_event = asyncio.Event()
        if not self._has_logged_start:
            self.logger.info("Job queue started")
            self._has_logged_start = True

        self._loop_task = asyncio.create_task(self._run())
        self._cleanup_task = asyncio.create_task(self._run_cleanup())

    async def stop(self) -> None:
        """
        Stop polling and wait for dispatched jobs to settle.

        Processor invocations abandoned after a timeout are cancelled.
        """
        if not self._running:
            return

        self._running = False

        loop_tasks = [t for t in (self._loop_task, self._cleanup_task) if t]
        for task in loop_tasks:
            task.cancel()
        await asyncio.gather(*loop_tasks, return_exceptions=True)
        self._loop_task = None
        self._cleanup_task = None

        if self._job_tasks:
            await asyncio.gather(*list(self._job_tasks), return_exceptions=True)

        for task in list(self._abandoned):
            task.cancel()

        self.logger.info("Job queue stopped")

    async def get_job_status(self, job_id: str) -> Optional[Job]:
        """Get the current job record, or None if it does not exist."""
        document = await self.store.get(self.collection, job_id)
        if document is None:
            return None
        return Job.from_document(document)

    async def get_queue_stats(self) -> QueueStats:
        """Count jobs per status. One store query per status."""
        counts = {}
        for status in JobStatus:
            counts[status.value] = await self.store.count(
                self.collection, [Filter("status", "==", status.value)]
            )
        return QueueStats(total=sum(counts.values()), **counts)

    async def list_jobs(
        self, status: Optional[Union[JobStatus, str]] = None, limit: int = 50
    ) -> list[Job]:
        """List jobs, newest first, optionally filtered by status."""
        filters = []
        if status:
            filters.append(Filter("status", "==", JobStatus(status).value))
        documents = await self.store.query(
            self.collection,
            filters=filters,
            order_by=[OrderBy("created_at", descending=True)],
            limit=limit,
        )
        return [Job.from_document(document) for document in documents]

    async def retry_job(self, job_id: str) -> str:
        """
        Queue a new copy of a failed job.

        Returns:
            str: The new job ID

        Raises:
            JobNotFoundError: If the job does not exist
            InvalidJobStateError: If the job is not failed
        """
        job = await self.get_job_status(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.status != JobStatus.FAILED:
            raise InvalidJobStateError(
                job_id, job.status, "Only failed jobs can be retried"
            )

        metadata = job.metadata.model_dump() if job.metadata else {}
        metadata.update(source="manual_retry", original_job_id=job.id)

        return await self.add_job(
            job.type,
            job.data,
            priority=job.priority,
            max_attempts=job.max_attempts,
            user_id=job.user_id,
            metadata=metadata,
        )

    async def cleanup_old_jobs(self, now: Optional[datetime] = None) -> int:
        """
        Delete completed and failed jobs older than the retention window.

        Returns the number of jobs deleted.
        """
        now = now or self.clock()
        cutoff = now - timedelta(days=self.config.cleanup_retention_days)

        documents = await self.store.query(
            self.collection,
            filters=[
                Filter("status", "in", TERMINAL_STATUSES),
                Filter("completed_at", "<", cutoff),
            ],
        )
        if not documents:
            return 0

        deleted = await self.store.batch_delete(
            self.collection, [document["id"] for document in documents]
        )
        self.logger.info(f"Cleaned up {deleted} old jobs")
        return deleted

    def _wake(self) -> None:
        if self._wake_event is not None:
            self._wake_event.set()

    async def _sleep(self, seconds: float) -> None:
        """Sleep until the timeout elapses or the loop is woken."""
        try:
            await asyncio.wait_for(self._wake_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
        self._wake_event.clear()

    async def _run(self) -> None:
        """Main processing loop."""
        while self._running:
            try:
                if self._active_jobs >= self.config.max_concurrent_jobs:
                    await self._sleep(self.config.busy_poll_seconds)
                    continue

                job = await self._get_next_job()
                if job is None:
                    await self._sleep(self.config.idle_poll_seconds)
                    continue

                processor = self.registry.get(job.type)
                if processor is None:
                    await self._mark_job_unroutable(job)
                    continue

                if not await self._claim_job(job):
                    self.logger.debug(f"Job {job.id} was claimed elsewhere, skipping")
                    continue

                self._dispatch(job, processor)

            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.logger.error(f"Error in job processing loop: {e}", exc_info=True)
                await asyncio.sleep(self.config.error_backoff_seconds)

    def _saturated_types(self) -> list[str]:
        """Job types whose processor concurrency limit is currently reached."""
        saturated = []
        for job_type, active in self._active_by_type.items():
            processor = self.registry.get(job_type)
            if processor and processor.concurrency is not None and active >= processor.concurrency:
                saturated.append(job_type)
        return saturated

    async def _get_next_job(self) -> Optional[Job]:
        """Get the highest-priority, oldest runnable job."""
        now = self.clock()
        filters = [
            Filter("status", "in", RUNNABLE_STATUSES),
            Filter("scheduled_for", "<=", now),
        ]
        saturated = self._saturated_types()
        if saturated:
            filters.append(Filter("type", "not_in", saturated))

        documents = await self.store.query(
            self.collection,
            filters=filters,
            order_by=[
                OrderBy("priority_rank", descending=True),
                OrderBy("created_at"),
            ],
            limit=1,
        )
        if not documents:
            return None
        return Job.from_document(documents[0])

    async def _claim_job(self, job: Job) -> bool:
        """Move a runnable job to processing, only if it is still runnable."""
        now = self.clock()
        claimed = await self.store.update_where(
            self.collection,
            job.id,
            [
                Filter("status", "in", RUNNABLE_STATUSES),
                Filter("scheduled_for", "<=", now),
            ],
            {
                "status": JobStatus.PROCESSING.value,
                "started_at": now,
                "updated_at": now,
            },
        )
        if claimed:
            job.status = JobStatus.PROCESSING.value
            job.started_at = now
            job.updated_at = now
        return claimed

    def _dispatch(self, job: Job, processor: Processor) -> None:
        self._active_jobs += 1
        self._active_by_type[job.type] += 1

        task = asyncio.create_task(self._process_job(job, processor))
        self._job_tasks.add(task)
        task.add_done_callback(lambda t: self._on_job_settled(t, job.type))

    def _on_job_settled(self, task: asyncio.Task, job_type: str) -> None:
        self._job_tasks.discard(task)
        self._active_jobs -= 1
        self._active_by_type[job_type] -= 1
        if self._active_by_type[job_type] <= 0:
            del self._active_by_type[job_type]
        self._wake()

    async def _process_job(self, job: Job, processor: Processor) -> None:
        """Run one claimed job and record its outcome."""
        timeout = (
            processor.timeout
            if processor.timeout is not None
            else self.config.job_timeout_seconds
        )

        try:
            try:
                result = await self._with_timeout(processor.handler(job), timeout)
            except Exception as e:
                self.logger.error(f"Job failed: {job.id} ({job.type}): {e}", exc_info=True)
                await self._handle_job_failure(job, _error_message(e))
                return

            await self._update_job_status(
                job.id,
                JobStatus.COMPLETED,
                completed_at=self.clock(),
                result=result,
            )
            self.logger.info(f"Job completed: {job.id} ({job.type})")

        except Exception as e:
            # The job stays in processing; nothing else will pick it up
            self.logger.error(
                f"Failed to record outcome of job {job.id}: {e}", exc_info=True
            )

    async def _with_timeout(self, awaitable: Awaitable[Any], timeout: Optional[float]) -> Any:
        """
        Await a processor call for at most ``timeout`` seconds.

        On timeout the call is left running and its result is discarded.
        """
        task = asyncio.ensure_future(awaitable)
        done, _ = await asyncio.wait({task}, timeout=timeout)
        if task in done:
            return task.result()

        self._abandoned.add(task)
        task.add_done_callback(self._forget_abandoned)
        raise JobTimeoutError()

    def _forget_abandoned(self, task: asyncio.Future) -> None:
        self._abandoned.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self.logger.debug(
                f"Abandoned processor call finished with error: {task.exception()}"
            )

    async def _handle_job_failure(self, job: Job, error: str) -> None:
        """Schedule a retry on the backoff table, or fail the job permanently."""
        attempts = job.attempts + 1
        now = self.clock()

        if attempts >= job.max_attempts:
            await self._update_job_status(
                job.id,
                JobStatus.FAILED,
                attempts=attempts,
                error=error,
                completed_at=now,
            )
            self.logger.error(
                f"Job failed permanently: {job.id} ({job.type}) after {attempts} attempts"
            )
            return

        delay = self.config.get_retry_delay(attempts)
        retry_at = now + timedelta(seconds=delay)

        await self._update_job_status(
            job.id,
            JobStatus.RETRYING,
            attempts=attempts,
            error=error,
            scheduled_for=retry_at,
        )
        self.logger.info(
            f"Job scheduled for retry: {job.id} (attempt {attempts}) in {delay}s"
        )

    async def _mark_job_unroutable(self, job: Job) -> None:
        """Fail a job no processor can handle. Retrying would never succeed."""
        now = self.clock()
        error = f"No processor found for job type: {job.type}"
        failed = await self.store.update_where(
            self.collection,
            job.id,
            [Filter("status", "in", RUNNABLE_STATUSES)],
            {
                "status": JobStatus.FAILED.value,
                "error": error,
                "completed_at": now,
                "updated_at": now,
            },
        )
        if failed:
            self.logger.error(f"Job failed permanently: {job.id} ({job.type}): {error}")

    async def _update_job_status(
        self, job_id: str, status: JobStatus, **fields: Any
    ) -> None:
        await self.store.update(
            self.collection,
            job_id,
            {"status": status.value, "updated_at": self.clock(), **fields},
        )

    async def _run_cleanup(self) -> None:
        """Periodic cleanup sweep."""
        while self._running:
            await asyncio.sleep(self.config.cleanup_interval_seconds)
            try:
                await self.cleanup_old_jobs()
            except Exception as e:
                self.logger.error(f"Error cleaning up old jobs: {e}", exc_info=True)
