"""Cron-style scheduled tasks that enqueue jobs on the job queue."""

import asyncio
import copy
import logging
import re
from datetime import datetime, tzinfo
from typing import Any, Callable, Optional, Sequence

from dateutil import tz
from pydantic import ValidationError

from docqueue.cron import CronExpression, next_run_estimate
from docqueue.errors import CronNoMatchError, CronParseError, TaskNotFoundError
from docqueue.models import JobPriority, ScheduledTask, utcnow
from docqueue.queue import JobQueue

DEFAULT_SCHEDULED_TASKS: list[dict[str, Any]] = [
    {
        "name": "Daily Vendor Data Sync",
        "description": "Sync vendor data from Google Places API daily",
        "cron_expression": "0 2 * * *",
        "job_type": "vendor_sync",
        "job_data": {"sync_all": True},
        "is_active": True,
    },
    {
        "name": "Weekly Data Cleanup",
        "description": "Clean up old completed jobs and temporary data",
        "cron_expression": "0 3 * * 0",
        "job_type": "data_cleanup",
        "job_data": {"cleanup_jobs": True, "cleanup_temp_data": True},
        "is_active": True,
    },
    {
        "name": "Monthly Analytics Report",
        "description": "Generate monthly analytics and send report",
        "cron_expression": "0 4 1 * *",
        "job_type": "analytics_report",
        "job_data": {"report_type": "monthly"},
        # No built-in processor; enable after registering one
        "is_active": False,
    },
    {
        "name": "Hourly System Health Check",
        "description": "Check system health and send alerts if needed",
        "cron_expression": "0 * * * *",
        "job_type": "health_check",
        "job_data": {"check_services": True, "send_alerts": True},
        "is_active": True,
    },
    {
        "name": "Daily Email Queue Cleanup",
        "description": "Clean up failed email jobs and retry important ones",
        "cron_expression": "30 1 * * *",
        "job_type": "email_cleanup",
        "job_data": {"cleanup_failed": True, "retry_important": True},
        # No built-in processor; enable after registering one
        "is_active": False,
    },
    {
        "name": "Daily Credit Refresh Queue",
        "description": "Create credit refresh jobs for all users at midnight",
        "cron_expression": "0 0 * * *",
        "job_type": "credit_refresh_queue",
        "job_data": {"create_jobs": True},
        "is_active": True,
    },
    {
        "name": "Credit Refresh Worker",
        "description": "Process credit refresh jobs every 5 minutes",
        "cron_expression": "0,5,10,15,20,25,30,35,40,45,50,55 * * * *",
        "job_type": "credit_refresh_worker",
        "job_data": {"max_jobs": 20, "process_time": 60000},
        "is_active": True,
    },
]

# Fields of a task that callers may not change through update_task
_IMMUTABLE_FIELDS = ("id", "created_at")


def _slug(name: str) -> str:
    return re.sub(r"\s+", "_", name.strip().lower())


class ScheduledTaskManager:
    """
    Evaluates cron-like tasks once per tick and enqueues a job for each due task.

    Tasks live in memory only: a restart reloads the default list and drops
    tasks added at runtime. A task fires at most once per calendar minute,
    even when ticks or passes overlap.

    Example:
        ```python
        manager = ScheduledTaskManager(job_queue)
        task_id = manager.add_task(
            name="Nightly Digest",
            cron_expression="0 6 * * 1-5",
            job_type="email",
            job_data={"template": "digest"},
        )
        await manager.start()
        ...
        await manager.stop()
        ```
    """

    def __init__(
        self,
        job_queue: JobQueue,
        tasks: Optional[Sequence[dict[str, Any]]] = None,
        tick_interval_seconds: float = 60.0,
        timezone: Optional[tzinfo] = None,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Args:
            job_queue: Queue that fired tasks are added to
            tasks: Seed task definitions (DEFAULT_SCHEDULED_TASKS if None)
            tick_interval_seconds: Time between evaluation passes
            timezone: Zone cron fields are read in (local time if None)
            clock: Returns the current aware time
            logger: Logger instance
        """
        self.job_queue = job_queue
        self.tick_interval_seconds = tick_interval_seconds
        self.tz = timezone or tz.tzlocal()
        self.clock = clock or utcnow
        self.logger = logger or logging.getLogger(__name__)

        self._tasks: dict[str, ScheduledTask] = {}
        self._fired_minutes: dict[str, datetime] = {}
        self._running = False
        self._timer_task: Optional[asyncio.Task] = None
        self._passes: set[asyncio.Task] = set()

        self._load_tasks(DEFAULT_SCHEDULED_TASKS if tasks is None else tasks)

    def _load_tasks(self, definitions: Sequence[dict[str, Any]]) -> None:
        now = self._now()
        for definition in definitions:
            task_id = f"default_{_slug(definition['name'])}"
            self._tasks[task_id] = ScheduledTask(
                id=task_id, created_at=now, updated_at=now, **definition
            )

    def _now(self) -> datetime:
        now = self.clock()
        return now.astimezone(self.tz) if now.tzinfo else now

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Evaluate tasks now, then once per tick until stopped."""
        if self._running:
            return

        self._running = True
        self.logger.info("Scheduled task manager started")
        self._timer_task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop ticking. Passes already in flight are left to finish."""
        if not self._running:
            return

        self._running = False
        if self._timer_task:
            self._timer_task.cancel()
            try:
                await self._timer_task
            except asyncio.CancelledError:
                pass
            self._timer_task = None

        self.logger.info("Scheduled task manager stopped")

    async def _run(self) -> None:
        while self._running:
            self._spawn_pass()
            await asyncio.sleep(self.tick_interval_seconds)

    def _spawn_pass(self) -> None:
        task = asyncio.create_task(self.check_and_run_tasks())
        self._passes.add(task)
        task.add_done_callback(self._on_pass_done)

    def _on_pass_done(self, task: asyncio.Task) -> None:
        self._passes.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self.logger.error(
                f"Scheduled task pass failed: {task.exception()}",
                exc_info=task.exception(),
            )

    async def check_and_run_tasks(self, now: Optional[datetime] = None) -> list[str]:
        """
        Run one evaluation pass.

        Returns the ids of the jobs created.
        """
        if now is None:
            now = self._now()
        elif now.tzinfo:
            now = now.astimezone(self.tz)
        minute = now.replace(second=0, microsecond=0)

        job_ids = []
        for task_id, task in list(self._tasks.items()):
            if not task.is_active:
                continue

            try:
                due = CronExpression(task.cron_expression).matches(now)
            except CronParseError as e:
                self.logger.error(f"Error checking task {task_id}: {e}")
                continue

            if not due or self._fired_minutes.get(task_id) == minute:
                continue

            # Reserve the minute before awaiting so an overlapping pass skips it
            self._fired_minutes[task_id] = minute
            job_id = await self._run_task(task, now)
            if job_id is not None:
                job_ids.append(job_id)

        return job_ids

    async def _run_task(self, task: ScheduledTask, now: datetime) -> Optional[str]:
        """Enqueue a job for a due task and update its run bookkeeping."""
        try:
            self.logger.info(f"Running scheduled task: {task.name}")
            job_id = await self.job_queue.add_job(
                task.job_type,
                copy.deepcopy(task.job_data),
                priority=task.priority,
                max_attempts=task.max_attempts,
                metadata={
                    "source": "scheduled_task",
                    "description": task.description,
                    "tags": ["scheduled", "automated"],
                    "task_id": task.id,
                },
            )
        except Exception as e:
            self._fired_minutes.pop(task.id, None)
            self.logger.error(
                f"Error running scheduled task {task.name}: {e}", exc_info=True
            )
            return None

        current = self._tasks.get(task.id)
        if current is not None:
            try:
                next_run = next_run_estimate(current.cron_expression, now)
            except CronNoMatchError as e:
                self.logger.warning(f"No next run for task {task.id}: {e}")
                next_run = None
            current.last_run = now
            current.next_run = next_run
            current.updated_at = now

        self.logger.info(f"Scheduled task {task.name} queued as job {job_id}")
        return job_id

    def add_task(
        self,
        name: str,
        cron_expression: str,
        job_type: str,
        job_data: Optional[dict[str, Any]] = None,
        description: str = "",
        is_active: bool = True,
        priority: str = JobPriority.NORMAL.value,
        max_attempts: int = 3,
    ) -> str:
        """
        Add a scheduled task.

        Returns:
            str: The new task ID

        Raises:
            CronParseError: If the cron expression is invalid
        """
        CronExpression(cron_expression)

        now = self._now()
        base_id = f"custom_{int(now.timestamp() * 1000)}_{_slug(name)}"
        task_id = base_id
        suffix = 1
        while task_id in self._tasks:
            suffix += 1
            task_id = f"{base_id}_{suffix}"

        self._tasks[task_id] = ScheduledTask(
            id=task_id,
            name=name,
            description=description,
            cron_expression=cron_expression,
            job_type=job_type,
            job_data=job_data or {},
            is_active=is_active,
            priority=priority,
            max_attempts=max_attempts,
            created_at=now,
            updated_at=now,
        )
        self.logger.info(f"Added scheduled task: {name} ({task_id})")
        return task_id

    def update_task(self, task_id: str, **updates: Any) -> bool:
        """
        Update fields of a scheduled task.

        Returns False if the task does not exist.

        Raises:
            CronParseError: If a new cron expression is invalid
            ValueError: If an update has the wrong type
        """
        task = self._tasks.get(task_id)
        if task is None:
            return False

        updates = {k: v for k, v in updates.items() if k not in _IMMUTABLE_FIELDS}
        if "cron_expression" in updates:
            CronExpression(updates["cron_expression"])

        fields = task.model_dump()
        fields.update(updates)
        fields["updated_at"] = self._now()
        try:
            updated = ScheduledTask.model_validate(fields)
        except ValidationError as e:
            raise ValueError(f"Invalid update for task {task_id}: {e}") from e

        self._tasks[task_id] = updated
        self.logger.info(f"Updated scheduled task: {updated.name} ({task_id})")
        return True

    def remove_task(self, task_id: str) -> bool:
        task = self._tasks.pop(task_id, None)
        if task is None:
            return False
        self._fired_minutes.pop(task_id, None)
        self.logger.info(f"Removed scheduled task: {task.name} ({task_id})")
        return True

    def get_tasks(self) -> list[ScheduledTask]:
        return list(self._tasks.values())

    def get_task(self, task_id: str) -> Optional[ScheduledTask]:
        return self._tasks.get(task_id)

    def set_task_active(self, task_id: str, active: bool) -> bool:
        """Enable or disable a task."""
        return self.update_task(task_id, is_active=active)

    def toggle_task(self, task_id: str) -> ScheduledTask:
        """
        Flip a task between enabled and disabled.

        Returns:
            ScheduledTask: The task after the change

        Raises:
            TaskNotFoundError: If no task has this id
        """
        if task_id not in self._tasks:
            raise TaskNotFoundError(task_id)
        self.set_task_active(task_id, not self._tasks[task_id].is_active)
        return self._tasks[task_id]
