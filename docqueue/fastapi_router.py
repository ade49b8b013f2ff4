"""FastAPI router for job monitoring and queue actions."""

import logging
from datetime import timezone
from typing import Any, Callable, Dict, List, Optional

from dateutil.parser import isoparse
from fastapi import APIRouter, Depends, Header, HTTPException, Query
from pydantic import BaseModel

from docqueue.errors import InvalidJobStateError, JobNotFoundError, TaskNotFoundError
from docqueue.health import assess_queue_health
from docqueue.models import JobPriority, QueueStats, utcnow
from docqueue.queue import JobQueue
from docqueue.scheduler import ScheduledTaskManager


logger = logging.getLogger(__name__)


class EnqueueJobRequest(BaseModel):
    """Request model for enqueueing a job."""

    type: str
    data: Dict[str, Any] = {}
    priority: JobPriority = JobPriority.NORMAL
    max_attempts: Optional[int] = None
    scheduled_for: Optional[str] = None  # ISO8601 datetime string
    user_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class EnqueueJobResponse(BaseModel):
    """Response model for enqueueing a job."""

    job_id: str


class JobActionRequest(BaseModel):
    """Request model for job and task actions."""

    action: str
    job_id: Optional[str] = None
    task_id: Optional[str] = None


class JobResponse(BaseModel):
    """Response model for job details."""

    id: str
    type: str
    status: str
    priority: str
    data: Any = None
    attempts: int
    max_attempts: int
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    scheduled_for: Optional[str] = None
    error: Optional[str] = None
    result: Any = None
    user_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class QueueHealth(BaseModel):
    status: str
    issues: List[str]
    recommendations: List[str]


class QueueStatus(BaseModel):
    stats: QueueStats
    health: QueueHealth
    timestamp: str


class ScheduledStatus(BaseModel):
    tasks: List[Dict[str, Any]]
    active_tasks: int
    total_tasks: int


class SystemStatusResponse(BaseModel):
    """Response model for the overall queue status."""

    queue: QueueStatus
    scheduled: Optional[ScheduledStatus] = None


def create_jobs_router(
    queue_factory: Callable[[], JobQueue],
    scheduler_factory: Optional[Callable[[], ScheduledTaskManager]] = None,
    auth_token: Optional[str] = None,
) -> APIRouter:
    """
    Create FastAPI router for the job monitoring API.

    Args:
        queue_factory: Callable that returns the JobQueue
        scheduler_factory: Optional callable that returns the ScheduledTaskManager
        auth_token: Optional auth token for the POST endpoints

    Returns:
        APIRouter instance
    """
    router = APIRouter()

    async def get_queue() -> JobQueue:
        """Dependency to get the JobQueue instance."""
        return queue_factory()

    async def verify_auth_token(
        x_docqueue_token: Optional[str] = Header(None, alias="X-DocQueue-Token")
    ) -> None:
        """Verify auth token if configured."""
        if auth_token:
            if not x_docqueue_token or x_docqueue_token != auth_token:
                raise HTTPException(
                    status_code=401, detail="Invalid or missing auth token"
                )

    def get_scheduler() -> ScheduledTaskManager:
        if scheduler_factory is None:
            raise HTTPException(status_code=404, detail="Scheduled tasks are not enabled")
        return scheduler_factory()

    @router.get("/jobs/status")
    async def get_status(
        job_id: Optional[str] = Query(None),
        include_scheduled: bool = Query(False),
        queue: JobQueue = Depends(get_queue),
    ):
        """Get one job, or the queue stats and health."""
        try:
            if job_id:
                job = await queue.get_job_status(job_id)
                if job is None:
                    raise HTTPException(status_code=404, detail="Job not found")
                return JobResponse(**job.to_dict())

            stats = await queue.get_queue_stats()
            scheduled = None
            if include_scheduled and scheduler_factory is not None:
                tasks = scheduler_factory().get_tasks()
                scheduled = ScheduledStatus(
                    tasks=[task.to_dict() for task in tasks],
                    active_tasks=sum(1 for task in tasks if task.is_active),
                    total_tasks=len(tasks),
                )

            return SystemStatusResponse(
                queue=QueueStatus(
                    stats=stats,
                    health=QueueHealth(**assess_queue_health(stats)),
                    timestamp=utcnow().isoformat(),
                ),
                scheduled=scheduled,
            )

        except HTTPException:
            raise
        except Exception as e:
            logger.exception("Error getting job status")
            raise HTTPException(status_code=500, detail="Failed to get job status") from e

    @router.post("/jobs/status")
    async def job_action(
        request: JobActionRequest,
        queue: JobQueue = Depends(get_queue),
        _: None = Depends(verify_auth_token),
    ):
        """Run an action on a job or scheduled task."""
        if request.action == "retry_job":
            if not request.job_id:
                raise HTTPException(
                    status_code=400, detail="Job ID required for retry action"
                )
            try:
                retry_job_id = await queue.retry_job(request.job_id)
            except JobNotFoundError as e:
                raise HTTPException(status_code=404, detail="Job not found") from e
            except InvalidJobStateError as e:
                raise HTTPException(status_code=400, detail=str(e)) from e
            return {
                "success": True,
                "message": "Job queued for retry",
                "original_job_id": request.job_id,
                "retry_job_id": retry_job_id,
            }

        if request.action == "toggle_scheduled_task":
            if not request.task_id:
                raise HTTPException(
                    status_code=400, detail="Task ID required for toggle action"
                )
            scheduler = get_scheduler()
            try:
                task = scheduler.toggle_task(request.task_id)
            except TaskNotFoundError as e:
                raise HTTPException(status_code=404, detail="Scheduled task not found") from e
            return {
                "success": True,
                "message": f"Scheduled task {'enabled' if task.is_active else 'disabled'}",
                "task_id": request.task_id,
                "is_active": task.is_active,
            }

        raise HTTPException(status_code=400, detail="Invalid action")

    @router.post("/jobs/enqueue", response_model=EnqueueJobResponse)
    async def enqueue_job(
        request: EnqueueJobRequest,
        queue: JobQueue = Depends(get_queue),
        _: None = Depends(verify_auth_token),
    ):
        """Enqueue a new job."""
        scheduled_for = None
        if request.scheduled_for:
            try:
                scheduled_for = isoparse(request.scheduled_for)
            except ValueError as e:
                raise HTTPException(
                    status_code=400, detail=f"Invalid scheduled_for format: {e}"
                ) from e
            if scheduled_for.tzinfo is None:
                scheduled_for = scheduled_for.replace(tzinfo=timezone.utc)

        try:
            job_id = await queue.add_job(
                request.type,
                request.data,
                priority=request.priority,
                max_attempts=request.max_attempts,
                scheduled_for=scheduled_for,
                user_id=request.user_id,
                metadata=request.metadata,
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        except Exception as e:
            logger.exception("Error enqueueing job")
            raise HTTPException(status_code=500, detail="Internal server error") from e

        return EnqueueJobResponse(job_id=job_id)

    return router
