"""Data models for jobs and scheduled tasks."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    """Job status values."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"


RUNNABLE_STATUSES = (JobStatus.PENDING.value, JobStatus.RETRYING.value)
TERMINAL_STATUSES = (JobStatus.COMPLETED.value, JobStatus.FAILED.value)


class JobPriority(str, Enum):
    """Advisory ordering key; no preemption."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


PRIORITY_RANK = {
    JobPriority.LOW.value: 0,
    JobPriority.NORMAL.value: 1,
    JobPriority.HIGH.value: 2,
    JobPriority.URGENT.value: 3,
}


class JobMetadata(BaseModel):
    """Optional bookkeeping attached to a job. Not used for scheduling."""

    model_config = ConfigDict(extra="allow")

    source: Optional[str] = None
    description: Optional[str] = None
    tags: list[str] = Field(default_factory=list)


class Job(BaseModel):
    """
    Persisted unit of deferred work.

    ``status`` and ``scheduled_for`` together decide queue eligibility: only
    pending or retrying jobs whose ``scheduled_for`` has elapsed are
    dispatched.
    """

    model_config = ConfigDict(use_enum_values=True)

    id: Optional[str] = None
    type: str
    status: JobStatus = JobStatus.PENDING
    priority: JobPriority = JobPriority.NORMAL
    data: Any = Field(default_factory=dict)
    attempts: int = 0
    max_attempts: int = 3
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    result: Any = None
    scheduled_for: datetime = Field(default_factory=utcnow)
    user_id: Optional[str] = None
    metadata: Optional[JobMetadata] = None

    @field_validator(
        "created_at", "updated_at", "started_at", "completed_at", "scheduled_for"
    )
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # Naive times are read as UTC, as the PostgreSQL store does
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def priority_rank(self) -> int:
        return PRIORITY_RANK[self.priority]

    def to_document(self) -> dict[str, Any]:
        """Fields written to the document store. The id is owned by the store."""
        document = self.model_dump(exclude={"id"})
        document["priority_rank"] = self.priority_rank
        return document

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "Job":
        return cls.model_validate(document)

    def to_dict(self) -> dict[str, Any]:
        """Convert job to dictionary for JSON serialization."""
        return self.model_dump(mode="json")


class ScheduledTask(BaseModel):
    """Cron-triggered template producing new jobs. Lives in memory only."""

    id: str
    name: str
    description: str = ""
    cron_expression: str
    job_type: str
    job_data: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True
    priority: JobPriority = JobPriority.NORMAL
    max_attempts: int = 3
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(use_enum_values=True)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class QueueStats(BaseModel):
    """Number of jobs per status."""

    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    retrying: int = 0
    total: int = 0
