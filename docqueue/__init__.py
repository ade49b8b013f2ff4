"""Document-store backed job queue with cron-style scheduled tasks."""

from docqueue.config import DocQueueConfig
from docqueue.cron import CronExpression, matches, next_run_estimate, parse_cron_expression
from docqueue.ddl import DOCUMENTS_TABLE_DDL
from docqueue.documents import DocumentStore, Filter, OrderBy
from docqueue.errors import (
    CronNoMatchError,
    CronParseError,
    DocQueueError,
    DocumentNotFoundError,
    InvalidJobStateError,
    JobNotFoundError,
    JobTimeoutError,
    RemoteHttpError,
    TaskNotFoundError,
)
from docqueue.health import assess_queue_health
from docqueue.http_client import AppHttpClient
from docqueue.memory_store import InMemoryDocumentStore
from docqueue.models import (
    Job,
    JobMetadata,
    JobPriority,
    JobStatus,
    QueueStats,
    ScheduledTask,
)
from docqueue.processors import register_default_processors
from docqueue.queue import JobQueue
from docqueue.registry import Processor, ProcessorRegistry
from docqueue.scheduler import DEFAULT_SCHEDULED_TASKS, ScheduledTaskManager
from docqueue.store import PostgresDocumentStore

__version__ = "0.1.0"

__all__ = [
    "DocQueueConfig",
    "CronExpression",
    "matches",
    "next_run_estimate",
    "parse_cron_expression",
    "DOCUMENTS_TABLE_DDL",
    "DocumentStore",
    "Filter",
    "OrderBy",
    "CronNoMatchError",
    "CronParseError",
    "DocQueueError",
    "DocumentNotFoundError",
    "InvalidJobStateError",
    "JobNotFoundError",
    "JobTimeoutError",
    "RemoteHttpError",
    "TaskNotFoundError",
    "assess_queue_health",
    "AppHttpClient",
    "InMemoryDocumentStore",
    "Job",
    "JobMetadata",
    "JobPriority",
    "JobStatus",
    "QueueStats",
    "ScheduledTask",
    "register_default_processors",
    "JobQueue",
    "Processor",
    "ProcessorRegistry",
    "DEFAULT_SCHEDULED_TASKS",
    "ScheduledTaskManager",
    "PostgresDocumentStore",
]
