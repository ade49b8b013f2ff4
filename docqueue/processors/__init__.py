"""Built-in job processors."""

from typing import Optional

from docqueue.config import DocQueueConfig
from docqueue.documents import DocumentStore
from docqueue.http_client import AppHttpClient
from docqueue.processors.callbacks import (
    make_credit_refresh_processor,
    make_credit_refresh_queue_processor,
    make_credit_refresh_worker_processor,
    make_vendor_sync_processor,
)
from docqueue.processors.maintenance import (
    make_data_cleanup_processor,
    make_data_update_processor,
    make_health_check_processor,
)
from docqueue.processors.ses import SesEmailSender
from docqueue.queue import JobQueue
from docqueue.registry import ProcessorRegistry


def register_default_processors(
    registry: ProcessorRegistry,
    job_queue: JobQueue,
    store: DocumentStore,
    config: Optional[DocQueueConfig] = None,
    http_client: Optional[AppHttpClient] = None,
    ses_client=None,
) -> None:
    """
    Register the built-in processors.

    Args:
        registry: Registry to add processors to
        job_queue: Queue used by processors that enqueue or inspect jobs
        store: Document store used by data processors
        config: Configuration (job_queue.config if None)
        http_client: Client for host callbacks. Built from config if None.
        ses_client: Boto3 SES client. Created on first email if None.
    """
    config = config or job_queue.config
    if http_client is None:
        http_client = AppHttpClient(config.app_base_url, config.scheduled_task_secret)

    registry.register(
        "email",
        SesEmailSender(config.email_from, ses_client, region_name=config.aws_region),
        concurrency=3,
        timeout=30,
    )
    registry.register(
        "data_update",
        make_data_update_processor(store, job_queue),
        concurrency=5,
        timeout=30,
    )
    registry.register(
        "vendor_sync",
        make_vendor_sync_processor(http_client, store, job_queue),
        concurrency=2,
        timeout=45,
    )
    registry.register(
        "credit_refresh",
        make_credit_refresh_processor(http_client, job_queue),
        concurrency=1,
        timeout=300,
    )
    registry.register(
        "credit_refresh_queue",
        make_credit_refresh_queue_processor(http_client),
        concurrency=1,
        timeout=600,
    )
    registry.register(
        "credit_refresh_worker",
        make_credit_refresh_worker_processor(http_client),
        concurrency=3,
        timeout=120,
    )
    registry.register(
        "data_cleanup", make_data_cleanup_processor(job_queue), concurrency=1
    )
    registry.register(
        "health_check", make_health_check_processor(job_queue), concurrency=1
    )


__all__ = ["register_default_processors", "SesEmailSender"]
