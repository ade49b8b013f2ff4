"""Processors that work on the document store and the queue itself."""

import logging
from typing import Any

from docqueue.documents import DocumentStore
from docqueue.health import assess_queue_health
from docqueue.models import Job
from docqueue.queue import JobQueue

logger = logging.getLogger(__name__)


def make_data_update_processor(store: DocumentStore, job_queue: JobQueue):
    """Merge ``updates`` into ``collection/document_id``, stamping ``updated_at``."""

    async def data_update(job: Job) -> dict[str, Any]:
        data = job.data or {}
        collection = data.get("collection")
        document_id = data.get("document_id")
        if not collection or not document_id:
            raise ValueError("Data update job requires 'collection' and 'document_id'")

        updates = dict(data.get("updates") or {})
        updates["updated_at"] = job_queue.clock()
        await store.update(collection, document_id, updates)
        return {"updated": True, "document_id": document_id}

    return data_update


def make_data_cleanup_processor(job_queue: JobQueue):
    async def data_cleanup(job: Job) -> dict[str, Any]:
        data = job.data or {}
        deleted = 0
        if data.get("cleanup_jobs", True):
            deleted = await job_queue.cleanup_old_jobs()
        return {"jobs_deleted": deleted}

    return data_cleanup


def make_health_check_processor(job_queue: JobQueue):
    """Report queue stats and health; log a warning when the queue is unhealthy."""

    async def health_check(job: Job) -> dict[str, Any]:
        stats = await job_queue.get_queue_stats()
        health = assess_queue_health(stats)
        if health["status"] != "healthy" and (job.data or {}).get("send_alerts"):
            logger.warning(
                f"Queue health is {health['status']}: {'; '.join(health['issues'])}"
            )
        return {"stats": stats.model_dump(), "health": health}

    return health_check
