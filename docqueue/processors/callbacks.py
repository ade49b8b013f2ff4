"""Processors that delegate their work to the host application over HTTP."""

import logging
from datetime import timedelta
from typing import Any

from docqueue.documents import DocumentStore
from docqueue.http_client import AppHttpClient
from docqueue.models import Job, JobPriority
from docqueue.queue import JobQueue

logger = logging.getLogger(__name__)

PLACE_DETAILS_PATH = "/api/google-place-details"
CREDIT_REFRESH_PATH = "/api/scheduled-tasks/credit-refresh"
CREDIT_REFRESH_QUEUE_PATH = "/api/scheduled-tasks/credit-refresh-queue"
CREDIT_REFRESH_WORKER_PATH = "/api/scheduled-tasks/credit-refresh-worker"

VENDORS_COLLECTION = "vendors"

# Gap between pages of a paginated credit refresh
FOLLOW_UP_DELAY = timedelta(seconds=5)


def make_vendor_sync_processor(
    http_client: AppHttpClient, store: DocumentStore, job_queue: JobQueue
):
    """
    Refresh vendor documents from the host's place details endpoint.

    ``place_id`` syncs one vendor; ``sync_all`` syncs every document in the
    vendors collection.
    """

    async def sync_one(place_id: str) -> None:
        vendor_data = await http_client.post_json(
            PLACE_DETAILS_PATH, {"place_id": place_id}
        )
        fields = {k: v for k, v in (vendor_data or {}).items() if k != "id"}
        fields["last_synced"] = job_queue.clock()
        await store.update(VENDORS_COLLECTION, place_id, fields)

    async def vendor_sync(job: Job) -> dict[str, Any]:
        data = job.data or {}
        place_id = data.get("place_id")

        if place_id:
            await sync_one(place_id)
            return {"synced": True, "place_id": place_id}

        if not data.get("sync_all"):
            raise ValueError("Vendor sync job requires 'place_id' or 'sync_all'")

        vendors = await store.query(VENDORS_COLLECTION)
        for vendor in vendors:
            await sync_one(vendor["id"])
        logger.info(f"Synced {len(vendors)} vendors for job {job.id}")
        return {"synced": True, "count": len(vendors)}

    return vendor_sync


def make_credit_refresh_processor(http_client: AppHttpClient, job_queue: JobQueue):
    """
    Refresh user credits one page at a time.

    While the host reports ``has_more``, a follow-up job for the next cursor
    is queued a few seconds out.
    """

    async def credit_refresh(job: Job) -> dict[str, Any]:
        data = job.data or {}
        if not data.get("refresh_all_users"):
            raise ValueError("Credit refresh job requires refresh_all_users flag")

        cursor = data.get("cursor")
        batch_size = data.get("batch_size", 50)

        result = await http_client.post_json(
            CREDIT_REFRESH_PATH,
            {
                "cursor": cursor,
                "batch_size": batch_size,
                "is_initial_run": not cursor,
            },
        )

        has_more = bool(result.get("has_more"))
        next_cursor = result.get("next_cursor")
        if has_more and next_cursor:
            follow_up_id = await job_queue.add_job(
                "credit_refresh",
                {
                    "refresh_all_users": True,
                    "cursor": next_cursor,
                    "batch_size": batch_size,
                },
                priority=JobPriority.NORMAL,
                max_attempts=3,
                scheduled_for=job_queue.clock() + FOLLOW_UP_DELAY,
            )
            logger.info(f"Credit refresh continues as job {follow_up_id}")

        return {
            "refreshed": True,
            "metrics": result.get("metrics"),
            "has_more": has_more,
            "next_cursor": next_cursor,
        }

    return credit_refresh


def make_credit_refresh_queue_processor(http_client: AppHttpClient):
    async def credit_refresh_queue(job: Job) -> dict[str, Any]:
        if not (job.data or {}).get("create_jobs"):
            raise ValueError("Credit refresh queue job requires create_jobs flag")

        result = await http_client.post_json(CREDIT_REFRESH_QUEUE_PATH)
        return {
            "queue_created": True,
            "jobs_created": result.get("jobs_created"),
            "errors": result.get("errors"),
        }

    return credit_refresh_queue


def make_credit_refresh_worker_processor(http_client: AppHttpClient):
    async def credit_refresh_worker(job: Job) -> dict[str, Any]:
        data = job.data or {}
        result = await http_client.post_json(
            CREDIT_REFRESH_WORKER_PATH,
            {
                "max_jobs": data.get("max_jobs", 20),
                "process_time": data.get("process_time", 60000),
            },
        )
        return {"worker_completed": True, "metrics": result.get("metrics")}

    return credit_refresh_worker
