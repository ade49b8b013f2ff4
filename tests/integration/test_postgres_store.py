"""
Integration tests for the PostgreSQL document store.

Runs against a real PostgreSQL:
1. With testcontainers (default) - spins up its own Postgres
2. With an external database (CI mode) - set DOCQUEUE_TEST_DB_DSN
"""

import asyncio
import logging
import os
from datetime import datetime, timedelta, timezone

import asyncpg
import pytest
import pytest_asyncio

from docqueue.config import DocQueueConfig
from docqueue.documents import Filter, OrderBy
from docqueue.errors import DocumentNotFoundError
from docqueue.queue import JobQueue
from docqueue.registry import ProcessorRegistry
from docqueue.store import PostgresDocumentStore

logger = logging.getLogger(__name__)


@pytest.fixture(scope="module")
def db_dsn():
    """DSN of a PostgreSQL database for the tests."""
    external = os.getenv("DOCQUEUE_TEST_DB_DSN")
    if external:
        yield external
        return

    pytest.importorskip("testcontainers")
    from testcontainers.postgres import PostgresContainer

    postgres = PostgresContainer("postgres:15")
    try:
        postgres.start()
    except Exception as e:
        pytest.skip(f"Docker is not available: {e}")

    try:
        # asyncpg wants a plain postgresql:// URL
        yield postgres.get_connection_url().replace("+psycopg2", "")
    finally:
        postgres.stop()


@pytest_asyncio.fixture
async def pg_store(db_dsn):
    """Store on a freshly created documents table."""
    pool = await asyncpg.create_pool(db_dsn, min_size=1, max_size=5)
    async with pool.acquire() as conn:
        await conn.execute("DROP TABLE IF EXISTS documents")
    store = PostgresDocumentStore(pool)
    await store.create_schema()

    yield store

    await pool.close()


@pytest.mark.asyncio
async def test_create_schema_is_idempotent(pg_store):
    """Test that the DDL can run twice."""
    await pg_store.create_schema()


@pytest.mark.asyncio
async def test_add_get_update(pg_store):
    """Test document round trip with datetimes and nested data."""
    now = datetime(2024, 5, 1, 12, 0, 0, 250000, tzinfo=timezone.utc)
    doc_id = await pg_store.add(
        "jobs", {"status": "pending", "created_at": now, "data": {"tags": ["a"]}, "result": None}
    )

    doc = await pg_store.get("jobs", doc_id)
    assert doc == {
        "id": doc_id,
        "status": "pending",
        "created_at": now,
        "data": {"tags": ["a"]},
        "result": None,
    }

    await pg_store.update("jobs", doc_id, {"status": "completed", "completed_at": now})
    doc = await pg_store.get("jobs", doc_id)
    assert doc["status"] == "completed"
    assert doc["completed_at"] == now
    assert doc["data"] == {"tags": ["a"]}

    assert await pg_store.get("jobs", "missing") is None
    assert await pg_store.get("other", doc_id) is None
    with pytest.raises(DocumentNotFoundError):
        await pg_store.update("jobs", "missing", {"status": "failed"})


@pytest.mark.asyncio
async def test_payload_strings_survive_round_trip(pg_store):
    """Test that timestamp-shaped strings inside payloads are not parsed."""
    stamp = "2024-05-01T12:00:00.123456+00:00"
    doc_id = await pg_store.add("jobs", {"data": {"send_at": stamp}, "note": stamp})

    await pg_store.update("jobs", doc_id, {"result": {"timestamp": stamp}})
    doc = await pg_store.get("jobs", doc_id)

    assert doc["data"] == {"send_at": stamp}
    assert doc["note"] == stamp
    assert doc["result"] == {"timestamp": stamp}


@pytest.mark.asyncio
async def test_field_type_follows_latest_write(pg_store):
    """Test that a field rewritten as a string is no longer parsed."""
    now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    doc_id = await pg_store.add("jobs", {"completed_at": now})

    await pg_store.update("jobs", doc_id, {"completed_at": "2024-05-01T12:00:00.000000+00:00"})

    assert await pg_store.get("jobs", doc_id) == {
        "id": doc_id,
        "completed_at": "2024-05-01T12:00:00.000000+00:00",
    }


@pytest.mark.asyncio
async def test_update_where_claims_once(pg_store):
    """Test that concurrent claims of one document succeed exactly once."""
    now = datetime.now(timezone.utc)
    doc_id = await pg_store.add("jobs", {"status": "pending", "scheduled_for": now})
    conditions = [
        Filter("status", "in", ["pending", "retrying"]),
        Filter("scheduled_for", "<=", now + timedelta(seconds=1)),
    ]

    results = await asyncio.gather(
        *[
            pg_store.update_where("jobs", doc_id, conditions, {"status": "processing"})
            for _ in range(5)
        ]
    )

    assert sorted(results) == [False, False, False, False, True]
    assert (await pg_store.get("jobs", doc_id))["status"] == "processing"


@pytest.mark.asyncio
async def test_query_filters_and_ordering(pg_store):
    """Test typed filters, not_in, multi-key ordering and limit."""
    base = datetime(2024, 5, 1, tzinfo=timezone.utc)
    rows = [
        ("normal-old", "email", 1, base),
        ("high-new", "sync", 2, base + timedelta(seconds=20)),
        ("high-old", "email", 2, base + timedelta(seconds=10)),
        ("future", "email", 3, base + timedelta(days=1)),
    ]
    for name, job_type, rank, created_at in rows:
        await pg_store.add(
            "jobs",
            {
                "name": name,
                "type": job_type,
                "status": "pending",
                "priority_rank": rank,
                "created_at": created_at,
                "scheduled_for": created_at,
            },
        )

    due = [
        Filter("status", "in", ["pending", "retrying"]),
        Filter("scheduled_for", "<=", base + timedelta(hours=1)),
    ]
    order = [OrderBy("priority_rank", descending=True), OrderBy("created_at")]

    docs = await pg_store.query("jobs", filters=due, order_by=order)
    assert [d["name"] for d in docs] == ["high-old", "high-new", "normal-old"]

    docs = await pg_store.query(
        "jobs", filters=due + [Filter("type", "not_in", ["email"])], order_by=order, limit=1
    )
    assert [d["name"] for d in docs] == ["high-new"]

    assert await pg_store.count("jobs") == 4
    assert await pg_store.count("jobs", [Filter("priority_rank", ">=", 2)]) == 3
    assert await pg_store.count("jobs", [Filter("completed_at", "<", base)]) == 0


@pytest.mark.asyncio
async def test_batch_delete(pg_store):
    """Test deleting several documents at once."""
    ids = [await pg_store.add("jobs", {"n": n}) for n in range(3)]

    assert await pg_store.batch_delete("jobs", ids[:2] + ["missing"]) == 2
    assert await pg_store.batch_delete("jobs", []) == 0
    assert await pg_store.count("jobs") == 1


@pytest.mark.asyncio
async def test_job_queue_on_postgres(pg_store):
    """Test a retried job completing on the PostgreSQL store."""
    registry = ProcessorRegistry()
    calls = []

    @registry.processor("flaky")
    async def flaky(job):
        calls.append(job.attempts)
        if len(calls) < 2:
            raise RuntimeError("first try fails")
        return {"ok": True}

    config = DocQueueConfig(
        retry_delays=[0.05], idle_poll_seconds=0.02, busy_poll_seconds=0.02
    )
    queue = JobQueue(pg_store, registry, config=config)
    try:
        job_id = await queue.add_job("flaky", {"n": 1}, priority="high")
        for _ in range(300):
            job = await queue.get_job_status(job_id)
            if job.status in ("completed", "failed"):
                break
            await asyncio.sleep(0.02)
    finally:
        await queue.stop()

    logger.info(f"Final job state: {job.to_dict()}")
    assert calls == [0, 1]
    assert job.status == "completed"
    assert job.result == {"ok": True}
    assert job.attempts == 1
