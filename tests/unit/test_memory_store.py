"""Unit tests for the in-memory document store."""

from datetime import datetime, timedelta, timezone

import pytest

from docqueue.documents import Filter, OrderBy
from docqueue.errors import DocumentNotFoundError


@pytest.mark.asyncio
async def test_add_and_get(store):
    """Test that added documents come back with their id."""
    doc_id = await store.add("things", {"name": "a", "tags": ["x"]})

    doc = await store.get("things", doc_id)

    assert doc == {"id": doc_id, "name": "a", "tags": ["x"]}
    assert await store.get("things", "missing") is None


@pytest.mark.asyncio
async def test_documents_are_copied(store):
    """Test that callers cannot mutate stored documents."""
    data = {"tags": ["x"]}
    doc_id = await store.add("things", data)
    data["tags"].append("y")

    doc = await store.get("things", doc_id)
    doc["tags"].append("z")

    assert (await store.get("things", doc_id))["tags"] == ["x"]


@pytest.mark.asyncio
async def test_update_merges_fields(store):
    """Test top-level merge on update."""
    doc_id = await store.add("things", {"a": 1, "b": 2})

    await store.update("things", doc_id, {"b": 3, "c": 4})

    assert await store.get("things", doc_id) == {"id": doc_id, "a": 1, "b": 3, "c": 4}


@pytest.mark.asyncio
async def test_update_missing_document(store):
    """Test that updating a missing document raises."""
    with pytest.raises(DocumentNotFoundError):
        await store.update("things", "missing", {"a": 1})


@pytest.mark.asyncio
async def test_update_where_only_when_filters_match(store):
    """Test conditional update."""
    doc_id = await store.add("jobs", {"status": "pending"})

    claimed = await store.update_where(
        "jobs", doc_id, [Filter("status", "in", ["pending"])], {"status": "processing"}
    )
    claimed_again = await store.update_where(
        "jobs", doc_id, [Filter("status", "in", ["pending"])], {"status": "processing"}
    )

    assert claimed is True
    assert claimed_again is False
    assert (await store.get("jobs", doc_id))["status"] == "processing"
    assert await store.update_where("jobs", "missing", [], {"a": 1}) is False


@pytest.mark.asyncio
async def test_query_filters_order_and_limit(store):
    """Test filtering, multi-key ordering and limit."""
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    await store.add("jobs", {"name": "a", "rank": 1, "created_at": base})
    await store.add("jobs", {"name": "b", "rank": 3, "created_at": base + timedelta(seconds=2)})
    await store.add("jobs", {"name": "c", "rank": 3, "created_at": base + timedelta(seconds=1)})
    await store.add("jobs", {"name": "d", "rank": 0, "created_at": base})

    docs = await store.query(
        "jobs",
        filters=[Filter("rank", ">=", 1)],
        order_by=[OrderBy("rank", descending=True), OrderBy("created_at")],
    )
    assert [d["name"] for d in docs] == ["c", "b", "a"]

    docs = await store.query(
        "jobs",
        order_by=[OrderBy("rank", descending=True), OrderBy("created_at")],
        limit=1,
    )
    assert [d["name"] for d in docs] == ["c"]


@pytest.mark.asyncio
async def test_query_not_in_and_none_values(store):
    """Test not_in and that None never satisfies a comparison."""
    await store.add("jobs", {"type": "email", "completed_at": None})
    await store.add("jobs", {"type": "sync", "completed_at": datetime(2024, 1, 1, tzinfo=timezone.utc)})

    not_email = await store.query("jobs", filters=[Filter("type", "not_in", ["email"])])
    old = await store.query(
        "jobs",
        filters=[Filter("completed_at", "<", datetime(2025, 1, 1, tzinfo=timezone.utc))],
    )

    assert [d["type"] for d in not_email] == ["sync"]
    assert [d["type"] for d in old] == ["sync"]


@pytest.mark.asyncio
async def test_count_and_batch_delete(store):
    """Test count and batch delete."""
    ids = [await store.add("jobs", {"status": "completed"}) for _ in range(3)]
    await store.add("jobs", {"status": "pending"})

    assert await store.count("jobs") == 4
    assert await store.count("jobs", [Filter("status", "==", "completed")]) == 3

    deleted = await store.batch_delete("jobs", ids[:2] + ["missing"])

    assert deleted == 2
    assert await store.count("jobs") == 2


def test_filter_rejects_unknown_operator():
    """Test that unsupported operators are rejected."""
    with pytest.raises(ValueError):
        Filter("status", "like", "pend%")
