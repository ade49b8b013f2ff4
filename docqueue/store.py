"""PostgreSQL document store for docqueue."""

import json
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional, Sequence
from uuid import uuid4

import asyncpg
from dateutil.parser import isoparse

from docqueue.ddl import DOCUMENTS_TABLE_DDL
from docqueue.documents import DocumentStore, Filter, OrderBy
from docqueue.errors import DocumentNotFoundError

_COMPARISON_SQL = {"==": "=", "!=": "<>", "<": "<", "<=": "<=", ">": ">", ">=": ">="}


def encode_timestamp(value: datetime) -> str:
    """
    Render a datetime in the store's canonical UTC layout.

    One fixed layout keeps stored timestamps ordered correctly as text.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return encode_timestamp(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def dumps(data: Any) -> str:
    return json.dumps(data, default=_json_default)


def field_types(fields: dict[str, Any]) -> dict[str, str]:
    """Top-level fields that must be read back as datetimes."""
    return {key: "timestamp" for key, value in fields.items() if isinstance(value, datetime)}


# Merge new fields into data and replace the recorded types of those fields
_MERGE_SQL = "data = data || $3::jsonb, field_types = (field_types - $4::text[]) || $5::jsonb"


def _merge_params(fields: dict[str, Any]) -> tuple[str, list[str], str]:
    return dumps(fields), list(fields), json.dumps(field_types(fields))


def _decode(data: dict[str, Any], types: dict[str, str]) -> dict[str, Any]:
    # Only fields written as datetimes are parsed; payload strings stay as stored
    for key, kind in types.items():
        if kind == "timestamp" and isinstance(data.get(key), str):
            data[key] = isoparse(data[key])
    return data


def build_conditions(
    filters: Sequence[Filter], start_index: int
) -> tuple[list[str], list[Any]]:
    """
    Translate filters into SQL conditions over the ``data`` JSONB column.

    Field names and values are both passed as parameters, starting at
    ``$start_index``.

    Returns:
        (conditions, params)
    """
    conditions: list[str] = []
    params: list[Any] = []
    index = start_index

    for condition in filters:
        key = f"${index}"
        params.append(condition.field)
        index += 1
        field_text = f"(data->>{key}::text)"
        value = condition.value

        if condition.op in ("in", "not_in"):
            params.append([str(item.value if isinstance(item, Enum) else item) for item in value])
            values = f"${index}::text[]"
            index += 1
            if condition.op == "in":
                conditions.append(f"{field_text} = ANY({values})")
            else:
                conditions.append(
                    f"({field_text} IS NULL OR NOT ({field_text} = ANY({values})))"
                )
            continue

        operator = _COMPARISON_SQL[condition.op]

        if value is None:
            if condition.op == "==":
                conditions.append(f"{field_text} IS NULL")
            elif condition.op == "!=":
                conditions.append(f"{field_text} IS NOT NULL")
            else:
                # No placeholder may go unreferenced
                params.pop()
                index -= 1
                conditions.append("FALSE")
            continue

        if isinstance(value, datetime):
            params.append(value if value.tzinfo else value.replace(tzinfo=timezone.utc))
            conditions.append(f"({field_text})::timestamptz {operator} ${index}::timestamptz")
        elif isinstance(value, bool):
            params.append(value)
            conditions.append(f"({field_text})::boolean {operator} ${index}::boolean")
        elif isinstance(value, (int, float)):
            params.append(str(value))
            conditions.append(f"({field_text})::numeric {operator} (${index}::text)::numeric")
        else:
            params.append(str(value.value if isinstance(value, Enum) else value))
            conditions.append(f"{field_text} {operator} ${index}::text")
        index += 1

    return conditions, params


class PostgresDocumentStore(DocumentStore):
    """
    Document store backed by a single PostgreSQL JSONB table.

    Example:
        ```python
        pool = await asyncpg.create_pool(dsn)
        store = PostgresDocumentStore(pool)
        await store.create_schema()
        ```
    """

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    async def create_schema(self) -> None:
        """Create the documents table and indexes if missing."""
        async with self.db_pool.acquire() as conn:
            await conn.execute(DOCUMENTS_TABLE_DDL)

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        document_id = str(uuid4())
        document = {key: value for key, value in data.items() if key != "id"}
        async with self.db_pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO documents (collection, id, data, field_types)
                VALUES ($1, $2, $3::jsonb, $4::jsonb)
                """,
                collection,
                document_id,
                dumps(document),
                json.dumps(field_types(document)),
            )
        return document_id

    async def get(self, collection: str, document_id: str) -> Optional[dict[str, Any]]:
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT id, data, field_types FROM documents WHERE collection = $1 AND id = $2",
                collection,
                document_id,
            )
        if not row:
            return None
        return self._row_to_document(row)

    async def update(
        self, collection: str, document_id: str, fields: dict[str, Any]
    ) -> None:
        async with self.db_pool.acquire() as conn:
            result = await conn.execute(
                f"""
                UPDATE documents
                SET {_MERGE_SQL}
                WHERE collection = $1 AND id = $2
                """,
                collection,
                document_id,
                *_merge_params(fields),
            )
        # Result string looks like "UPDATE 1"
        if not result or int(result.split()[-1]) == 0:
            raise DocumentNotFoundError(collection, document_id)

    async def update_where(
        self,
        collection: str,
        document_id: str,
        filters: Sequence[Filter],
        fields: dict[str, Any],
    ) -> bool:
        conditions, params = build_conditions(filters, start_index=6)
        where = " AND ".join(["collection = $1", "id = $2", *conditions])
        async with self.db_pool.acquire() as conn:
            updated_id = await conn.fetchval(
                f"""
                UPDATE documents
                SET {_MERGE_SQL}
                WHERE {where}
                RETURNING id
                """,
                collection,
                document_id,
                *_merge_params(fields),
                *params,
            )
        return updated_id is not None

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Sequence[OrderBy] = (),
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        conditions, params = build_conditions(filters, start_index=2)
        sql = "SELECT id, data, field_types FROM documents WHERE " + " AND ".join(
            ["collection = $1", *conditions]
        )
        param_idx = 2 + len(params)

        if order_by:
            clauses = []
            for order in order_by:
                clauses.append(
                    f"data->(${param_idx}::text) {'DESC' if order.descending else 'ASC'} NULLS LAST"
                )
                params.append(order.field)
                param_idx += 1
            sql += " ORDER BY " + ", ".join(clauses)

        if limit is not None:
            sql += f" LIMIT ${param_idx}"
            params.append(limit)

        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch(sql, collection, *params)

        return [self._row_to_document(row) for row in rows]

    async def count(self, collection: str, filters: Sequence[Filter] = ()) -> int:
        conditions, params = build_conditions(filters, start_index=2)
        sql = "SELECT COUNT(*) FROM documents WHERE " + " AND ".join(
            ["collection = $1", *conditions]
        )
        async with self.db_pool.acquire() as conn:
            count = await conn.fetchval(sql, collection, *params)
        return count

    async def batch_delete(self, collection: str, document_ids: Iterable[str]) -> int:
        ids = list(document_ids)
        if not ids:
            return 0
        async with self.db_pool.acquire() as conn:
            async with conn.transaction():
                result = await conn.execute(
                    "DELETE FROM documents WHERE collection = $1 AND id = ANY($2::text[])",
                    collection,
                    ids,
                )
        return int(result.split()[-1]) if result else 0

    def _row_to_document(self, row: asyncpg.Record) -> dict[str, Any]:
        """Convert a database row to a document dictionary."""
        data = json.loads(row["data"]) if isinstance(row["data"], str) else row["data"]
        types = row["field_types"] or {}
        if isinstance(types, str):
            types = json.loads(types)
        document = _decode(data, types)
        document["id"] = row["id"]
        return document
