"""Document store contract used by the job queue."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

FILTER_OPERATORS = ("==", "!=", "<", "<=", ">", ">=", "in", "not_in")


@dataclass(frozen=True)
class Filter:
    """A single field condition of a collection query."""

    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in FILTER_OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")
        if self.op in ("in", "not_in"):
            object.__setattr__(self, "value", tuple(self.value))


@dataclass(frozen=True)
class OrderBy:
    """Sort key of a collection query."""

    field: str
    descending: bool = False


class DocumentStore(ABC):
    """
    Minimal document database surface.

    Documents are plain dictionaries grouped in named collections. Every
    document returned by the store carries its identifier under ``"id"``.

    Example:
        ```python
        store = InMemoryDocumentStore()
        job_id = await store.add("jobs", {"status": "pending"})
        await store.update("jobs", job_id, {"status": "processing"})
        docs = await store.query(
            "jobs",
            filters=[Filter("status", "in", ["pending", "retrying"])],
            order_by=[OrderBy("created_at")],
            limit=1,
        )
        ```
    """

    @abstractmethod
    async def add(self, collection: str, data: dict[str, Any]) -> str:
        """Create a document and return its store-assigned id."""

    @abstractmethod
    async def get(self, collection: str, document_id: str) -> Optional[dict[str, Any]]:
        """Get a document by id, or None if it does not exist."""

    @abstractmethod
    async def update(
        self, collection: str, document_id: str, fields: dict[str, Any]
    ) -> None:
        """
        Merge top-level fields into an existing document.

        Raises:
            DocumentNotFoundError: If the document does not exist
        """

    @abstractmethod
    async def update_where(
        self,
        collection: str,
        document_id: str,
        filters: Sequence[Filter],
        fields: dict[str, Any],
    ) -> bool:
        """
        Merge fields into a document only if it currently satisfies filters.

        Returns True when the update was applied. The check and the write
        happen atomically.
        """

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Sequence[OrderBy] = (),
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """Return documents matching all filters."""

    @abstractmethod
    async def count(self, collection: str, filters: Sequence[Filter] = ()) -> int:
        """Count documents matching all filters."""

    @abstractmethod
    async def batch_delete(self, collection: str, document_ids: Iterable[str]) -> int:
        """Delete documents atomically. Returns the number deleted."""


def matches_filter(document: dict[str, Any], condition: Filter) -> bool:
    """Evaluate one filter against an in-memory document.

    A missing field or a None value never satisfies a comparison.
    """
    value = document.get(condition.field)
    op = condition.op

    if op == "in":
        return value in condition.value
    if op == "not_in":
        return value not in condition.value
    if op == "==":
        return value == condition.value
    if op == "!=":
        return value != condition.value

    if value is None or condition.value is None:
        return False
    try:
        if op == "<":
            return value < condition.value
        if op == "<=":
            return value <= condition.value
        if op == ">":
            return value > condition.value
        return value >= condition.value
    except TypeError:
        return False
