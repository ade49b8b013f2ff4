"""In-process document store."""

import copy
from typing import Any, Iterable, Optional, Sequence
from uuid import uuid4

from docqueue.documents import DocumentStore, Filter, OrderBy, matches_filter
from docqueue.errors import DocumentNotFoundError


class InMemoryDocumentStore(DocumentStore):
    """
    Dictionary-backed document store for a single process.

    Every call completes without yielding to the event loop, so each
    operation (including ``update_where``) is atomic with respect to other
    coroutines. Documents are deep-copied on the way in and out.
    """

    def __init__(self):
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}

    def _collection(self, name: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(name, {})

    @staticmethod
    def _export(document_id: str, document: dict[str, Any]) -> dict[str, Any]:
        exported = copy.deepcopy(document)
        exported["id"] = document_id
        return exported

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        document_id = uuid4().hex
        document = copy.deepcopy(data)
        document.pop("id", None)
        self._collection(collection)[document_id] = document
        return document_id

    async def get(self, collection: str, document_id: str) -> Optional[dict[str, Any]]:
        document = self._collection(collection).get(document_id)
        if document is None:
            return None
        return self._export(document_id, document)

    async def update(
        self, collection: str, document_id: str, fields: dict[str, Any]
    ) -> None:
        document = self._collection(collection).get(document_id)
        if document is None:
            raise DocumentNotFoundError(collection, document_id)
        document.update(copy.deepcopy(fields))

    async def update_where(
        self,
        collection: str,
        document_id: str,
        filters: Sequence[Filter],
        fields: dict[str, Any],
    ) -> bool:
        document = self._collection(collection).get(document_id)
        if document is None:
            return False
        if not all(matches_filter(document, f) for f in filters):
            return False
        document.update(copy.deepcopy(fields))
        return True

    def _select(
        self, collection: str, filters: Sequence[Filter]
    ) -> list[tuple[str, dict[str, Any]]]:
        return [
            (document_id, document)
            for document_id, document in self._collection(collection).items()
            if all(matches_filter(document, f) for f in filters)
        ]

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Sequence[OrderBy] = (),
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        selected = self._select(collection, filters)

        # Stable sorts applied from the least significant key up
        for order in reversed(order_by):
            present = [item for item in selected if item[1].get(order.field) is not None]
            missing = [item for item in selected if item[1].get(order.field) is None]
            present.sort(key=lambda item: item[1][order.field], reverse=order.descending)
            selected = present + missing

        if limit is not None:
            selected = selected[:limit]

        return [self._export(document_id, document) for document_id, document in selected]

    async def count(self, collection: str, filters: Sequence[Filter] = ()) -> int:
        return len(self._select(collection, filters))

    async def batch_delete(self, collection: str, document_ids: Iterable[str]) -> int:
        documents = self._collection(collection)
        deleted = 0
        for document_id in list(document_ids):
            if documents.pop(document_id, None) is not None:
                deleted += 1
        return deleted
