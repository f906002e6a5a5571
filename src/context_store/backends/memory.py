"""InMemoryBackend — zero-config, dict-backed document store for development and testing."""

from __future__ import annotations

import copy
from collections.abc import Sequence
from typing import Any

from context_store.backends.base import DocumentBackend, check_document, project
from context_store.exceptions import BulkWriteError


class InMemoryBackend(DocumentBackend):
    """In-memory store using nested dicts.  Data is lost on process exit.

    Documents are deep-copied on the way in and out, so callers never share
    mutable state with the store.
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}

    async def connect(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def find(
        self,
        collection: str,
        ids: Sequence[str] | None,
        fields: Sequence[str],
        limit: int = 0,
    ) -> list[dict[str, Any]]:
        docs = list(self._collections.get(collection, {}).values())
        if ids is not None:
            wanted = set(ids)
            docs = [doc for doc in docs if doc["_id"] in wanted]
        if limit:
            docs = docs[:limit]
        return [copy.deepcopy(project(doc, fields)) for doc in docs]

    async def bulk_upsert(
        self,
        collection: str,
        docs: Sequence[dict[str, Any]],
        *,
        ordered: bool = True,
        skip_validation: bool = False,
    ) -> None:
        target = self._collections.setdefault(collection, {})
        failures: list[tuple[Any, Exception]] = []
        for doc in docs:
            try:
                if not skip_validation:
                    check_document(doc)
                target[doc["_id"]] = copy.deepcopy(doc)
            except Exception as exc:
                failures.append((doc.get("_id"), exc))
                if ordered:
                    break
        if failures:
            raise BulkWriteError(collection, failures)

    async def delete_many(self, collection: str) -> int:
        docs = self._collections.get(collection)
        if not docs:
            return 0
        removed = len(docs)
        docs.clear()
        return removed

    async def list_collections(self) -> list[str]:
        return list(self._collections)
