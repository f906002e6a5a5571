"""DocumentBackend protocol — the document CRUD surface the context store needs."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any


class DocumentBackend(ABC):
    """Abstract base for all document stores.

    A backend holds named *collections* of documents.  Every document is a
    ``dict`` with a unique ``"_id"`` within its collection.  The backend knows
    nothing about scopes or value encoding; it just persists documents.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection and wait until the store is ready."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the connection, letting in-flight operations finish."""
        ...

    @abstractmethod
    async def find(
        self,
        collection: str,
        ids: Sequence[str] | None,
        fields: Sequence[str],
        limit: int = 0,
    ) -> list[dict[str, Any]]:
        """Return documents projected to *fields*, in store order.

        ``ids=None`` matches every document; otherwise only documents whose
        ``_id`` is in *ids*.  ``limit=0`` means no limit.  A collection that
        does not exist yields ``[]``.
        """
        ...

    @abstractmethod
    async def bulk_upsert(
        self,
        collection: str,
        docs: Sequence[dict[str, Any]],
        *,
        ordered: bool = True,
        skip_validation: bool = False,
    ) -> None:
        """Create or replace each document by ``_id``.

        With ``ordered=False`` every document is attempted even if earlier
        ones fail; failures are raised together afterwards.
        """
        ...

    @abstractmethod
    async def delete_many(self, collection: str) -> int:
        """Delete every document in *collection*.  Return how many were removed."""
        ...

    @abstractmethod
    async def list_collections(self) -> list[str]:
        """Return the names of all collections in the store."""
        ...


def project(doc: dict[str, Any], fields: Sequence[str]) -> dict[str, Any]:
    """Return a copy of *doc* restricted to *fields*."""
    return {field: doc[field] for field in fields if field in doc}


def check_document(doc: dict[str, Any]) -> None:
    """Enforce the entry schema: ``_id`` must be a string.

    Raises:
        TypeError: The document has no string ``_id``.
    """
    if not isinstance(doc.get("_id"), str):
        raise TypeError(f"document '_id' must be a str, got {type(doc.get('_id')).__name__}")
