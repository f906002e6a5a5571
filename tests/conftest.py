"""Shared test fixtures."""

from collections.abc import Sequence
from typing import Any

import pytest

from context_store import ContextConfig, ContextStore
from context_store.backends import InMemoryBackend
from context_store.connection import ConnectionManager


class InstrumentedBackend(InMemoryBackend):
    """InMemoryBackend that records every call and can be told to fail.

    ``failures`` maps a method name to the exception that method raises.
    """

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[tuple[str, str]] = []
        self.failures: dict[str, Exception] = {}

    def _enter(self, method: str, collection: str = "") -> None:
        self.calls.append((method, collection))
        if method in self.failures:
            raise self.failures[method]

    async def find(
        self,
        collection: str,
        ids: Sequence[str] | None,
        fields: Sequence[str],
        limit: int = 0,
    ) -> list[dict[str, Any]]:
        self._enter("find", collection)
        return await super().find(collection, ids, fields, limit)

    async def bulk_upsert(
        self,
        collection: str,
        docs: Sequence[dict[str, Any]],
        *,
        ordered: bool = True,
        skip_validation: bool = False,
    ) -> None:
        self._enter("bulk_upsert", collection)
        await super().bulk_upsert(
            collection, docs, ordered=ordered, skip_validation=skip_validation
        )

    async def delete_many(self, collection: str) -> int:
        self._enter("delete_many", collection)
        return await super().delete_many(collection)

    async def list_collections(self) -> list[str]:
        self._enter("list_collections")
        return await super().list_collections()


@pytest.fixture
def backend():
    return InstrumentedBackend()


@pytest.fixture
async def connection(backend):
    manager = ConnectionManager(ContextConfig(backend="memory"), backend)
    await manager.open()
    yield manager
    await manager.close()


@pytest.fixture
async def store(backend):
    context = ContextStore({"backend": "memory"}, backend=backend)
    await context.open()
    yield context
    await context.close()
