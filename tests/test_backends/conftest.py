"""Fixtures shared by the local backend tests."""

import pytest

from context_store.backends import InMemoryBackend, SQLiteBackend


@pytest.fixture(params=["memory", "sqlite"])
async def doc_backend(request, tmp_path):
    if request.param == "memory":
        backend = InMemoryBackend()
    else:
        backend = SQLiteBackend(str(tmp_path / "context.db"))
    await backend.connect()
    yield backend
    await backend.close()
