"""Document backends the context store can persist to."""

from context_store.backends.base import DocumentBackend
from context_store.backends.memory import InMemoryBackend
from context_store.backends.mongo import MongoBackend
from context_store.backends.sqlite import SQLiteBackend

__all__ = ["DocumentBackend", "InMemoryBackend", "MongoBackend", "SQLiteBackend"]
