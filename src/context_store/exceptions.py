"""Custom exceptions for the context_store package."""

from __future__ import annotations

from typing import Any


class ContextStoreError(Exception):
    """Base exception for all context store errors."""


class InvalidArgumentError(ContextStoreError, TypeError):
    """Raised synchronously when a caller passes an unusable argument."""


class StoreUnavailableError(ContextStoreError):
    """Raised when the backing store cannot be reached, or is not open."""


class StoreOperationError(ContextStoreError):
    """Raised when a backend operation fails on an open store."""

    def __init__(self, operation: str, scope: str = "", detail: str = "") -> None:
        self.operation = operation
        self.scope = scope
        msg = f"Store error during '{operation}'"
        if scope:
            msg += f" on scope '{scope}'"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class BulkWriteError(StoreOperationError):
    """Raised when one or more documents of an unordered bulk write fail.

    Attributes:
        failures: ``(document_id, error)`` pairs for every failed document.
                  Documents not listed here were written.
    """

    def __init__(self, collection: str, failures: list[tuple[Any, Exception]]) -> None:
        self.failures = failures
        ids = ", ".join(repr(doc_id) for doc_id, _ in failures)
        super().__init__("bulk_write", collection, f"{len(failures)} document(s) failed: {ids}")
