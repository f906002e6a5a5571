"""Reconciler — the ``clean`` sweep that empties scopes no longer in use."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import TYPE_CHECKING

from context_store.exceptions import ContextStoreError, StoreOperationError
from context_store.registry import META_SCOPE

if TYPE_CHECKING:
    from context_store.connection import ConnectionManager

logger = logging.getLogger(__name__)


def is_reserved(collection: str) -> bool:
    """Return ``True`` for collections the sweep must never touch."""
    return collection == META_SCOPE or collection.startswith("system.")


class Reconciler:
    """Compares the collections in the backend against the active scopes.

    Every collection that is neither active nor reserved is handed to
    *delete*.  Deletions run concurrently; if one fails the sweep fails, but
    deletions already under way are not rolled back.

    Parameters:
        connection: Connection used to enumerate collections.
        delete:     Coroutine function emptying one scope.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        delete: Callable[[str], Awaitable[None]],
    ) -> None:
        self._connection = connection
        self._delete = delete

    async def sweep(self, active_scopes: Iterable[str]) -> list[str]:
        """Empty every inactive scope and return their names.

        Raises:
            StoreUnavailableError: The store is not open.
            StoreOperationError: Listing collections or a deletion failed.
        """
        try:
            collections = await self._connection.backend.list_collections()
        except ContextStoreError:
            raise
        except Exception as exc:
            logger.error("Failed to list collections: %s", exc)
            raise StoreOperationError("clean", detail=str(exc)) from exc

        active = {str(scope) for scope in active_scopes}
        inactive = [name for name in collections if name not in active and not is_reserved(name)]
        if not inactive:
            return []

        try:
            await asyncio.gather(*(self._delete(name) for name in inactive))
        except ContextStoreError as exc:
            logger.error("Failed to clean context store: %s", exc)
            raise

        logger.info("Cleaned %d scope(s): %s", len(inactive), ", ".join(inactive))
        return inactive
