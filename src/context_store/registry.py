"""ScopeRegistry — maps scope names to collection handles, created on demand."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from context_store.connection import ConnectionManager

logger = logging.getLogger(__name__)

META_SCOPE = "_collections"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ScopeModel:
    """Handle on the collection behind one scope.

    Entry documents have the shape ``{"_id": str, "value": Any}``.  The
    handle resolves the live backend on every call, so it stays usable
    across a close/open cycle of the connection.
    """

    def __init__(self, name: str, connection: ConnectionManager) -> None:
        self.name = name
        self._connection = connection

    def __repr__(self) -> str:
        return f"ScopeModel({self.name!r})"

    async def find(
        self,
        ids: Sequence[str],
        fields: Sequence[str],
        limit: int = 0,
    ) -> list[dict[str, Any]]:
        return await self._connection.backend.find(self.name, ids, fields, limit)

    async def find_all(self, fields: Sequence[str]) -> list[dict[str, Any]]:
        return await self._connection.backend.find(self.name, None, fields)

    async def bulk_write(
        self,
        docs: Sequence[dict[str, Any]],
        *,
        ordered: bool = True,
        skip_validation: bool = False,
    ) -> None:
        await self._connection.backend.bulk_upsert(
            self.name, docs, ordered=ordered, skip_validation=skip_validation
        )

    async def delete_many(self) -> int:
        return await self._connection.backend.delete_many(self.name)


class ScopeRegistry:
    """Lazily creates and caches one :class:`ScopeModel` per scope.

    Creating a model also records a meta-record ``{"_id": scope, "date": ms}``
    in the reserved ``_collections`` scope.  That write runs in the
    background: :meth:`get_model` never waits for it, and a failed write is
    logged rather than raised.  Model creation itself has no ``await`` between
    lookup and insert, so concurrent first access to a scope registers it once.

    Parameters:
        connection: Connection the models resolve their backend through.
        clock:      Injectable ``now()`` for testing; must return an aware datetime.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._connection = connection
        self._clock = clock or _utcnow
        self._models: dict[str, ScopeModel] = {META_SCOPE: ScopeModel(META_SCOPE, connection)}
        self._pending: set[asyncio.Task[None]] = set()

    def get_model(self, scope: str, *, create: bool = True) -> ScopeModel:
        """Return the cached model for *scope*, creating and registering it if needed.

        With ``create=False`` an unknown scope gets a throwaway handle that is
        neither cached nor recorded, so read-only lookups leave no trace.
        """
        model = self._models.get(scope)
        if model is not None:
            return model

        model = ScopeModel(scope, self._connection)
        if create:
            self._models[scope] = model
            self._record(scope)
        return model

    def cached_scopes(self) -> list[str]:
        """Return the scopes with a cached model, meta scope excluded."""
        return [name for name in self._models if name != META_SCOPE]

    async def flush(self) -> None:
        """Wait for every pending meta-record write."""
        while self._pending:
            await asyncio.gather(*self._pending)

    def _record(self, scope: str) -> None:
        date = int(self._clock().timestamp() * 1000)
        task = asyncio.get_running_loop().create_task(self._write_meta(scope, date))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write_meta(self, scope: str, date: int) -> None:
        try:
            await self._models[META_SCOPE].bulk_write(
                [{"_id": scope, "date": date}],
                ordered=False,
                skip_validation=True,
            )
        except Exception:
            logger.warning("Failed to record creation of scope '%s'", scope, exc_info=True)
