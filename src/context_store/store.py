"""ContextStore — the scoped get/set/keys/delete/clean surface used by the flow runtime."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from datetime import datetime
from typing import Any

from context_store.backends.base import DocumentBackend
from context_store.codec import decode, encode
from context_store.config import ContextConfig
from context_store.connection import ConnectionManager
from context_store.exceptions import ContextStoreError, InvalidArgumentError, StoreOperationError
from context_store.reconciler import Reconciler
from context_store.registry import ScopeRegistry

logger = logging.getLogger(__name__)

Callback = Callable[..., Any]


class ContextStore:
    """Persists key/value pairs per *scope* (a flow id, a node id, ``"global"``).

    Each scope lives in its own collection of ``{"_id": key, "value": value}``
    documents.  Function values are encoded to source text on write and
    rebuilt on read (see :mod:`context_store.codec`).

    ``get``, ``set`` and ``keys`` validate their arguments immediately and
    return an awaitable.  They accept an optional node-style *callback*
    invoked as ``callback(error, *results)``; sync and async callbacks both
    work, and an exception raised by a callback is logged, never propagated.
    When a callback is given, failures are reported to it instead of raised.

    Example:
        store = ContextStore({"backend": "memory"})
        await store.open()
        await store.set("global", ["a", "b"], [1, lambda x: x + 1])
        a, inc = await store.get("global", ["a", "b"])

    Parameters:
        config:  Connection settings, as a :class:`ContextConfig` or plain mapping.
        backend: Optional pre-built backend, overriding ``config.backend``.
        clock:   Injectable ``now()`` used to timestamp new scopes.
    """

    def __init__(
        self,
        config: ContextConfig | Mapping[str, Any] | None = None,
        *,
        backend: DocumentBackend | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if not isinstance(config, ContextConfig):
            config = ContextConfig.model_validate(dict(config or {}))
        self._connection = ConnectionManager(config, backend)
        self._registry = ScopeRegistry(self._connection, clock)
        self._reconciler = Reconciler(self._connection, self.delete)

    # ── lifecycle ────────────────────────────────────────────

    async def open(self) -> None:
        """Connect to the backing store.  Call before any other operation."""
        await self._connection.open()

    async def close(self) -> None:
        """Finish pending bookkeeping writes and close the connection."""
        await self._registry.flush()
        await self._connection.close()

    async def __aenter__(self) -> ContextStore:
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ── operations ───────────────────────────────────────────

    def get(
        self,
        scope: str,
        key: str | list[str],
        callback: Callback | None = None,
    ) -> Awaitable[list[Any]]:
        """Return the values stored under *key* (one key or a list of keys).

        Values come back in the order the store returns the documents, which
        is not necessarily the order of *key*.  Missing keys are omitted, not
        padded with ``None``.

        Raises:
            InvalidArgumentError: *callback* is given but not callable.
        """
        _check_callback(callback)
        return self._get(scope, key, callback)

    def set(
        self,
        scope: str,
        key: str | list[str],
        value: Any,
        callback: Callback | None = None,
    ) -> Awaitable[None]:
        """Store *value* under *key*, or each value under its paired key.

        A single key stores *value* as-is, even when it is a list.  With a
        list of keys, a non-list *value* is treated as a one-element list.
        The shorter of the two lists is padded with ``None``; pairs left
        without a key are skipped.  All pairs go out as one unordered bulk
        upsert, so one failing pair does not block the others.

        Raises:
            InvalidArgumentError: *callback* is given but not callable.
        """
        _check_callback(callback)
        return self._set(scope, key, value, callback)

    def keys(self, scope: str, callback: Callback | None = None) -> Awaitable[list[str]]:
        """Return every key in *scope*, in store order.

        Raises:
            InvalidArgumentError: *callback* is given but not callable.
        """
        _check_callback(callback)
        return self._keys(scope, callback)

    async def delete(self, scope: str) -> None:
        """Remove every entry in *scope*.

        The scope stays registered: its cached model and meta-record remain,
        so the scope is empty rather than gone.
        """
        logger.debug("Deleting scope '%s'", scope)
        try:
            self._connection.ensure_open()
            removed = await self._registry.get_model(scope).delete_many()
        except Exception as exc:
            await self._report(None, "delete", scope, exc)
            return
        logger.debug("Deleted %d entries from scope '%s'", removed, scope)

    async def clean(self, active_scopes: Iterable[str]) -> list[str]:
        """Empty every stored scope not listed in *active_scopes*.

        Returns:
            The names of the scopes that were emptied.
        """
        logger.info("Cleaning context store")
        return await self._reconciler.sweep(active_scopes)

    # ── introspection ────────────────────────────────────────

    @property
    def config(self) -> ContextConfig:
        return self._connection.config

    @property
    def connection(self) -> ConnectionManager:
        return self._connection

    @property
    def registry(self) -> ScopeRegistry:
        return self._registry

    # ── internals ────────────────────────────────────────────

    async def _get(self, scope: str, key: str | list[str], callback: Callback | None) -> list[Any]:
        keys = list(dict.fromkeys(str(k) for k in _as_list(key)))
        logger.debug("Getting %s from scope '%s'", keys, scope)
        try:
            model = self._registry.get_model(scope, create=False)
            docs = await model.find(keys, ("value",), limit=len(keys)) if keys else []
        except Exception as exc:
            await self._report(callback, "get", scope, exc)
            return []

        values = [decode(doc.get("value")) for doc in docs]
        if callback is not None:
            await _invoke(callback, None, *values)
        return values

    async def _set(
        self,
        scope: str,
        key: str | list[str],
        value: Any,
        callback: Callback | None,
    ) -> None:
        keys, values = _pair(key, value)
        docs = [{"_id": str(k), "value": encode(v)} for k, v in zip(keys, values) if k is not None]
        if len(docs) < len(keys):
            logger.warning(
                "Skipping %d value(s) without a key in scope '%s'", len(keys) - len(docs), scope
            )
        logger.debug("Setting %s in scope '%s'", [doc["_id"] for doc in docs], scope)

        try:
            self._connection.ensure_open()
            model = self._registry.get_model(scope)
            if docs:
                await model.bulk_write(docs, ordered=False, skip_validation=True)
        except Exception as exc:
            await self._report(callback, "set", scope, exc)
            return

        if callback is not None:
            await _invoke(callback, None)

    async def _keys(self, scope: str, callback: Callback | None) -> list[str]:
        logger.debug("Getting keys for scope '%s'", scope)
        try:
            docs = await self._registry.get_model(scope, create=False).find_all(("_id",))
        except Exception as exc:
            await self._report(callback, "keys", scope, exc)
            return []

        keys = [doc["_id"] for doc in docs]
        if callback is not None:
            await _invoke(callback, None, keys)
        return keys

    async def _report(
        self,
        callback: Callback | None,
        operation: str,
        scope: str,
        exc: Exception,
    ) -> None:
        """Hand a failure to *callback*, or raise it when there is none."""
        logger.error("Context store '%s' failed on scope '%s': %s", operation, scope, exc)
        error: ContextStoreError
        if isinstance(exc, ContextStoreError):
            error = exc
        else:
            error = StoreOperationError(operation, scope, str(exc))
            error.__cause__ = exc

        if callback is None:
            raise error
        await _invoke(callback, error)


def create_store(config: ContextConfig | Mapping[str, Any] | None = None) -> ContextStore:
    """Build a :class:`ContextStore` from the host runtime's configuration."""
    return ContextStore(config)


def _check_callback(callback: Callback | None) -> None:
    if callback is not None and not callable(callback):
        raise InvalidArgumentError(f"Callback must be a function, got {type(callback).__name__}")


async def _invoke(callback: Callback, *args: Any) -> None:
    try:
        result = callback(*args)
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.exception("Context store callback %r raised", callback)


def _as_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, list | tuple) else [value]


def _pair(key: Any, value: Any) -> tuple[list[Any], list[Any]]:
    """Normalize *key*/*value* into equal-length lists, padding with ``None``."""
    if isinstance(key, list | tuple):
        keys = list(key)
        values = _as_list(value)
    else:
        keys, values = [key], [value]

    width = max(len(keys), len(values))
    keys.extend([None] * (width - len(keys)))
    values.extend([None] * (width - len(values)))
    return keys, values
