"""ConnectionManager — owns the single backend connection shared by every scope."""

from __future__ import annotations

import logging

from context_store.backends import DocumentBackend, InMemoryBackend, MongoBackend, SQLiteBackend
from context_store.config import ContextConfig, build_connection_uri
from context_store.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Builds the connection target from configuration and manages its lifecycle.

    The manager is designed for dependency injection to support testing:
    pass a ready-made backend to skip creating one from the configuration.

    Example:
        manager = ConnectionManager(ContextConfig(host=["db1", "db2"], port=[27017, 27018]))
        await manager.open()
        backend = manager.backend

    Parameters:
        config:  Connection settings.
        backend: Optional backend to use instead of creating one from *config*.
    """

    def __init__(self, config: ContextConfig, backend: DocumentBackend | None = None) -> None:
        self._config = config
        self._injected_backend = backend
        self._backend: DocumentBackend | None = None

    @property
    def config(self) -> ContextConfig:
        return self._config

    @property
    def target(self) -> str:
        """Human-readable connection target, for log lines."""
        if self._config.backend == "sqlite":
            return f"sqlite:///{self._config.path}"
        if self._config.backend == "memory":
            return "memory://"
        return build_connection_uri(self._config, redact=True)

    @property
    def is_open(self) -> bool:
        return self._backend is not None

    @property
    def backend(self) -> DocumentBackend:
        """The live backend.

        Raises:
            StoreUnavailableError: The connection is not open.
        """
        if self._backend is None:
            raise StoreUnavailableError("Context store is not open")
        return self._backend

    def ensure_open(self) -> None:
        """Raise :class:`StoreUnavailableError` unless the connection is open."""
        if self._backend is None:
            raise StoreUnavailableError("Context store is not open")

    async def open(self) -> None:
        """Connect the backend and wait until it is ready.

        Opening an already open manager does nothing.

        Raises:
            StoreUnavailableError: The backend could not connect.
        """
        if self._backend is not None:
            return
        backend = self._injected_backend or self._create_backend()
        logger.info("Opening context store at %s", self.target)
        try:
            await backend.connect()
        except Exception as exc:
            logger.error("Failed to connect to context store at %s: %s", self.target, exc)
            raise StoreUnavailableError(f"Cannot connect to {self.target}: {exc}") from exc
        self._backend = backend
        logger.info("Connected to context store at %s", self.target)

    async def close(self) -> None:
        """Close the backend, letting in-flight operations finish.

        Raises:
            StoreUnavailableError: The backend failed to close cleanly.
        """
        if self._backend is None:
            return
        logger.info("Closing context store")
        backend, self._backend = self._backend, None
        try:
            await backend.close()
        except Exception as exc:
            logger.error("Failed to close context store: %s", exc)
            raise StoreUnavailableError(f"Cannot close {self.target}: {exc}") from exc
        logger.info("Closed context store")

    def _create_backend(self) -> DocumentBackend:
        """Create the backend named by the configuration."""
        if self._config.backend == "sqlite":
            return SQLiteBackend(self._config.path)
        if self._config.backend == "memory":
            return InMemoryBackend()
        return MongoBackend(build_connection_uri(self._config), self._config.database)
