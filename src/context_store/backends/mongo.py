"""MongoBackend — MongoDB document store using pymongo's asyncio client."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from pymongo import AsyncMongoClient, UpdateOne
from pymongo.errors import BulkWriteError as MongoBulkWriteError

from context_store.backends.base import DocumentBackend
from context_store.exceptions import BulkWriteError, StoreUnavailableError

SOCKET_TIMEOUT_MS = 60_000


class MongoBackend(DocumentBackend):
    """Store backed by a MongoDB database; every collection is a native collection.

    The driver always enables TCP keep-alive on its sockets, so only the
    socket idle timeout is configured here.

    Parameters:
        uri:            MongoDB connection string.
        database:       Database holding the scope collections.
        client_options: Extra keyword arguments for :class:`AsyncMongoClient`.
    """

    def __init__(self, uri: str, database: str, **client_options: Any) -> None:
        self._uri = uri
        self._database = database
        self._client_options = {"socketTimeoutMS": SOCKET_TIMEOUT_MS, **client_options}
        self._client: AsyncMongoClient[dict[str, Any]] | None = None

    @property
    def db(self) -> Any:
        if self._client is None:
            raise StoreUnavailableError("MongoDB client is not connected")
        return self._client.get_database(self._database)

    async def connect(self) -> None:
        client: AsyncMongoClient[dict[str, Any]] = AsyncMongoClient(
            self._uri, **self._client_options
        )
        try:
            await client.admin.command("ping")
        except Exception:
            await client.close()
            raise
        self._client = client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    # ── DocumentBackend protocol ─────────────────────────────

    async def find(
        self,
        collection: str,
        ids: Sequence[str] | None,
        fields: Sequence[str],
        limit: int = 0,
    ) -> list[dict[str, Any]]:
        query: dict[str, Any] = {} if ids is None else {"_id": {"$in": list(ids)}}
        projection: dict[str, bool] = {"_id": "_id" in fields}
        projection.update({field: True for field in fields if field != "_id"})

        cursor = self.db[collection].find(query, projection, limit=limit)
        docs: list[dict[str, Any]] = await cursor.to_list()
        return docs

    async def bulk_upsert(
        self,
        collection: str,
        docs: Sequence[dict[str, Any]],
        *,
        ordered: bool = True,
        skip_validation: bool = False,
    ) -> None:
        requests = [
            UpdateOne(
                {"_id": doc["_id"]},
                {"$set": {k: v for k, v in doc.items() if k != "_id"}},
                upsert=True,
            )
            for doc in docs
        ]
        if not requests:
            return

        try:
            await self.db[collection].bulk_write(
                requests,
                ordered=ordered,
                bypass_document_validation=skip_validation,
            )
        except MongoBulkWriteError as exc:
            failures: list[tuple[Any, Exception]] = [
                (docs[error["index"]]["_id"], exc)
                for error in exc.details.get("writeErrors", [])
            ]
            raise BulkWriteError(collection, failures) from exc

    async def delete_many(self, collection: str) -> int:
        result = await self.db[collection].delete_many({})
        deleted: int = result.deleted_count
        return deleted

    async def list_collections(self) -> list[str]:
        names: list[str] = await self.db.list_collection_names()
        return names
