"""SQLiteBackend — durable, single-file document store using aiosqlite."""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

import aiosqlite

from context_store.backends.base import DocumentBackend, check_document, project
from context_store.exceptions import BulkWriteError, StoreUnavailableError

_CREATE_TABLES = """
CREATE TABLE IF NOT EXISTS collections (
    name TEXT PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS documents (
    collection TEXT NOT NULL,
    id         TEXT NOT NULL,
    body       TEXT NOT NULL,
    PRIMARY KEY (collection, id)
);
"""

_UPSERT = """
INSERT INTO documents (collection, id, body) VALUES (?, ?, ?)
ON CONFLICT (collection, id) DO UPDATE SET body = excluded.body
"""


class SQLiteBackend(DocumentBackend):
    """Persistent store backed by a single SQLite file.

    Documents are stored as JSON in one table keyed by ``(collection, id)``.
    Collection names live in a separate table so an emptied collection is
    still listed, the way a document database keeps an empty collection.
    Rows keep their ``rowid`` across upserts, which gives a stable store order.

    Parameters:
        db_path: Path to the SQLite database file.  Use ``":memory:"``
                 for an in-memory database (useful for testing).
    """

    def __init__(self, db_path: str = "context.db") -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None

    @property
    def db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise StoreUnavailableError(f"SQLite database '{self._db_path}' is not open")
        return self._db

    async def connect(self) -> None:
        if self._db is None:
            self._db = await aiosqlite.connect(self._db_path)
            await self._db.executescript(_CREATE_TABLES)
            await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    # ── DocumentBackend protocol ─────────────────────────────

    async def find(
        self,
        collection: str,
        ids: Sequence[str] | None,
        fields: Sequence[str],
        limit: int = 0,
    ) -> list[dict[str, Any]]:
        sql = "SELECT body FROM documents WHERE collection = ?"
        params: list[Any] = [collection]
        if ids is not None:
            if not ids:
                return []
            sql += f" AND id IN ({', '.join('?' for _ in ids)})"
            params.extend(ids)
        sql += " ORDER BY rowid LIMIT ?"
        params.append(limit or -1)

        cursor = await self.db.execute(sql, params)
        rows = await cursor.fetchall()
        return [project(json.loads(row[0]), fields) for row in rows]

    async def bulk_upsert(
        self,
        collection: str,
        docs: Sequence[dict[str, Any]],
        *,
        ordered: bool = True,
        skip_validation: bool = False,
    ) -> None:
        db = self.db
        await db.execute("INSERT OR IGNORE INTO collections (name) VALUES (?)", (collection,))

        failures: list[tuple[Any, Exception]] = []
        for doc in docs:
            try:
                if not skip_validation:
                    check_document(doc)
                await db.execute(_UPSERT, (collection, str(doc["_id"]), json.dumps(doc)))
            except Exception as exc:
                failures.append((doc.get("_id"), exc))
                if ordered:
                    break
        await db.commit()

        if failures:
            raise BulkWriteError(collection, failures)

    async def delete_many(self, collection: str) -> int:
        cursor = await self.db.execute(
            "DELETE FROM documents WHERE collection = ?",
            (collection,),
        )
        await self.db.commit()
        return cursor.rowcount

    async def list_collections(self) -> list[str]:
        cursor = await self.db.execute("SELECT name FROM collections ORDER BY rowid")
        rows = await cursor.fetchall()
        return [row[0] for row in rows]
