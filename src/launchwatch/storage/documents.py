"""Minimal document collections on top of SQLite.

Documents are JSON objects grouped by collection name. Queries are simple
equality filters where a list-valued field matches when it contains the
filter value, which is all the settings and reminder lookups need.
"""

from __future__ import annotations

import asyncio
import copy
import json
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

from ..core.sqlite_utils import connect_sqlite

DOCUMENT_SCHEMA_VERSION = 1
SUPPORTED_UPDATE_OPERATORS = frozenset({"$set", "$addToSet", "$pull"})


class DocumentStore(Protocol):
    async def find_one(
        self, collection: str, query: dict[str, Any]
    ) -> Optional[dict[str, Any]]: ...

    async def find_many(
        self, collection: str, query: dict[str, Any]
    ) -> list[dict[str, Any]]: ...

    async def update_one(
        self,
        collection: str,
        query: dict[str, Any],
        update: dict[str, Any],
        *,
        upsert: bool = False,
    ) -> Optional[dict[str, Any]]: ...


def matches_filter(document: dict[str, Any], query: dict[str, Any]) -> bool:
    for key, expected in query.items():
        if key not in document:
            return False
        actual = document[key]
        if actual == expected:
            continue
        if isinstance(actual, list) and expected in actual:
            continue
        return False
    return True


def apply_update(document: dict[str, Any], update: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``document`` with ``$set``/``$addToSet``/``$pull`` applied."""
    unknown = set(update) - SUPPORTED_UPDATE_OPERATORS
    if unknown:
        raise ValueError(f"unsupported update operators: {sorted(unknown)}")
    result = copy.deepcopy(document)
    for key, value in (update.get("$set") or {}).items():
        result[key] = copy.deepcopy(value)
    for key, value in (update.get("$addToSet") or {}).items():
        current = result.get(key)
        items = list(current) if isinstance(current, list) else []
        if value not in items:
            items.append(copy.deepcopy(value))
        result[key] = items
    for key, value in (update.get("$pull") or {}).items():
        current = result.get(key)
        if isinstance(current, list):
            result[key] = [item for item in current if item != value]
    return result


class SqliteDocumentStore:
    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="launchwatch-documents"
        )
        self._connection: Optional[sqlite3.Connection] = None

    @property
    def path(self) -> Path:
        return self._db_path

    async def initialize(self) -> None:
        await self._run(self._connection_sync)

    async def close(self) -> None:
        await self._run(self._close_sync)
        self._executor.shutdown(wait=True)

    async def find_one(
        self, collection: str, query: dict[str, Any]
    ) -> Optional[dict[str, Any]]:
        found = await self._run(self._find_sync, collection, query, 1)
        return found[0][1] if found else None

    async def find_many(
        self, collection: str, query: dict[str, Any]
    ) -> list[dict[str, Any]]:
        found = await self._run(self._find_sync, collection, query, None)
        return [document for _, document in found]

    async def update_one(
        self,
        collection: str,
        query: dict[str, Any],
        update: dict[str, Any],
        *,
        upsert: bool = False,
    ) -> Optional[dict[str, Any]]:
        return await self._run(self._update_one_sync, collection, query, update, upsert)

    async def _run(self, func: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, func, *args)

    def _connection_sync(self) -> sqlite3.Connection:
        if self._connection is None:
            self._connection = connect_sqlite(self._db_path)
            self._ensure_schema(self._connection)
        return self._connection

    def _close_sync(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        with conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_info (
                    version INTEGER NOT NULL
                )
                """
            )
            row = conn.execute("SELECT version FROM schema_info LIMIT 1").fetchone()
            if row is None:
                conn.execute(
                    "INSERT INTO schema_info(version) VALUES (?)",
                    (DOCUMENT_SCHEMA_VERSION,),
                )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    doc_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    collection TEXT NOT NULL,
                    body TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_documents_collection
                    ON documents(collection)
                """
            )

    def _find_sync(
        self, collection: str, query: dict[str, Any], limit: Optional[int]
    ) -> list[tuple[int, dict[str, Any]]]:
        conn = self._connection_sync()
        rows = conn.execute(
            "SELECT doc_id, body FROM documents WHERE collection = ? ORDER BY doc_id",
            (collection,),
        ).fetchall()
        found: list[tuple[int, dict[str, Any]]] = []
        for row in rows:
            document = json.loads(row["body"])
            if not isinstance(document, dict) or not matches_filter(document, query):
                continue
            found.append((int(row["doc_id"]), document))
            if limit is not None and len(found) >= limit:
                break
        return found

    def _update_one_sync(
        self,
        collection: str,
        query: dict[str, Any],
        update: dict[str, Any],
        upsert: bool,
    ) -> Optional[dict[str, Any]]:
        conn = self._connection_sync()
        found = self._find_sync(collection, query, 1)
        if found:
            doc_id, document = found[0]
            updated = apply_update(document, update)
            with conn:
                conn.execute(
                    "UPDATE documents SET body = ? WHERE doc_id = ?",
                    (json.dumps(updated, sort_keys=True), doc_id),
                )
            return updated
        if not upsert:
            return None
        seed = {
            key: copy.deepcopy(value)
            for key, value in query.items()
            if not isinstance(value, dict)
        }
        created = apply_update(seed, update)
        with conn:
            conn.execute(
                "INSERT INTO documents(collection, body) VALUES (?, ?)",
                (collection, json.dumps(created, sort_keys=True)),
            )
        return created
