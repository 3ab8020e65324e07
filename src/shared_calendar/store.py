"""
Remote document store: the protocol the sync engine talks to, and a
SQLite-backed implementation that can live on a shared path.
"""

import asyncio
import json
import logging
import re
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any
from typing import Protocol

from shared_calendar.models import RecordDeleteFailed
from shared_calendar.models import RecordUpsertFailed
from shared_calendar.models import RemoteUnreachable

logger = logging.getLogger(__name__)

# Field names end up inside a JSON path expression.
_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class RemoteStore(Protocol):
    """What the sync engine needs from a document store."""

    async def upsert(self, collection: str, doc_id: str, document: dict[str, Any]) -> None: ...

    async def delete(self, collection: str, doc_id: str) -> None: ...

    async def query(
        self, collection: str, field: str, value: Any, limit: int | None = None
    ) -> list[dict[str, Any]]: ...

    async def ping(self) -> None: ...


class SQLiteDocumentStore:
    """JSON documents keyed by (collection, id) in a single SQLite file."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.conn: sqlite3.Connection | None = None
        # One connection shared by worker threads; sqlite3 objects are not
        # safe for concurrent use.
        self._lock = threading.Lock()

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    async def __aenter__(self):
        self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def connect(self):
        """Open (creating if needed) the store database."""
        if self.conn:
            return
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self._init_schema()
        except (OSError, sqlite3.Error) as e:
            self.conn = None
            raise RemoteUnreachable(f"Cannot open store {self.db_path}: {e}") from e

    def _init_schema(self):
        """Create the documents table if it doesn't exist."""
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                collection TEXT NOT NULL,
                id TEXT NOT NULL,
                body TEXT NOT NULL,
                write_seq INTEGER NOT NULL,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL,
                PRIMARY KEY (collection, id)
            )
        """)
        self.conn.execute(
            "CREATE INDEX IF NOT EXISTS documents_recent ON documents (collection, write_seq)"
        )
        self.conn.commit()

    def _require_conn(self) -> sqlite3.Connection:
        if not self.conn:
            raise RemoteUnreachable("Store not connected")
        return self.conn

    # ------------------------------------------------------------------ #
    # Blocking operations                                                  #
    # ------------------------------------------------------------------ #

    def upsert_sync(self, collection: str, doc_id: str, document: dict[str, Any]):
        """Insert or replace a document; created_at survives replacement."""
        conn = self._require_conn()
        timestamp = int(time.time())
        try:
            body = json.dumps(document, sort_keys=True)
        except (TypeError, ValueError) as e:
            raise RecordUpsertFailed(f"Document {doc_id} is not serialisable: {e}") from e
        with self._lock:
            try:
                conn.execute(
                    "INSERT INTO documents "
                    "(collection, id, body, write_seq, created_at, updated_at) "
                    "VALUES (?, ?, ?, "
                    " (SELECT COALESCE(MAX(write_seq), 0) + 1 FROM documents), ?, ?) "
                    "ON CONFLICT(collection, id) DO UPDATE SET "
                    " body = excluded.body, "
                    " write_seq = excluded.write_seq, "
                    " updated_at = excluded.updated_at",
                    (collection, doc_id, body, timestamp, timestamp),
                )
                conn.commit()
            except sqlite3.Error as e:
                raise RecordUpsertFailed(f"Failed to upsert {collection}/{doc_id}: {e}") from e

    def delete_sync(self, collection: str, doc_id: str):
        """Remove a document. Deleting an absent id is not an error."""
        conn = self._require_conn()
        with self._lock:
            try:
                conn.execute(
                    "DELETE FROM documents WHERE collection = ? AND id = ?",
                    (collection, doc_id),
                )
                conn.commit()
            except sqlite3.Error as e:
                raise RecordDeleteFailed(f"Failed to delete {collection}/{doc_id}: {e}") from e

    def query_sync(
        self, collection: str, field: str, value: Any, limit: int | None = None
    ) -> list[dict[str, Any]]:
        """Return documents whose top-level ``field`` equals ``value``, newest writes first."""
        if not _FIELD_RE.match(field):
            raise ValueError(f"Invalid field name: {field!r}")
        conn = self._require_conn()
        sql = (
            "SELECT id, body FROM documents "
            "WHERE collection = ? AND json_extract(body, ?) = ? "
            "ORDER BY write_seq DESC"
        )
        params: list[Any] = [collection, f"$.{field}", value]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        with self._lock:
            try:
                rows = conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise RemoteUnreachable(f"Query on {collection}.{field} failed: {e}") from e

        documents = []
        for row in rows:
            try:
                document = json.loads(row["body"])
            except ValueError:
                logger.debug("Skipping undecodable document %s/%s", collection, row["id"])
                continue
            if isinstance(document, dict):
                documents.append(document)
        return documents

    def ping_sync(self):
        conn = self._require_conn()
        with self._lock:
            try:
                conn.execute("SELECT 1")
            except sqlite3.Error as e:
                raise RemoteUnreachable(f"Store health check failed: {e}") from e

    def close(self):
        """Close the database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None

    # ------------------------------------------------------------------ #
    # RemoteStore interface                                                #
    # ------------------------------------------------------------------ #

    async def upsert(self, collection: str, doc_id: str, document: dict[str, Any]) -> None:
        await asyncio.to_thread(self.upsert_sync, collection, doc_id, document)

    async def delete(self, collection: str, doc_id: str) -> None:
        await asyncio.to_thread(self.delete_sync, collection, doc_id)

    async def query(
        self, collection: str, field: str, value: Any, limit: int | None = None
    ) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self.query_sync, collection, field, value, limit)

    async def ping(self) -> None:
        await asyncio.to_thread(self.ping_sync)


def query_session_summary(db_path: Path, collection: str) -> list:
    """
    Return aggregate rows per (session, owner) recorded in the store.

    Each row exposes: session_code, owner_id, count, last_write_at.
    Returns an empty list when the store file does not exist or has no
    documents table yet.
    """
    if not db_path.exists():
        return []
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    try:
        tables = {
            row["name"]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        }
        if "documents" not in tables:
            return []
        cursor = conn.execute(
            """
            SELECT
                json_extract(body, '$.sessionCode') AS session_code,
                json_extract(body, '$.ownerId')     AS owner_id,
                COUNT(*)                            AS count,
                MAX(updated_at)                     AS last_write_at
            FROM documents
            WHERE collection = ?
            GROUP BY session_code, owner_id
            ORDER BY session_code, owner_id
            """,
            (collection,),
        )
        return cursor.fetchall()
    finally:
        conn.close()
