"""
SQLite-backed document store.

Provides an async document store over aiosqlite with connection management,
schema versioning and atomic batch commits. Documents are stored as JSON in a
single table keyed by (collection, id).
"""

import asyncio
import json
import logging
import re
import sqlite3
from contextlib import asynccontextmanager
from datetime import date
from datetime import datetime
from pathlib import Path
from typing import Any
from typing import AsyncGenerator
from typing import Dict
from typing import List
from typing import Optional
from typing import Sequence
from typing import Tuple

import aiosqlite

from production_sync.exceptions import StoreError
from production_sync.settings import Settings
from production_sync.settings import get_settings
from production_sync.store import Document
from production_sync.store import DocumentStore
from production_sync.store import Filters
from production_sync.store import MemoryDocumentStore
from production_sync.store import Write
from production_sync.store import apply_write
from production_sync.store import matches
from production_sync.store import server_timestamp

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

_FIELD_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _json_default(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _dumps(document: Document) -> str:
    return json.dumps(document, default=_json_default, ensure_ascii=False)


class SqliteDocumentStore(DocumentStore):
    """
    Async SQLite document store.

    One connection is shared per store instance; an asyncio lock serializes
    access so that a batch commit is never interleaved with other statements.
    """

    def __init__(self, db_path: Path, timeout: float = 30.0) -> None:
        """Initialize store with the database file path."""
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.timeout = timeout
        self._connection: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Initialize database schema and run migrations."""
        async with self._lock:
            conn = await self._connect()
            await self._ensure_schema(conn)
            await self._run_migrations(conn)
        logger.info(f"Document store initialized at {self.db_path}")

    async def close(self) -> None:
        """Close database connection cleanly."""
        async with self._lock:
            if self._connection:
                await self._connection.close()
                self._connection = None

    async def _connect(self) -> aiosqlite.Connection:
        if not self._connection:
            self._connection = await aiosqlite.connect(
                self.db_path,
                timeout=self.timeout,
                isolation_level=None,  # Autocommit; batches use explicit transactions
            )
            await self._connection.execute("PRAGMA journal_mode = WAL")
            await self._connection.execute("PRAGMA synchronous = NORMAL")
        return self._connection

    @asynccontextmanager
    async def _get_connection(self) -> AsyncGenerator[aiosqlite.Connection, None]:
        """Get the shared connection while holding the store lock."""
        async with self._lock:
            try:
                yield await self._connect()
            except sqlite3.Error as exc:
                raise StoreError(f"SQLite error: {exc}") from exc

    async def _ensure_schema(self, conn: aiosqlite.Connection) -> None:
        """Create tables and indexes if they don't exist."""
        schema_sql = """
        CREATE TABLE IF NOT EXISTS documents (
            collection TEXT NOT NULL,
            id TEXT NOT NULL,
            data TEXT NOT NULL,
            created_at TIMESTAMP,
            updated_at TIMESTAMP,
            PRIMARY KEY (collection, id)
        );

        -- Lookups the engine runs on every call
        CREATE INDEX IF NOT EXISTS idx_documents_crew_link
            ON documents(collection, json_extract(data, '$.linkedCrewMemberId'));
        CREATE INDEX IF NOT EXISTS idx_documents_cast_link
            ON documents(collection, json_extract(data, '$.linkedCastMemberId'));
        CREATE INDEX IF NOT EXISTS idx_documents_equipment_link
            ON documents(collection, json_extract(data, '$.linkedEquipmentId'));
        CREATE INDEX IF NOT EXISTS idx_documents_location_link
            ON documents(collection, json_extract(data, '$.linkedLocationId'));
        CREATE INDEX IF NOT EXISTS idx_documents_shooting_day
            ON documents(collection, json_extract(data, '$.shootingDayId'));
        CREATE INDEX IF NOT EXISTS idx_documents_scene
            ON documents(collection, json_extract(data, '$.sceneId'));
        """
        await conn.executescript(schema_sql)

    async def _run_migrations(self, conn: aiosqlite.Connection) -> None:
        """Run database migrations if needed."""
        cursor = await conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
        )
        has_version_table = await cursor.fetchone() is not None

        if not has_version_table:
            await conn.execute("CREATE TABLE schema_version (version INTEGER PRIMARY KEY)")
            await conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
            logger.info(f"Document store schema initialized to version {SCHEMA_VERSION}")

    @staticmethod
    def _where(collection: str, filters: Optional[Filters]) -> Tuple[str, List[Any]]:
        """Build the WHERE clause, pushing scalar equality filters into SQL."""
        clauses = ["collection = ?"]
        params: List[Any] = [collection]
        for field, value in (filters or {}).items():
            if not _FIELD_NAME.match(field):
                raise ValueError(f"Unsupported filter field name: {field!r}")
            if value is None:
                clauses.append(f"json_extract(data, '$.{field}') IS NULL")
            elif isinstance(value, (str, int, float)) and not isinstance(value, bool):
                clauses.append(f"json_extract(data, '$.{field}') = ?")
                params.append(value)
        return " AND ".join(clauses), params

    async def get_all(self, collection: str, filters: Optional[Filters] = None) -> List[Document]:
        where, params = self._where(collection, filters)
        async with self._get_connection() as conn:
            cursor = await conn.execute(f"SELECT data FROM documents WHERE {where}", params)
            rows = await cursor.fetchall()

        # Re-check in Python so non-scalar filters behave like the memory store
        documents = [json.loads(row[0]) for row in rows]
        return [doc for doc in documents if matches(doc, filters)]

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                "SELECT data FROM documents WHERE collection = ? AND id = ?",
                (collection, doc_id),
            )
            row = await cursor.fetchone()
        return json.loads(row[0]) if row else None

    async def commit_batch(self, writes: Sequence[Write]) -> None:
        if not writes:
            return

        stamp = server_timestamp()
        async with self._get_connection() as conn:
            await conn.execute("BEGIN IMMEDIATE")
            try:
                for write in writes:
                    cursor = await conn.execute(
                        "SELECT data FROM documents WHERE collection = ? AND id = ?",
                        (write.collection, write.doc_id),
                    )
                    row = await cursor.fetchone()
                    existing = json.loads(row[0]) if row else None
                    document = apply_write(existing, write, stamp)
                    await conn.execute(
                        """
                        INSERT OR REPLACE INTO documents (collection, id, data, created_at, updated_at)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        (
                            write.collection, write.doc_id, _dumps(document),
                            document.get("createdAt"), document["updatedAt"],
                        )
                    )
                await conn.execute("COMMIT")
            except Exception:
                await conn.execute("ROLLBACK")
                raise

        logger.debug(f"Committed batch of {len(writes)} writes to {self.db_path}")

    async def seed(self, collection: str, document: Document) -> None:
        """Insert or replace a document directly, bypassing batches and timestamps."""
        if not document.get("id"):
            raise ValueError("Seeded documents need an id")
        async with self._get_connection() as conn:
            await conn.execute(
                """
                INSERT OR REPLACE INTO documents (collection, id, data, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    collection, document["id"], _dumps(document),
                    document.get("createdAt"), document.get("updatedAt"),
                )
            )

    async def get_store_stats(self) -> Dict[str, Any]:
        """
        Get document counts per collection for monitoring.

        Returns:
            Dictionary with per-collection counts and the database file size
        """
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                "SELECT collection, COUNT(*) FROM documents GROUP BY collection"
            )
            counts = {row[0]: row[1] async for row in cursor}

            cursor = await conn.execute("SELECT MAX(updated_at) FROM documents")
            last_update = await cursor.fetchone()

        return {
            "collections": counts,
            "total_documents": sum(counts.values()),
            "last_update": last_update[0] if last_update else None,
            "db_size_bytes": self.db_path.stat().st_size if self.db_path.exists() else 0,
        }

    async def __aenter__(self) -> "SqliteDocumentStore":
        """Async context manager entry."""
        await self.initialize()
        return self


async def create_store(settings: Optional[Settings] = None) -> DocumentStore:
    """
    Build the document store selected by settings.

    The SQLite store is returned initialized and ready for use.
    """
    settings = settings or get_settings()
    if settings.store_backend == "memory":
        return MemoryDocumentStore()

    store = SqliteDocumentStore(settings.db_path, timeout=settings.db_timeout)
    await store.initialize()
    return store
