"""SQLite-backed embedding store.

Persists classified embedding rows to a local SQLite database at
``data/kb_embeddings.db``.  Uses ``aiosqlite`` for async I/O.  Vectors are
stored in pgvector text form (``"[0.1,0.2,...]"``) and metadata/tags as
JSON, so rows can be migrated to Postgres as-is.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from kbembed.interfaces.embedding_store import IEmbeddingStore
from kbembed.models.embedding import StoredRow

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/kb_embeddings.db")

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS kb_embeddings (
    id                         INTEGER PRIMARY KEY AUTOINCREMENT,
    entity_type                TEXT    NOT NULL,
    entity_id                  TEXT    NOT NULL,
    source_id                  TEXT,
    chunk_idx                  INTEGER NOT NULL,
    content                    TEXT    NOT NULL,
    embedding                  TEXT    NOT NULL,
    tags                       TEXT    NOT NULL DEFAULT '[]',
    metadata                   TEXT    NOT NULL DEFAULT '{}',
    document_type              TEXT,
    classification_confidence  REAL,
    classification_model       TEXT,
    classification_timestamp   TEXT,
    created_at                 TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_kb_embeddings_entity ON kb_embeddings(entity_type, entity_id);",
    "CREATE INDEX IF NOT EXISTS idx_kb_embeddings_doc_type ON kb_embeddings(document_type);",
]

_INSERT_SQL = """\
INSERT INTO kb_embeddings (
    entity_type, entity_id, source_id, chunk_idx, content, embedding, tags, metadata,
    document_type, classification_confidence, classification_model, classification_timestamp
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_SELECT_COLUMNS = (
    "entity_type, entity_id, source_id, chunk_idx, content, embedding, tags, metadata, "
    "document_type, classification_confidence, classification_model, classification_timestamp"
)


class SQLiteEmbeddingStore(IEmbeddingStore):
    """SQLite-backed embedding row persistence."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the kb_embeddings table and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("embedding_db_initialized", path=str(self._db_path))

    async def bulk_insert(self, rows: list[StoredRow]) -> int:
        """Insert all *rows* in one transaction; roll back on any failure."""
        if not rows:
            return 0

        params = [_to_params(row) for row in rows]
        async with aiosqlite.connect(str(self._db_path)) as db:
            try:
                await db.executemany(_INSERT_SQL, params)
                await db.commit()
            except aiosqlite.Error:
                await db.rollback()
                raise

        logger.info(
            "embeddings_stored",
            rows=len(rows),
            entity_type=rows[0].entity_type,
            entity_id=rows[0].entity_id,
        )
        return len(rows)

    async def count(self, entity_type: str | None = None, entity_id: str | None = None) -> int:
        """Return the number of stored rows, optionally for one entity."""
        where, args = _entity_filter(entity_type, entity_id)
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(f"SELECT COUNT(*) FROM kb_embeddings{where}", args)  # noqa: S608
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def list_rows(
        self, entity_type: str | None = None, entity_id: str | None = None
    ) -> list[StoredRow]:
        """Return stored rows ordered by entity and chunk index."""
        where, args = _entity_filter(entity_type, entity_id)
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                f"SELECT {_SELECT_COLUMNS} FROM kb_embeddings{where} "  # noqa: S608
                "ORDER BY entity_type, entity_id, chunk_idx, id",
                args,
            )
            rows = await cursor.fetchall()
        return [_from_row(dict(r)) for r in rows]

    def get_provider_name(self) -> str:
        return "sqlite"


def _entity_filter(entity_type: str | None, entity_id: str | None) -> tuple[str, tuple[Any, ...]]:
    clauses: list[str] = []
    args: list[Any] = []
    if entity_type is not None:
        clauses.append("entity_type = ?")
        args.append(entity_type)
    if entity_id is not None:
        clauses.append("entity_id = ?")
        args.append(entity_id)
    where = " WHERE " + " AND ".join(clauses) if clauses else ""
    return where, tuple(args)


def _to_params(row: StoredRow) -> tuple[Any, ...]:
    return (
        row.entity_type,
        row.entity_id,
        row.source_id,
        row.chunk_idx,
        row.content,
        row.embedding_literal(),
        json.dumps(row.tags),
        json.dumps(row.metadata, default=str),
        row.document_type,
        row.classification_confidence,
        row.classification_model,
        row.classification_timestamp.isoformat() if row.classification_timestamp else None,
    )


def _from_row(r: dict[str, Any]) -> StoredRow:
    return StoredRow(
        entity_type=r["entity_type"],
        entity_id=r["entity_id"],
        source_id=r["source_id"],
        chunk_idx=r["chunk_idx"],
        content=r["content"],
        embedding=json.loads(r["embedding"]),
        tags=json.loads(r["tags"]),
        metadata=json.loads(r["metadata"]),
        document_type=r["document_type"],
        classification_confidence=r["classification_confidence"],
        classification_model=r["classification_model"],
        classification_timestamp=r["classification_timestamp"],
    )
