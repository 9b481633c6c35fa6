"""Shared helpers for SQLite-backed chunk stores."""

from __future__ import annotations

import sqlite3
from pathlib import Path

from pagewise.config import config
from pagewise.models import RetrievedChunk, StoredChunk

logger = config.get_logger(__name__)

CHUNK_COLUMNS = "c.id, c.chunk_index, c.content, c.token_count"


class BaseSQLiteStore:
    """Schema management and row helpers for stores keeping chunk text in SQLite."""

    def __init__(self, db_path: Path) -> None:
        """Initialize metadata store and ensure schema exists."""
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(exist_ok=True, parents=True)
        self._create_tables()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path))

    def _create_tables(self) -> None:
        """Create document and chunk tables if they don't exist."""
        with self._connect() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    id TEXT PRIMARY KEY,
                    indexed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS chunks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    document_id TEXT NOT NULL,
                    chunk_index INTEGER NOT NULL,
                    content TEXT NOT NULL,
                    token_count INTEGER NOT NULL DEFAULT 0,
                    vector_file TEXT,
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE (document_id, chunk_index),
                    FOREIGN KEY (document_id) REFERENCES documents (id)
                )
            """)

            self._create_indexes(cursor)
            conn.commit()

    @staticmethod
    def _create_indexes(cursor: sqlite3.Cursor) -> None:
        """Ensure indexes exist for per-document lookups."""
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_chunks_document ON chunks(document_id)",
        )

    @staticmethod
    def _upsert_document(cursor: sqlite3.Cursor, document_id: str) -> None:
        """Insert document row if missing."""
        cursor.execute(
            "INSERT OR IGNORE INTO documents (id) VALUES (?)", (document_id,)
        )

    @staticmethod
    def _insert_chunk_row(
        cursor: sqlite3.Cursor,
        stored: StoredChunk,
        *,
        vector_file: str | None,
    ) -> int:
        """Persist a chunk row and return its row id.

        Raises:
            RuntimeError: If the chunk row cannot be inserted.
        """
        cursor.execute(
            """
            INSERT INTO chunks (
                document_id,
                chunk_index,
                content,
                token_count,
                vector_file
            )
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                stored.document_id,
                stored.chunk.chunk_index,
                stored.chunk.content,
                stored.chunk.token_count,
                vector_file,
            ),
        )

        chunk_row_id = cursor.lastrowid
        if chunk_row_id is None:
            msg = "Failed to insert chunk row"
            raise RuntimeError(msg)
        return int(chunk_row_id)

    @staticmethod
    def _build_chunk_from_row(row: tuple, similarity: float = 0.0) -> RetrievedChunk:
        """Create a RetrievedChunk from a ``CHUNK_COLUMNS`` row."""
        chunk_db_id, chunk_index, content, token_count = row
        return RetrievedChunk(
            id=int(chunk_db_id),
            chunk_index=int(chunk_index),
            content=content,
            token_count=int(token_count),
            similarity=similarity,
        )

    def has_chunks(self, document_id: str) -> bool:
        """Check whether any chunk has been stored for ``document_id``."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM chunks WHERE document_id = ? LIMIT 1",
                (document_id,),
            ).fetchone()
        return row is not None

    def count_chunks(self, document_id: str) -> int:
        """Return the number of stored chunks for ``document_id``."""
        with self._connect() as conn:
            (count,) = conn.execute(
                "SELECT COUNT(*) FROM chunks WHERE document_id = ?",
                (document_id,),
            ).fetchone()
        return int(count)

    def find_chunks_containing(
        self,
        document_id: str,
        needle: str,
        limit: int = 3,
    ) -> list[RetrievedChunk]:
        """Return chunks of ``document_id`` whose content contains ``needle``.

        Matching is a literal substring test; results come back in document
        order with a similarity of 0.0.
        """
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT {CHUNK_COLUMNS}
                FROM chunks c
                WHERE c.document_id = ? AND instr(c.content, ?) > 0
                ORDER BY c.chunk_index
                LIMIT ?
                """,  # noqa: S608
                (document_id, needle, int(limit)),
            ).fetchall()
        return [self._build_chunk_from_row(row) for row in rows]
