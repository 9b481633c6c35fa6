"""SQLite-based vector storage with numpy file backend."""

from __future__ import annotations

from pathlib import Path

import numpy as np

from pagewise.config import config
from pagewise.models import RetrievedChunk, StoredChunk  # noqa: TC001
from pagewise.vector_store.base import CHUNK_COLUMNS, BaseSQLiteStore

logger = config.get_logger(__name__)


class SQLiteVectorStore(BaseSQLiteStore):
    """Vector storage using SQLite for chunk text and numpy files for embeddings.

    Embedding matrices are cached per document and rebuilt when that
    document's chunks change.
    """

    def __init__(
        self,
        db_path: Path = Path("data/vector_store.db"),
        vectors_dir: Path = Path("data/vectors"),
    ) -> None:
        """Initialize the SQLiteVectorStore with database and vector directory paths.

        Args:
            db_path: Path to the SQLite database file.
            vectors_dir: Directory to store numpy vector files.
        """
        self.vectors_dir = Path(vectors_dir)
        self.vectors_dir.mkdir(exist_ok=True, parents=True)

        self._matrices: dict[str, tuple[list[RetrievedChunk], np.ndarray]] = {}

        super().__init__(db_path)

    @staticmethod
    def _vector_filename(document_id: str, chunk_index: int) -> str:
        safe_id = "".join(ch if ch.isalnum() else "_" for ch in document_id)
        return f"{safe_id}_chunk{chunk_index:06d}.npy"

    def add_chunks(self, chunks: list[StoredChunk]) -> int:
        """Add chunks with embeddings to the store.

        Returns:
            Number of chunks persisted.
        """
        if not chunks:
            return 0

        inserted = 0
        touched: set[str] = set()

        with self._connect() as conn:
            cursor = conn.cursor()

            for stored in chunks:
                if stored.embedding is None:
                    logger.warning(
                        "Skipping chunk %s without embedding",
                        stored.chunk.chunk_index,
                    )
                    continue

                self._upsert_document(cursor, stored.document_id)

                vector_filename = self._vector_filename(
                    stored.document_id, stored.chunk.chunk_index
                )
                np.save(self.vectors_dir / vector_filename, stored.embedding)

                self._insert_chunk_row(cursor, stored, vector_file=vector_filename)
                touched.add(stored.document_id)
                inserted += 1

            conn.commit()

        for document_id in touched:
            self._matrices.pop(document_id, None)

        logger.info("Added %d chunks to SQLite vector store", inserted)
        return inserted

    def _load_document_matrix(
        self, document_id: str
    ) -> tuple[list[RetrievedChunk], np.ndarray] | None:
        """Load (and cache) a document's chunks with their embedding matrix."""
        if document_id in self._matrices:
            return self._matrices[document_id]

        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT {CHUNK_COLUMNS}, c.vector_file
                FROM chunks c
                WHERE c.document_id = ? AND c.vector_file IS NOT NULL
                ORDER BY c.chunk_index
                """,  # noqa: S608
                (document_id,),
            ).fetchall()

        chunks: list[RetrievedChunk] = []
        embeddings_list: list[np.ndarray] = []
        for row in rows:
            vector_path = self.vectors_dir / row[-1]
            if not vector_path.exists():
                logger.warning("Vector file not found: %s", vector_path)
                continue
            chunks.append(self._build_chunk_from_row(row[:-1]))
            embeddings_list.append(np.load(vector_path))

        if not embeddings_list:
            return None

        matrix = np.vstack(embeddings_list)
        self._matrices[document_id] = (chunks, matrix)
        logger.info(
            "Loaded %d vectors for document %s", len(embeddings_list), document_id
        )
        return chunks, matrix

    @staticmethod
    def cosine_similarity(
        query_embedding: np.ndarray,
        embeddings: np.ndarray,
    ) -> np.ndarray:
        """Calculate cosine similarity between query and document embeddings.

        A zero-norm vector on either side scores 0.0.

        Returns:
            np.ndarray: Array of cosine similarity scores
                    between the query and each document embedding.
        """
        norms = np.linalg.norm(embeddings, axis=1) * np.linalg.norm(query_embedding)
        dots = np.dot(embeddings, query_embedding)
        return np.divide(
            dots,
            norms,
            out=np.zeros(len(embeddings), dtype=np.float64),
            where=norms > 0,
        )

    def match_chunks(
        self,
        document_id: str,
        query_embedding: np.ndarray,
        match_count: int = 5,
        threshold: float = 0.0,
    ) -> list[RetrievedChunk]:
        """Rank a document's chunks against a query embedding.

        Similarities are clipped to [0, 1]; chunks scoring below
        ``threshold`` are dropped.

        Returns:
            At most ``match_count`` chunks, best first.
        """
        loaded = self._load_document_matrix(document_id)
        if loaded is None:
            return []
        chunks, matrix = loaded

        similarities = np.clip(
            self.cosine_similarity(np.asarray(query_embedding), matrix), 0.0, 1.0
        )
        top_indices = np.argsort(similarities)[::-1][:match_count]

        results = []
        for idx in top_indices:
            score = float(similarities[idx])
            if score < threshold:
                break
            chunk = chunks[int(idx)]
            logger.debug(
                "Retrieved chunk %d with similarity %.4f", chunk.chunk_index, score
            )
            results.append(
                RetrievedChunk(
                    id=chunk.id,
                    chunk_index=chunk.chunk_index,
                    content=chunk.content,
                    token_count=chunk.token_count,
                    similarity=score,
                )
            )

        return results

    def delete_document(self, document_id: str) -> int:
        """Remove a document's chunks and vector files.

        Returns:
            Number of chunks removed.
        """
        with self._connect() as conn:
            cursor = conn.cursor()
            vector_files = [
                row[0]
                for row in cursor.execute(
                    "SELECT vector_file FROM chunks "
                    "WHERE document_id = ? AND vector_file IS NOT NULL",
                    (document_id,),
                ).fetchall()
            ]
            cursor.execute("DELETE FROM chunks WHERE document_id = ?", (document_id,))
            removed = cursor.rowcount
            cursor.execute("DELETE FROM documents WHERE id = ?", (document_id,))
            conn.commit()

        for vector_file in vector_files:
            (self.vectors_dir / vector_file).unlink(missing_ok=True)

        self._matrices.pop(document_id, None)
        logger.info("Removed %d chunks for document %s", removed, document_id)
        return removed
