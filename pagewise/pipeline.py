"""RAG pipeline: chunk, embed and store documents; search them per query."""

import asyncio
from pathlib import Path

from .config import config
from .document_processing import DocumentLoader, TextChunker, page_marker
from .embeddings import EmbeddingService
from .models import RetrievedChunk, StoredChunk
from .vector_store import SQLiteVectorStore

logger = config.get_logger(__name__)


class RAGPipeline:
    """Main RAG pipeline orchestrating Load -> Split -> Embed -> Store.

    Store calls are blocking SQLite/numpy work and run in a worker thread so
    the event loop stays free while a query is in flight.
    """

    def __init__(  # noqa: PLR0913,PLR0917
        self,
        openai_api_key: str | None = None,
        chunk_size: int | None = None,
        overlap: int | None = None,
        sqlite_db_path: Path | None = None,
        vectors_dir: Path | None = None,
        embedding_service: EmbeddingService | None = None,
        vector_store: SQLiteVectorStore | None = None,
    ) -> None:
        """Initialize RAG pipeline.

        Args:
            openai_api_key: OpenAI API key.
            chunk_size: Size of text chunks. If None, uses config.CHUNK_SIZE.
            overlap: Overlap between chunks. If None, uses config.CHUNK_OVERLAP.
            sqlite_db_path: Path for SQLite database. If None, uses
                config.VECTOR_STORE_DB_PATH.
            vectors_dir: Directory for numpy vector files. If None, uses
                config.VECTOR_STORE_DIR.
            embedding_service: Pre-built embedding service (mainly for tests).
            vector_store: Pre-built vector store (mainly for tests).
        """
        self.chunker = TextChunker(chunk_size=chunk_size, overlap=overlap)
        self.embedding_service = embedding_service or EmbeddingService(
            api_key=openai_api_key
        )
        self.vector_store = vector_store or SQLiteVectorStore(
            db_path=sqlite_db_path or config.VECTOR_STORE_DB_PATH,
            vectors_dir=vectors_dir or config.VECTOR_STORE_DIR,
        )

    async def has_chunks(self, document_id: str) -> bool:
        """Check whether the document already has indexed chunks."""
        return await asyncio.to_thread(self.vector_store.has_chunks, document_id)

    async def index_text(self, document_id: str, text: str) -> int:
        """Chunk, embed and store a document's extracted text.

        Indexing is skipped when chunks already exist for the document.

        Returns:
            Number of chunks stored by this call.
        """
        if await self.has_chunks(document_id):
            logger.info("Chunks already exist for document %s", document_id)
            return 0

        chunks = self.chunker.chunk_text(text)
        if not chunks:
            logger.warning("No text to index for document %s", document_id)
            return 0

        embeddings = await self.embedding_service.get_embeddings_batch(
            [chunk.content for chunk in chunks]
        )
        stored = [
            StoredChunk(document_id=document_id, chunk=chunk, embedding=embedding)
            for chunk, embedding in zip(chunks, embeddings, strict=True)
        ]

        inserted = await asyncio.to_thread(self.vector_store.add_chunks, stored)
        logger.info("Indexed document %s with %d chunks", document_id, inserted)
        return inserted

    async def process_document(self, document_id: str, file_path: Path) -> str:
        """Load a document from disk and index it.

        Returns:
            The document's extracted text, with page markers.
        """
        logger.info("Starting RAG pipeline for document: %s", file_path)
        text = await asyncio.to_thread(DocumentLoader.load_document, file_path)
        await self.index_text(document_id, text)
        logger.info("Document processing completed successfully")
        return text

    async def search(
        self,
        document_id: str,
        query: str,
        match_count: int | None = None,
        threshold: float | None = None,
    ) -> list[RetrievedChunk]:
        """Run a similarity search over one document's chunks.

        Returns:
            Matching chunks, best first.
        """
        logger.info("Processing query: %s", query)
        query_embedding = await self.embedding_service.get_embedding(query)
        return await asyncio.to_thread(
            self.vector_store.match_chunks,
            document_id,
            query_embedding,
            match_count or config.MATCH_COUNT,
            config.MATCH_THRESHOLD if threshold is None else threshold,
        )

    async def find_page_chunks(
        self,
        document_id: str,
        page_number: int,
        limit: int | None = None,
    ) -> list[RetrievedChunk]:
        """Return chunks containing the marker of ``page_number``."""
        return await asyncio.to_thread(
            self.vector_store.find_chunks_containing,
            document_id,
            page_marker(page_number),
            limit or config.PAGE_FALLBACK_LIMIT,
        )
