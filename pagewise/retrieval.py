"""Context assembly: retrieval with a page-marker fallback and prompt formatting."""

import asyncio
import re
from dataclasses import replace

from .config import config
from .document_processing import page_marker
from .models import IndexState, RetrievedChunk
from .pipeline import RAGPipeline

logger = config.get_logger(__name__)

CONTEXT_HEADER = "--- RELEVANT DOCUMENT SECTIONS ---"
SECTION_SEPARATOR = "\n\n---\n\n"
PAGE_MARKER_PREFIX = "--- Page "

_PAGE_REFERENCE = re.compile(r"\b(?:slide|page)\s*#?\s*(\d+)\b", re.IGNORECASE)


def format_chunks_as_context(chunks: list[RetrievedChunk]) -> str:
    """Render retrieved chunks as a prompt-ready block, in document order.

    Returns:
        The context block, or an empty string when there is nothing to inject.
    """
    if not chunks:
        return ""

    ordered = sorted(chunks, key=lambda chunk: chunk.chunk_index)
    sections = [
        f"[Section {chunk.chunk_index + 1}]:\n{chunk.content}" for chunk in ordered
    ]
    return f"{CONTEXT_HEADER}\n\n{SECTION_SEPARATOR.join(sections)}"


def extract_page_number(query: str) -> int | None:
    """Find a "slide N" / "page N" reference in a query."""
    match = _PAGE_REFERENCE.search(query)
    if match is None:
        return None
    return int(match.group(1))


def extract_page_text(text: str, page_number: int) -> str | None:
    """Return the text between a page's marker and the next page marker.

    Returns:
        The stripped page text, or None when the marker is absent.
    """
    marker = page_marker(page_number)
    marker_pos = text.find(marker)
    if marker_pos == -1:
        return None

    start = marker_pos + len(marker)
    end = text.find(PAGE_MARKER_PREFIX, start)
    if end == -1:
        end = len(text)
    return text[start:end].strip()


def direct_context(text: str, query: str, max_chars: int | None = None) -> str:
    """Build context straight from the full document text, without an index.

    A page/slide reference in the query selects that page's text; anything
    else falls back to the leading ``max_chars`` characters of the document.
    """
    if not text:
        return ""

    page_number = extract_page_number(query)
    if page_number is not None:
        page_text = extract_page_text(text, page_number)
        if page_text is not None:
            return f"--- CONTENT FROM PAGE {page_number} ---\n\n{page_text}"
        logger.info("Page %d not found in document text", page_number)

    limit = config.DIRECT_CONTEXT_CHARS if max_chars is None else max_chars
    return f"--- DOCUMENT CONTENT ---\n\n{text[:limit]}"


def merge_page_chunks(
    semantic: list[RetrievedChunk],
    page_chunks: list[RetrievedChunk],
) -> list[RetrievedChunk]:
    """Put page-marker hits ahead of semantic results.

    Page chunks not already among the semantic results are marked with a
    similarity of 1.0 and placed first, in lookup order.
    """
    seen = {chunk.id for chunk in semantic}
    injected: list[RetrievedChunk] = []
    for chunk in page_chunks:
        if chunk.id in seen:
            continue
        seen.add(chunk.id)
        injected.append(replace(chunk, similarity=1.0))
    return injected + semantic


class Retriever:
    """Retrieves chunks for a query and turns them into a context block."""

    def __init__(
        self,
        pipeline: RAGPipeline,
        match_count: int | None = None,
        page_fallback_limit: int | None = None,
    ) -> None:
        """Initialize the retriever.

        Args:
            pipeline: Pipeline providing similarity search and marker lookup.
            match_count: Results requested from the similarity search.
            page_fallback_limit: Maximum chunks pulled in by a page reference.
        """
        self.pipeline = pipeline
        self.match_count = match_count or config.MATCH_COUNT
        self.page_fallback_limit = page_fallback_limit or config.PAGE_FALLBACK_LIMIT

    async def _search(self, document_id: str, query: str) -> list[RetrievedChunk]:
        try:
            return await self.pipeline.search(
                document_id, query, match_count=self.match_count
            )
        except Exception:
            logger.exception("Similarity search failed for document %s", document_id)
            return []

    async def _page_lookup(
        self, document_id: str, page_number: int
    ) -> list[RetrievedChunk]:
        try:
            return await self.pipeline.find_page_chunks(
                document_id, page_number, limit=self.page_fallback_limit
            )
        except Exception:
            logger.exception(
                "Page lookup failed for page %d of document %s",
                page_number,
                document_id,
            )
            return []

    async def retrieve(self, document_id: str, query: str) -> list[RetrievedChunk]:
        """Similarity search plus, for page/slide queries, a page-marker lookup.

        Returns:
            Retrieved chunks; empty when every lookup failed or matched nothing.
        """
        page_number = extract_page_number(query)
        if page_number is None:
            return await self._search(document_id, query)

        semantic, page_chunks = await asyncio.gather(
            self._search(document_id, query),
            self._page_lookup(document_id, page_number),
        )
        if page_chunks:
            logger.info(
                "Page %d lookup returned %d chunks", page_number, len(page_chunks)
            )
        return merge_page_chunks(semantic, page_chunks)

    async def build_context(
        self,
        document_id: str,
        query: str,
        document_text: str | None,
        index_state: IndexState,
    ) -> str:
        """Assemble the context block injected into the system prompt.

        Indexed documents use retrieved chunks; documents that are not indexed
        yet, or whose retrieval came back empty, use the raw document text.
        """
        if index_state is IndexState.INDEXED:
            chunks = await self.retrieve(document_id, query)
            if chunks:
                logger.info("Using %d retrieved chunks as context", len(chunks))
                return format_chunks_as_context(chunks)
            logger.info("No chunks retrieved; falling back to document text")

        return direct_context(document_text or "", query)
