"""Document loading and text chunking functionality."""

import math
from pathlib import Path

import pypdf

from .config import config
from .models import TextChunk

logger = config.get_logger(__name__)

PAGE_MARKER_TEMPLATE = "--- Page {} ---"


def page_marker(page_number: int) -> str:
    """Return the literal marker that precedes a page's extracted text."""
    return PAGE_MARKER_TEMPLATE.format(page_number)


def estimate_tokens(text: str) -> int:
    """Rough token estimate: four characters per token, rounded up."""
    return math.ceil(len(text) / 4)


class DocumentLoader:
    """Handles loading of PDF and TXT documents."""

    @staticmethod
    def load_pdf(file_path: Path) -> str:
        """Load text content from a PDF file.

        Each page is preceded by a ``--- Page N ---`` marker line.

        Returns:
            The extracted text content from the PDF as a string.
        """
        try:
            with file_path.open("rb") as file:
                pdf_reader = pypdf.PdfReader(file)
                text = ""
                for page_num, page in enumerate(pdf_reader.pages, start=1):
                    page_text = page.extract_text() or ""
                    text += f"\n{page_marker(page_num)}\n{page_text}"
            logger.info(
                "Extracted %d pages from %s", len(pdf_reader.pages), file_path.name
            )
        except Exception:
            logger.exception("Error loading PDF %s", file_path)
            raise
        else:
            return text.strip()

    @staticmethod
    def load_txt(file_path: Path) -> str:
        """Load text content from a TXT file.

        Returns:
            The extracted text content from the TXT file as a string.
        """
        try:
            with file_path.open(encoding="utf-8") as file:
                text = file.read()
            logger.info("Successfully loaded TXT file")
        except Exception:
            logger.exception("Error loading TXT %s", file_path)
            raise
        else:
            return text

    @classmethod
    def load_document(cls, file_path: Path) -> str:
        """Load document based on file extension.

        Args:
            file_path: Path to the document file.

        Returns:
            The text content of the document as a string.

        Raises:
            ValueError: If the file type is not supported.
        """
        file_ext = file_path.suffix.lower()
        if file_ext == ".pdf":
            return cls.load_pdf(file_path)
        if file_ext == ".txt":
            return cls.load_txt(file_path)
        msg = f"Unsupported file type: {file_ext}"
        raise ValueError(msg)


class TextChunker:
    """Splits text into overlapping chunks that prefer sentence boundaries."""

    def __init__(
        self,
        chunk_size: int | None = None,
        overlap: int | None = None,
        lookahead: int | None = None,
    ) -> None:
        """Initialize the TextChunker with chunk size and overlap.

        Args:
            chunk_size: Nominal size of each chunk in characters.
            overlap: Number of characters shared by consecutive chunks.
            lookahead: Extra characters searched past the window for a boundary.
        """
        self.chunk_size = config.CHUNK_SIZE if chunk_size is None else chunk_size
        self.overlap = config.CHUNK_OVERLAP if overlap is None else overlap
        self.lookahead = config.CHUNK_LOOKAHEAD if lookahead is None else lookahead

    def _window_end(self, text: str, start: int) -> int:
        """Return the end of the window starting at ``start``.

        The window may move to the last ". " or newline found within
        ``chunk_size + lookahead`` characters, as long as that boundary lies
        past half of the nominal chunk size.
        """
        end = start + self.chunk_size
        if end >= len(text):
            return end

        search_text = text[start : end + self.lookahead]
        break_point = max(search_text.rfind(". "), search_text.rfind("\n"))
        if break_point > self.chunk_size * 0.5:
            end = start + break_point + 1
        return end

    def chunk_text(self, text: str) -> list[TextChunk]:
        """Split text into overlapping chunks.

        Returns:
            Chunks in document order, indexed ``0..n-1``.
        """
        chunks: list[TextChunk] = []
        start = 0
        chunk_index = 0

        while start < len(text):
            end = self._window_end(text, start)
            content = text[start:end].strip()

            if content:
                chunks.append(
                    TextChunk(
                        content=content,
                        chunk_index=chunk_index,
                        token_count=estimate_tokens(content),
                    )
                )
                chunk_index += 1

            if end >= len(text):
                break

            next_start = end - self.overlap
            # Overlap must never stall or rewind the cursor
            start = next_start if start < next_start else end

        logger.info("Text split into %d chunks", len(chunks))
        return chunks
