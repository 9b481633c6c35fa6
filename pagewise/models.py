"""Data models shared by the chunking, retrieval and chat layers."""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np


class Role(str, Enum):
    """Author of a conversation message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ModelProvider(str, Enum):
    """Chat model vendor a turn is answered by."""

    OPENAI = "openai"
    GEMINI = "gemini"


class IndexState(str, Enum):
    """Per-document indexing state as observed by a chat session."""

    NOT_INDEXED = "not_indexed"
    INDEXING = "indexing"
    INDEXED = "indexed"


@dataclass(frozen=True)
class TextChunk:
    """A trimmed, overlapping slice of a document's text."""

    content: str
    chunk_index: int
    token_count: int


@dataclass
class StoredChunk:
    """A chunk ready for persistence: the text slice plus its embedding."""

    document_id: str
    chunk: TextChunk
    embedding: np.ndarray | None = None


@dataclass
class RetrievedChunk:
    """A chunk returned from the vector store for a single query."""

    id: int
    chunk_index: int
    content: str
    token_count: int
    similarity: float


@dataclass
class ChatContext:
    """Side-channel attached to a user turn (text selection, screenshot, page)."""

    text: str | None = None
    screenshot: str | None = None
    page_number: int | None = None


@dataclass
class ConversationMessage:
    """Represents a single message in a chat session."""

    role: Role
    content: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    selected_text: str | None = None
    screenshot: bool = False
    page_number: int | None = None

    def to_api(self) -> dict[str, Any]:
        """Plain role/content pair accepted by the chat completion API."""
        return {"role": self.role.value, "content": self.content}
