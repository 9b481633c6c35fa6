"""Pagewise - retrieval-augmented chat over lecture documents."""

from .completion import (
    ChatCompletionClient,
    GeminiCompletionClient,
    create_completion_client,
)
from .conversation import ChatSession, ConversationManager, trim_history
from .document_processing import DocumentLoader, TextChunker, estimate_tokens
from .embeddings import EmbeddingService
from .models import (
    ChatContext,
    ConversationMessage,
    IndexState,
    ModelProvider,
    RetrievedChunk,
    Role,
    StoredChunk,
    TextChunk,
)
from .pipeline import RAGPipeline
from .retrieval import Retriever, direct_context, format_chunks_as_context
from .vector_store import SQLiteVectorStore

__all__ = [
    "ChatCompletionClient",
    "ChatContext",
    "ChatSession",
    "ConversationManager",
    "ConversationMessage",
    "DocumentLoader",
    "EmbeddingService",
    "GeminiCompletionClient",
    "IndexState",
    "ModelProvider",
    "RAGPipeline",
    "RetrievedChunk",
    "Retriever",
    "Role",
    "SQLiteVectorStore",
    "StoredChunk",
    "TextChunk",
    "TextChunker",
    "create_completion_client",
    "direct_context",
    "estimate_tokens",
    "format_chunks_as_context",
    "trim_history",
]
