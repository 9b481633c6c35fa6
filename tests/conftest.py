"""Test configuration and fixtures for Pagewise tests.

This module provides reusable test fixtures organized by functionality:
- Constants and test data
- Mock services and API responses
- Text processing fixtures
- Vector store and pipeline fixtures
- Conversation fixtures
"""

import hashlib
from unittest.mock import AsyncMock, Mock, create_autospec, patch

import numpy as np
import pytest

from pagewise import (
    ChatSession,
    ConversationManager,
    ConversationMessage,
    EmbeddingService,
    RAGPipeline,
    RetrievedChunk,
    Retriever,
    Role,
    SQLiteVectorStore,
    TextChunker,
)


class TestConstants:
    """Centralized test constants to avoid repetition across test files."""

    # API Configuration
    TEST_API_KEY = "test-key"
    TEST_OPENAI_MODEL = "text-embedding-3-small"
    DEFAULT_EMBEDDING_DIMENSION = 384

    # Text Chunking Configuration
    SMALL_CHUNK_SIZE = 100
    SMALL_CHUNK_OVERLAP = 20
    DEFAULT_CHUNK_SIZE = 1000
    DEFAULT_CHUNK_OVERLAP = 200

    TEST_DOCUMENT_ID = "doc-123"


SLIDE_DECK_TEXT = (
    "--- Page 1 ---\n"
    "Introduction to Operating Systems. Lecture 1.\n"
    "--- Page 2 ---\n"
    "Processes are programs in execution. Each process has its own address space. "
    "The kernel schedules processes onto CPUs.\n"
    "--- Page 3 ---\n"
    "Diagram\n"
    "--- Page 4 ---\n"
    "Threads share the address space of their process. "
    "Context switches between threads are cheaper than between processes."
)


class MockEmbeddingService:
    """Mock embedding service for testing without API calls.

    Generates deterministic embeddings based on text content hash,
    ensuring consistent test results across runs.
    """

    def __init__(
        self, dimension: int = TestConstants.DEFAULT_EMBEDDING_DIMENSION
    ) -> None:
        """Initialize mock embedding service.

        Args:
            dimension: Dimensionality of generated embeddings.
        """
        self.dimension = dimension

    def embed(self, text: str) -> np.ndarray:
        """Generate deterministic mock embedding based on text hash."""
        seed = int.from_bytes(
            hashlib.sha256(text.lower().encode("utf-8")).digest()[:8],
            byteorder="big",
            signed=False,
        )
        rng = np.random.default_rng(seed)
        embedding = rng.normal(0, 1, self.dimension)
        return (embedding / np.linalg.norm(embedding)).astype(np.float32)

    async def get_embedding(self, text: str) -> np.ndarray:
        return self.embed(text)

    async def get_embeddings_batch(self, texts: list[str]) -> list[np.ndarray]:
        return [self.embed(text) for text in texts]


class FakeCompletionClient:
    """Stands in for ChatCompletionClient, replaying canned fragments."""

    def __init__(
        self,
        fragments: list[str] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.fragments = ["Hello", " world"] if fragments is None else fragments
        self.error = error
        self.calls: list[dict] = []

    async def stream(  # noqa: ANN201
        self, history, context, chat_context=None, *, model=None  # noqa: ANN001
    ):
        self.calls.append(
            {
                "history": history,
                "context": context,
                "chat_context": chat_context,
                "model": model,
            }
        )
        for fragment in self.fragments:
            yield fragment
        if self.error is not None:
            raise self.error


def create_mock_openai_response(embeddings: list[list[float]]) -> Mock:
    """Create a mock OpenAI embeddings API response.

    Args:
        embeddings: List of embedding vectors to return.

    Returns:
        Mock object representing OpenAI embeddings API response.
    """
    mock_response = Mock()
    mock_response.data = [Mock(embedding=emb) for emb in embeddings]
    return mock_response


@pytest.fixture
def retrieved_chunk_factory():
    """Build RetrievedChunk objects for retrieval and formatting tests."""

    def _create_chunk(
        chunk_id: int,
        chunk_index: int,
        content: str = "content",
        similarity: float = 0.8,
    ) -> RetrievedChunk:
        return RetrievedChunk(
            id=chunk_id,
            chunk_index=chunk_index,
            content=content,
            token_count=len(content) // 4,
            similarity=similarity,
        )

    return _create_chunk


@pytest.fixture
def fake_completion_factory():
    """Factory for FakeCompletionClient instances."""

    def _create_client(
        fragments: list[str] | None = None,
        error: Exception | None = None,
    ) -> FakeCompletionClient:
        return FakeCompletionClient(fragments=fragments, error=error)

    return _create_client


@pytest.fixture
def openai_embeddings_api_mock():
    """Base fixture that patches the async OpenAI embeddings.create method."""
    with patch(
        "openai.resources.embeddings.AsyncEmbeddings.create",
        new_callable=AsyncMock,
    ) as mock_create:
        yield mock_create


@pytest.fixture
def openai_embeddings_factory(openai_embeddings_api_mock):
    """Factory for creating OpenAI embeddings API mocks with different scenarios."""

    def _create_mock(  # noqa: ANN202
        scenario="single_success",
        embeddings=None,
        error_message="API Error",
    ):
        openai_embeddings_api_mock.reset_mock()
        openai_embeddings_api_mock.side_effect = None

        if scenario == "single_success":
            mock_response = create_mock_openai_response(
                [embeddings or [0.1, 0.2, 0.3, 0.4, 0.5]]
            )
            openai_embeddings_api_mock.return_value = mock_response
        elif scenario == "batch_success":
            mock_response = create_mock_openai_response(
                embeddings or [[0.1, 0.2, 0.3], [0.4, 0.5, 0.6], [0.7, 0.8, 0.9]]
            )
            openai_embeddings_api_mock.return_value = mock_response
        elif scenario == "error":
            openai_embeddings_api_mock.side_effect = Exception(error_message)
        elif scenario == "multiple_batches":
            openai_embeddings_api_mock.side_effect = [
                create_mock_openai_response([[0.1, 0.2], [0.3, 0.4]]),
                create_mock_openai_response([[0.5, 0.6], [0.7, 0.8]]),
            ]
        elif scenario == "partial_failure":
            openai_embeddings_api_mock.side_effect = [
                create_mock_openai_response([[0.1, 0.2]]),
                Exception("Second batch failed"),
            ]

        return openai_embeddings_api_mock

    return _create_mock


@pytest.fixture
def embedding_service_factory():
    """Factory for creating EmbeddingService instances with different configurations."""

    def _create_service(api_key=None, model=None, batch_size=None):  # noqa: ANN202
        api_key = api_key or TestConstants.TEST_API_KEY
        return EmbeddingService(
            api_key=api_key,
            model=model or TestConstants.TEST_OPENAI_MODEL,
            batch_size=batch_size,
        )

    return _create_service


@pytest.fixture
def embedding_service(embedding_service_factory):
    """Default EmbeddingService with test API key for most tests."""
    return embedding_service_factory()


@pytest.fixture
def text_chunker_factory():
    """Factory fixture that creates ``TextChunker`` instances on demand."""
    presets: dict[str, tuple[int, int]] = {
        "small": (
            TestConstants.SMALL_CHUNK_SIZE,
            TestConstants.SMALL_CHUNK_OVERLAP,
        ),
        "default": (
            TestConstants.DEFAULT_CHUNK_SIZE,
            TestConstants.DEFAULT_CHUNK_OVERLAP,
        ),
    }

    def _create_chunker(
        name: str = "default",
        *,
        chunk_size: int | None = None,
        overlap: int | None = None,
        lookahead: int = 100,
    ) -> TextChunker:
        if chunk_size is None or overlap is None:
            try:
                preset_chunk_size, preset_overlap = presets[name]
            except KeyError as exc:
                msg = f"Unknown text chunker preset: {name}"
                raise ValueError(msg) from exc
            chunk_size = preset_chunk_size if chunk_size is None else chunk_size
            overlap = preset_overlap if overlap is None else overlap

        return TextChunker(chunk_size=chunk_size, overlap=overlap, lookahead=lookahead)

    return _create_chunker


@pytest.fixture
def text_chunker_default(text_chunker_factory):
    """Text chunker configured with default settings (1000/200)."""
    return text_chunker_factory("default")


@pytest.fixture(scope="session")
def mock_embedding_service():
    """Pre-configured MockEmbeddingService for consistent test embeddings."""
    return MockEmbeddingService()


@pytest.fixture
def temp_vector_store(tmp_path) -> SQLiteVectorStore:
    """Create temporary SQLite vector store for testing."""
    return SQLiteVectorStore(tmp_path / "test_store.db", tmp_path / "vectors")


@pytest.fixture
def rag_pipeline(mock_embedding_service, temp_vector_store) -> RAGPipeline:
    """RAGPipeline backed by mock embeddings and a temporary store."""
    return RAGPipeline(
        chunk_size=200,
        overlap=50,
        embedding_service=mock_embedding_service,
        vector_store=temp_vector_store,
    )


@pytest.fixture
def slide_deck_text() -> str:
    return SLIDE_DECK_TEXT


@pytest.fixture
def mock_pipeline():
    """Autospecced pipeline whose lookups return nothing by default."""
    pipeline = create_autospec(RAGPipeline, instance=True)
    pipeline.search.return_value = []
    pipeline.find_page_chunks.return_value = []
    pipeline.has_chunks.return_value = False
    pipeline.index_text.return_value = 0
    return pipeline


@pytest.fixture
def mock_retriever():
    retriever = create_autospec(Retriever, instance=True)
    retriever.build_context.return_value = "--- RELEVANT DOCUMENT SECTIONS ---"
    return retriever


@pytest.fixture
def chat_session() -> ChatSession:
    return ChatSession(document_id=TestConstants.TEST_DOCUMENT_ID)


@pytest.fixture
def conversation_manager_factory(mock_pipeline, mock_retriever, chat_session):
    """Factory for ConversationManager wired to fakes."""

    def _create_manager(
        completion_client: FakeCompletionClient | None = None,
        **kwargs,  # noqa: ANN003
    ) -> ConversationManager:
        return ConversationManager(
            rag_pipeline=mock_pipeline,
            session=chat_session,
            completion_client=completion_client or FakeCompletionClient(),
            retriever=mock_retriever,
            **kwargs,
        )

    return _create_manager


@pytest.fixture
def message_factory():
    """Build ConversationMessage objects with terse arguments."""

    def _create_message(
        role: Role, content: str, **kwargs  # noqa: ANN003
    ) -> ConversationMessage:
        return ConversationMessage(role=role, content=content, **kwargs)

    return _create_message
