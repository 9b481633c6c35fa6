"""Chat sessions: history trimming, document indexing state and streamed turns."""

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from .completion import (
    ChatCompletionClient,
    GeminiCompletionClient,
    create_completion_client,
    format_annotation,
)
from .config import config
from .models import (
    ChatContext,
    ConversationMessage,
    IndexState,
    ModelProvider,
    Role,
)
from .pipeline import RAGPipeline
from .retrieval import Retriever

logger = config.get_logger(__name__)


def trim_history(
    messages: list[ConversationMessage],
    char_budget: int | None = None,
    min_messages: int | None = None,
) -> list[dict[str, Any]]:
    """Keep the most recent messages that fit a character budget.

    Walks backward from the newest message. A message that would push the
    running total strictly over ``char_budget`` stops the walk, but only once
    ``min_messages`` messages are already kept; only the oldest prefix is
    ever dropped.

    Earlier user messages get their selection/screenshot side-channel
    re-serialized into their content. The last message is the current turn
    and is returned unchanged.

    Returns:
        Role/content dicts for the chat completion API, oldest first.
    """
    budget = config.HISTORY_CHAR_BUDGET if char_budget is None else char_budget
    min_keep = config.HISTORY_MIN_MESSAGES if min_messages is None else min_messages

    first_kept = len(messages)
    total_chars = 0
    for index in range(len(messages) - 1, -1, -1):
        length = len(messages[index].content)
        kept = len(messages) - first_kept
        if total_chars + length > budget and kept >= min_keep:
            break
        total_chars += length
        first_kept = index

    if first_kept:
        logger.debug(
            "Trimmed %d of %d messages from history", first_kept, len(messages)
        )

    window = messages[first_kept:]
    trimmed = []
    for position, message in enumerate(window):
        payload = message.to_api()
        if message.role is Role.USER and position < len(window) - 1:
            payload["content"] += format_annotation(
                message.selected_text,
                message.page_number,
                screenshot=message.screenshot,
            )
        trimmed.append(payload)
    return trimmed


@dataclass
class ChatSession:
    """Transcript and document state for one chat about one document."""

    document_id: str
    document_text: str | None = None
    messages: list[ConversationMessage] = field(default_factory=list)
    index_state: IndexState = IndexState.NOT_INDEXED
    error: str | None = None

    def append_message(self, message: ConversationMessage) -> ConversationMessage:
        """Add a message to the end of the transcript."""
        self.messages.append(message)
        return message

    def update_message_content(self, message_id: str, content: str) -> None:
        """Replace the content of a message.

        Raises:
            KeyError: If no message has ``message_id``.
        """
        for message in self.messages:
            if message.id == message_id:
                message.content = content
                return
        msg = f"Unknown message id: {message_id}"
        raise KeyError(msg)

    def remove_message(self, message_id: str) -> None:
        """Drop a message from the transcript; unknown ids are ignored."""
        self.messages = [
            message for message in self.messages if message.id != message_id
        ]

    def set_index_state(self, state: IndexState) -> None:
        """Record the document's indexing state."""
        if state is not self.index_state:
            logger.info(
                "Document %s: %s -> %s",
                self.document_id,
                self.index_state.value,
                state.value,
            )
        self.index_state = state

    def clear(self) -> None:
        """Forget the transcript and any pending error."""
        self.messages = []
        self.error = None


class ConversationManager:
    """Runs chat turns against a document: retrieval, history trim, streaming."""

    def __init__(  # noqa: PLR0913,PLR0917
        self,
        rag_pipeline: RAGPipeline,
        session: ChatSession,
        completion_client: ChatCompletionClient | GeminiCompletionClient | None = None,
        retriever: Retriever | None = None,
        openai_api_key: str | None = None,
        history_char_budget: int | None = None,
        history_min_messages: int | None = None,
    ) -> None:
        """Initialize ConversationManager.

        Args:
            rag_pipeline: RAG pipeline instance.
            session: Session whose transcript this manager mutates.
            completion_client: Chat model client for turns that don't pick a
                provider. Built for config.CHAT_PROVIDER if None.
            retriever: Context retriever. Built on ``rag_pipeline`` if None.
            openai_api_key: OpenAI API key for OpenAI completion clients.
            history_char_budget: Character budget for prior turns.
            history_min_messages: Messages always kept regardless of budget.
        """
        self.rag_pipeline = rag_pipeline
        self.session = session
        self.openai_api_key = openai_api_key
        self._provider_clients: dict[
            ModelProvider, ChatCompletionClient | GeminiCompletionClient
        ] = {}
        self.completion_client = completion_client or self._client_for(
            config.CHAT_PROVIDER
        )
        self.retriever = retriever or Retriever(rag_pipeline)
        self.history_char_budget = history_char_budget
        self.history_min_messages = history_min_messages
        self._turn_lock = asyncio.Lock()

    def _client_for(
        self, provider: ModelProvider | str
    ) -> ChatCompletionClient | GeminiCompletionClient:
        """Return the cached completion client for a provider, creating it once."""
        selected = ModelProvider(provider)
        if selected not in self._provider_clients:
            api_key = self.openai_api_key if selected is ModelProvider.OPENAI else None
            self._provider_clients[selected] = create_completion_client(
                selected, api_key=api_key
            )
        return self._provider_clients[selected]

    async def on_document_text(self, text: str) -> IndexState:
        """Store freshly extracted document text and index it if needed.

        Failed indexing is logged and leaves the document not indexed, so the
        next call retries.

        Returns:
            The session's index state after the attempt.
        """
        session = self.session
        session.document_text = text
        if session.index_state is not IndexState.NOT_INDEXED:
            return session.index_state

        session.set_index_state(IndexState.INDEXING)
        try:
            if await self.rag_pipeline.has_chunks(session.document_id):
                logger.info("Document %s already indexed", session.document_id)
            else:
                await self.rag_pipeline.index_text(session.document_id, text)
        except Exception:
            logger.exception("Indexing failed for document %s", session.document_id)
            session.set_index_state(IndexState.NOT_INDEXED)
        else:
            session.set_index_state(IndexState.INDEXED)
        return session.index_state

    async def send_message(
        self,
        content: str,
        context: ChatContext | None = None,
        model_provider: ModelProvider | str | None = None,
        model_name: str | None = None,
    ) -> AsyncIterator[str]:
        """Run one chat turn and stream the answer.

        ``model_provider`` and ``model_name`` pick the chat model for this
        turn only; None keeps the manager's default client and its model.

        Any failure ends the turn: the error is stored on the session, this
        turn's assistant message is removed if it is still empty, and the
        user message stays.

        Yields:
            Answer fragments as they arrive.
        """
        async with self._turn_lock:
            session = self.session
            session.error = None
            session.append_message(
                ConversationMessage(
                    role=Role.USER,
                    content=content,
                    selected_text=context.text if context else None,
                    screenshot=bool(context and context.screenshot),
                    page_number=context.page_number if context else None,
                )
            )

            assistant: ConversationMessage | None = None
            try:
                client = (
                    self.completion_client
                    if model_provider is None
                    else self._client_for(model_provider)
                )
                rag_context = await self.retriever.build_context(
                    session.document_id,
                    content,
                    session.document_text,
                    session.index_state,
                )
                history = trim_history(
                    session.messages,
                    self.history_char_budget,
                    self.history_min_messages,
                )

                assistant = session.append_message(
                    ConversationMessage(role=Role.ASSISTANT, content="")
                )
                answer = ""
                async for fragment in client.stream(
                    history, rag_context, context, model=model_name
                ):
                    answer += fragment
                    session.update_message_content(assistant.id, answer)
                    yield fragment
            except Exception as exc:
                logger.exception(
                    "Chat turn failed for document %s", session.document_id
                )
                session.error = str(exc) or "An error occurred"
                if assistant is not None and not assistant.content:
                    session.remove_message(assistant.id)

    async def answer_question(
        self,
        content: str,
        context: ChatContext | None = None,
    ) -> str:
        """Run one chat turn and return the full answer.

        Returns:
            The concatenated answer; empty if the turn failed.
        """
        fragments = [fragment async for fragment in self.send_message(content, context)]
        return "".join(fragments)

    def clear_history(self) -> None:
        """Clear the conversation history."""
        self.session.clear()
        logger.info("Conversation history cleared.")
