"""Streaming chat completions with document context."""

import base64
import re
from collections.abc import AsyncIterator
from typing import Any

import google.generativeai as genai
from openai import AsyncOpenAI

from .config import config
from .models import ChatContext, ModelProvider

logger = config.get_logger(__name__)

SYSTEM_PROMPT = (
    "You are a helpful AI tutor assisting a student with understanding their "
    "lecture materials.\n"
    "Be clear, concise, and educational in your explanations.\n"
    "If the student selects text or shares a screenshot, focus your explanation "
    "on that specific content.\n"
    "Use analogies and examples when helpful.\n"
    "If you're explaining math or technical concepts, break them down step by step."
)

SCREENSHOT_NOTE = "\n\n[User attached a screenshot from the document]"

# Gemini chats have no system role; instructions ride in a primed exchange.
GEMINI_TUTOR_REQUEST = "Please act as my tutor."
GEMINI_CONTEXT_ACK = (
    "I understand. I will use this document content to help answer your questions."
)

_DATA_URL_PREFIX = re.compile(r"^data:image/\w+;base64,")


def format_annotation(
    selected_text: str | None = None,
    page_number: int | None = None,
    *,
    screenshot: bool = False,
) -> str:
    """Render a turn's selection/screenshot side-channel as inline text.

    Returns:
        The suffix to append to the message content; empty if there is nothing.
    """
    annotation = ""
    if selected_text:
        page = page_number if page_number is not None else "unknown"
        annotation = (
            f'\n\n[User selected this text from page {page}]: "{selected_text}"'
        )
    if screenshot:
        annotation += SCREENSHOT_NOTE
    return annotation


def build_system_prompt(context: str) -> str:
    """Append the document context block, if any, to the tutor prompt."""
    if not context:
        return SYSTEM_PROMPT
    return f"{SYSTEM_PROMPT}\n\n{context}"


def screenshot_base64(screenshot: str) -> str:
    """Strip a data-URL prefix, leaving the raw base64 payload."""
    return _DATA_URL_PREFIX.sub("", screenshot)


def screenshot_data_url(screenshot: str) -> str:
    """Normalize raw or data-URL base64 image data into a PNG data URL."""
    return f"data:image/png;base64,{screenshot_base64(screenshot)}"


def _delta_text(event: Any) -> str:  # noqa: ANN401
    """Pull the text delta out of a stream event; empty for anything else."""
    choices = getattr(event, "choices", None)
    if not choices:
        return ""
    delta = getattr(choices[0], "delta", None)
    content = getattr(delta, "content", None)
    return content if isinstance(content, str) else ""


def _gemini_chunk_text(chunk: Any) -> str:  # noqa: ANN401
    # ``text`` raises ValueError for chunks without text parts (safety stops).
    try:
        text = chunk.text
    except ValueError:
        return ""
    return text if isinstance(text, str) else ""


class ChatCompletionClient:
    """Streams tutor answers from an OpenAI chat model."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: OpenAI API key. If None, read from OPENAI_API_KEY.
            model: Chat model. If None, uses config.CHAT_MODEL.
            max_tokens: Completion limit. If None, uses config.CHAT_MAX_TOKENS.
            temperature: Sampling temperature. If None, uses config.CHAT_TEMPERATURE.
        """
        default_headers = config.get_api_headers()
        self.client = AsyncOpenAI(
            api_key=api_key or config.get_openai_api_key(),
            base_url=config.OPENAI_BASE_URL,
            default_headers=default_headers or None,
        )
        self.model = model or config.CHAT_MODEL
        self.max_tokens = max_tokens or config.CHAT_MAX_TOKENS
        self.temperature = (
            config.CHAT_TEMPERATURE if temperature is None else temperature
        )

    @staticmethod
    def build_messages(
        history: list[dict[str, Any]],
        context: str,
        chat_context: ChatContext | None = None,
    ) -> list[dict[str, Any]]:
        """Build the request messages: system prompt, history, current turn.

        The current turn's selection annotation is appended to the last user
        message; a screenshot turns that message into a text + image payload.

        Returns:
            OpenAI-style message list.
        """
        messages: list[dict[str, Any]] = [
            {"role": "system", "content": build_system_prompt(context)},
            *(dict(message) for message in history),
        ]

        last = messages[-1]
        if chat_context is None or last["role"] != "user" or len(messages) == 1:
            return messages

        last["content"] += format_annotation(
            chat_context.text,
            chat_context.page_number,
            screenshot=bool(chat_context.screenshot),
        )
        if chat_context.screenshot:
            last["content"] = [
                {"type": "text", "text": last["content"]},
                {
                    "type": "image_url",
                    "image_url": {"url": screenshot_data_url(chat_context.screenshot)},
                },
            ]
        return messages

    async def stream(
        self,
        history: list[dict[str, Any]],
        context: str,
        chat_context: ChatContext | None = None,
        *,
        model: str | None = None,
    ) -> AsyncIterator[str]:
        """Stream the answer as text fragments.

        Closing the generator early releases the HTTP response.

        Yields:
            Non-empty text fragments in arrival order.
        """
        messages = self.build_messages(history, context, chat_context)
        response = await self.client.chat.completions.create(
            model=model or self.model,
            messages=messages,  # type: ignore[arg-type]
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            stream=True,
        )
        try:
            async for event in response:
                text = _delta_text(event)
                if text:
                    yield text
        finally:
            await response.close()


class GeminiCompletionClient:
    """Streams tutor answers from a Gemini chat model."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: Gemini API key. If None, read from GEMINI_API_KEY.
            model: Chat model. If None, uses config.GEMINI_CHAT_MODEL.
            max_tokens: Output limit. If None, uses config.CHAT_MAX_TOKENS.
            temperature: Sampling temperature. If None, uses config.CHAT_TEMPERATURE.
        """
        genai.configure(api_key=api_key or config.get_gemini_api_key())
        self.model = model or config.GEMINI_CHAT_MODEL
        self.max_tokens = max_tokens or config.CHAT_MAX_TOKENS
        self.temperature = (
            config.CHAT_TEMPERATURE if temperature is None else temperature
        )

    @staticmethod
    def build_request(
        history: list[dict[str, Any]],
        context: str,
        chat_context: ChatContext | None = None,
    ) -> tuple[list[dict[str, Any]], list[Any]]:
        """Split the conversation into Gemini chat history and the new turn.

        The tutor prompt opens the history as a user/model exchange. Earlier
        system messages become a user turn acknowledged by the model, and
        assistant turns take the ``model`` role. The last message is sent as
        the new turn, annotated with the selection and carrying the
        screenshot as inline image data.

        Returns:
            ``(chat_history, message_parts)`` for ``start_chat`` and
            ``send_message_async``.

        Raises:
            ValueError: If ``history`` is empty.
        """
        if not history:
            msg = "Cannot send an empty conversation"
            raise ValueError(msg)

        chat_history: list[dict[str, Any]] = [
            {"role": "user", "parts": [GEMINI_TUTOR_REQUEST]},
            {"role": "model", "parts": [build_system_prompt(context)]},
        ]
        for message in history[:-1]:
            if message["role"] == "system":
                chat_history.append({"role": "user", "parts": [message["content"]]})
                chat_history.append({"role": "model", "parts": [GEMINI_CONTEXT_ACK]})
            else:
                role = "model" if message["role"] == "assistant" else "user"
                chat_history.append({"role": role, "parts": [message["content"]]})

        text = history[-1]["content"]
        parts: list[Any] = []
        if chat_context is not None:
            text += format_annotation(
                chat_context.text,
                chat_context.page_number,
                screenshot=bool(chat_context.screenshot),
            )
        parts.append(text)
        if chat_context is not None and chat_context.screenshot:
            parts.append(
                {
                    "mime_type": "image/png",
                    "data": base64.b64decode(
                        screenshot_base64(chat_context.screenshot)
                    ),
                }
            )
        return chat_history, parts

    async def stream(
        self,
        history: list[dict[str, Any]],
        context: str,
        chat_context: ChatContext | None = None,
        *,
        model: str | None = None,
    ) -> AsyncIterator[str]:
        """Stream the answer as text fragments.

        Yields:
            Non-empty text fragments in arrival order.
        """
        chat_history, parts = self.build_request(history, context, chat_context)
        generative_model = genai.GenerativeModel(
            model or self.model,
            generation_config={
                "max_output_tokens": self.max_tokens,
                "temperature": self.temperature,
            },
        )
        chat = generative_model.start_chat(history=chat_history)
        response = await chat.send_message_async(parts, stream=True)
        async for chunk in response:
            text = _gemini_chunk_text(chunk)
            if text:
                yield text


def create_completion_client(
    provider: ModelProvider | str | None = None,
    api_key: str | None = None,
    model: str | None = None,
) -> ChatCompletionClient | GeminiCompletionClient:
    """Build the streaming client for a chat provider.

    Returns:
        A client for ``provider``; config.CHAT_PROVIDER when None.

    Raises:
        ValueError: If the provider is unknown.
    """
    name = provider or config.CHAT_PROVIDER
    try:
        selected = ModelProvider(name)
    except ValueError as exc:
        msg = f"Unknown chat provider: {name}"
        raise ValueError(msg) from exc

    logger.debug("Creating %s completion client", selected.value)
    if selected is ModelProvider.GEMINI:
        return GeminiCompletionClient(api_key=api_key, model=model)
    return ChatCompletionClient(api_key=api_key, model=model)
