"""Command-line entry point for chatting with a document in the terminal."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from pagewise import (
    ChatContext,
    ChatSession,
    ConversationManager,
    DocumentLoader,
    IndexState,
    ModelProvider,
    RAGPipeline,
    create_completion_client,
)
from pagewise.config import config

if TYPE_CHECKING:
    from collections.abc import Sequence
    from logging import Logger

QUIT_COMMANDS = {"/quit", "/exit"}


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Build the CLI parser and read command-line arguments."""  # noqa: DOC201
    parser = argparse.ArgumentParser(
        description="Chat with a PDF or TXT document in the terminal.",
    )
    parser.add_argument(
        "document",
        type=Path,
        help="Path to the PDF or TXT document.",
    )
    parser.add_argument(
        "--document-id",
        default=None,
        help="Identifier used to store the document's chunks (default: file stem).",
    )
    parser.add_argument(
        "--no-index",
        dest="index",
        action="store_false",
        help="Skip embedding the document; answer from its raw text only.",
    )
    parser.add_argument(
        "--provider",
        choices=[provider.value for provider in ModelProvider],
        default=None,
        help="Chat model provider (default: CHAT_PROVIDER).",
    )
    parser.add_argument(
        "--model",
        default=None,
        help="Chat model name for the chosen provider.",
    )
    parser.set_defaults(index=True)
    return parser.parse_args(argv)


def parse_command(line: str, pending: ChatContext) -> str | None:
    """Apply a slash command to the pending context.

    Returns:
        None when the line was a command, otherwise the question to send.
    """
    command, _, argument = line.partition(" ")
    if command == "/page" and argument.strip().isdigit():
        pending.page_number = int(argument.strip())
        return None
    if command == "/select" and argument.strip():
        pending.text = argument.strip()
        return None
    return line


async def chat_loop(manager: ConversationManager, logger: Logger) -> None:
    """Read questions from stdin and stream answers to stdout."""
    pending = ChatContext()
    print("Ask a question (/page N, /select TEXT, /clear, /quit).")  # noqa: T201

    while True:
        try:
            line = (await asyncio.to_thread(input, "> ")).strip()
        except EOFError:
            return
        if not line:
            continue
        if line in QUIT_COMMANDS:
            return
        if line == "/clear":
            manager.clear_history()
            pending = ChatContext()
            continue

        question = parse_command(line, pending)
        if question is None:
            continue

        context = pending if (pending.text or pending.page_number) else None
        async for fragment in manager.send_message(question, context):
            print(fragment, end="", flush=True)  # noqa: T201
        print()  # noqa: T201
        if manager.session.error:
            logger.error("Answer failed: %s", manager.session.error)
        pending = ChatContext()


async def run(args: argparse.Namespace, logger: Logger) -> int:
    """Load, index and chat with the requested document."""  # noqa: DOC201
    document_id = args.document_id or args.document.stem
    try:
        text = await asyncio.to_thread(DocumentLoader.load_document, args.document)
    except (OSError, ValueError):
        logger.exception("Unable to load %s", args.document)
        return 1

    pipeline = RAGPipeline()
    completion_client = (
        create_completion_client(args.provider, model=args.model)
        if args.provider or args.model
        else None
    )
    manager = ConversationManager(
        pipeline,
        ChatSession(document_id=document_id),
        completion_client=completion_client,
    )
    if args.index:
        state = await manager.on_document_text(text)
        if state is not IndexState.INDEXED:
            logger.warning("Indexing failed; answering from raw document text")
    else:
        manager.session.document_text = text

    await chat_loop(manager, logger)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Validate configuration and start the chat."""  # noqa: DOC201
    args = parse_args(argv)

    config.setup_logging()
    logger = config.get_logger(__name__)

    try:
        config.validate()
    except ValueError:
        logger.exception("Configuration invalid")
        return 1

    if args.provider == ModelProvider.GEMINI.value and not config.get_gemini_api_key():
        logger.error("GEMINI_API_KEY is required for the gemini provider")
        return 1

    if not args.document.exists():
        logger.error("Document not found: %s", args.document)
        return 1

    try:
        return asyncio.run(run(args, logger))
    except KeyboardInterrupt:
        logger.info("Pagewise stopped by user")
        return 0


if __name__ == "__main__":
    sys.exit(main())
