"""Configuration management for the Pagewise document assistant."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"

if env_path.exists():
    load_dotenv(env_path)


class Config:
    """Application configuration loaded from environment variables."""

    # OpenAI Configuration
    @classmethod
    def get_openai_api_key(cls) -> str:
        """Get OpenAI API key from environment variables.

        Returns:
            OpenAI API key from environment or empty string if not set.
        """
        return os.getenv("OPENAI_API_KEY", "")

    OPENAI_BASE_URL: str | None = os.getenv("OPENAI_BASE_URL")

    # Gemini Configuration
    @classmethod
    def get_gemini_api_key(cls) -> str:
        """Get Gemini API key from environment variables.

        Returns:
            Gemini API key from environment or empty string if not set.
        """
        return os.getenv("GEMINI_API_KEY", "")

    # Logging Configuration
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    OPENAI_LOG_LEVEL: str = os.getenv("OPENAI_LOG_LEVEL", "WARNING").upper()

    # Chunking Configuration
    CHUNK_SIZE: int = int(os.getenv("CHUNK_SIZE", "1000"))
    CHUNK_OVERLAP: int = int(os.getenv("CHUNK_OVERLAP", "200"))
    CHUNK_LOOKAHEAD: int = int(os.getenv("CHUNK_LOOKAHEAD", "100"))

    # Embedding Configuration
    EMBEDDING_MODEL: str = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    EMBEDDING_BATCH_SIZE: int = int(os.getenv("EMBEDDING_BATCH_SIZE", "20"))

    # Chat Model Configuration
    CHAT_PROVIDER: str = os.getenv("CHAT_PROVIDER", "openai").lower()
    CHAT_MODEL: str = os.getenv("CHAT_MODEL", "gpt-4o")
    GEMINI_CHAT_MODEL: str = os.getenv("GEMINI_CHAT_MODEL", "gemini-1.5-pro")
    CHAT_MAX_TOKENS: int = int(os.getenv("CHAT_MAX_TOKENS", "1500"))
    CHAT_TEMPERATURE: float = float(os.getenv("CHAT_TEMPERATURE", "0.7"))

    # Retrieval Configuration
    MATCH_COUNT: int = int(os.getenv("MATCH_COUNT", "5"))
    MATCH_THRESHOLD: float = float(os.getenv("MATCH_THRESHOLD", "0.5"))
    PAGE_FALLBACK_LIMIT: int = int(os.getenv("PAGE_FALLBACK_LIMIT", "3"))
    DIRECT_CONTEXT_CHARS: int = int(os.getenv("DIRECT_CONTEXT_CHARS", "6000"))

    # History Configuration
    HISTORY_CHAR_BUDGET: int = int(os.getenv("HISTORY_CHAR_BUDGET", "12000"))
    HISTORY_MIN_MESSAGES: int = int(os.getenv("HISTORY_MIN_MESSAGES", "4"))

    # Vector Store Configuration
    VECTOR_STORE_DB_PATH: Path = Path(
        os.getenv("VECTOR_STORE_DB_PATH", "data/vector_store.db")
    )
    VECTOR_STORE_DIR: Path = Path(os.getenv("VECTOR_STORE_DIR", "data/vectors"))

    # API Header Configuration
    API_USER_AGENT: str = os.getenv("API_USER_AGENT", "Pagewise/1.0")

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration values.

        Raises:
            ValueError: If a required API key is missing, the chat provider is
                unknown or chunking is inconsistent.
        """
        if not cls.get_openai_api_key():
            msg = (
                "OPENAI_API_KEY is required. Please set it in .env file or environment."
            )
            raise ValueError(msg)
        if cls.CHAT_PROVIDER not in {"openai", "gemini"}:
            msg = f"Unknown CHAT_PROVIDER: {cls.CHAT_PROVIDER}"
            raise ValueError(msg)
        if cls.CHAT_PROVIDER == "gemini" and not cls.get_gemini_api_key():
            msg = "GEMINI_API_KEY is required when CHAT_PROVIDER is gemini."
            raise ValueError(msg)
        if cls.CHUNK_OVERLAP >= cls.CHUNK_SIZE:
            msg = (
                f"CHUNK_OVERLAP ({cls.CHUNK_OVERLAP}) must be smaller than "
                f"CHUNK_SIZE ({cls.CHUNK_SIZE})."
            )
            raise ValueError(msg)

    @classmethod
    def setup_logging(cls) -> None:
        """Setup basic logging configuration.

        Configure logging once at application startup with:
        - Console output for all levels
        - Simple, readable format
        - Configurable level via environment variable
        """
        logging.basicConfig(
            level=getattr(logging, cls.LOG_LEVEL, logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )

        # Configure third-party library log levels via environment variables
        logging.getLogger("openai").setLevel(
            getattr(logging, cls.OPENAI_LOG_LEVEL, logging.WARNING)
        )

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Get a logger with the specified name.

        Args:
            name: Logger name (typically __name__)

        Returns:
            Logger instance
        """
        return logging.getLogger(name)

    @classmethod
    def get_api_headers(cls) -> dict[str, str]:
        """Build default headers for outbound API calls.

        Returns:
            Mapping of header names to values used on outbound HTTP requests.
        """
        headers: dict[str, str] = {}

        if cls.API_USER_AGENT:
            headers["User-Agent"] = cls.API_USER_AGENT

        return headers


config = Config()
