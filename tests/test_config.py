"""Tests for the Config class."""

import logging
import os
from importlib import reload
from pathlib import Path
from unittest.mock import patch

import pytest

from pagewise import config as config_module
from pagewise.config import Config


def test_get_openai_api_key_from_env():
    """Test OpenAI API key retrieval from environment."""
    with patch.dict(os.environ, {"OPENAI_API_KEY": "test-api-key"}):
        assert Config.get_openai_api_key() == "test-api-key"


def test_get_openai_api_key_empty_when_not_set():
    with patch.dict(os.environ, {}, clear=True):
        assert not Config.get_openai_api_key()


def test_validate_success_with_api_key():
    with patch.object(Config, "get_openai_api_key", return_value="test-key"):
        Config.validate()


def test_validate_fails_without_api_key():
    with (
        patch.object(Config, "get_openai_api_key", return_value=""),
        pytest.raises(ValueError, match="OPENAI_API_KEY is required"),
    ):
        Config.validate()


def test_validate_rejects_overlap_not_smaller_than_chunk():
    with (
        patch.object(Config, "get_openai_api_key", return_value="test-key"),
        patch.object(Config, "CHUNK_SIZE", 200),
        patch.object(Config, "CHUNK_OVERLAP", 200),
        pytest.raises(ValueError, match="must be smaller than"),
    ):
        Config.validate()


def test_validate_rejects_unknown_chat_provider():
    with (
        patch.object(Config, "get_openai_api_key", return_value="test-key"),
        patch.object(Config, "CHAT_PROVIDER", "anthropic"),
        pytest.raises(ValueError, match="Unknown CHAT_PROVIDER: anthropic"),
    ):
        Config.validate()


def test_validate_requires_gemini_key_for_gemini_provider():
    with (
        patch.object(Config, "get_openai_api_key", return_value="test-key"),
        patch.object(Config, "get_gemini_api_key", return_value=""),
        patch.object(Config, "CHAT_PROVIDER", "gemini"),
        pytest.raises(ValueError, match="GEMINI_API_KEY is required"),
    ):
        Config.validate()


def test_config_has_no_environment_switches():
    assert not hasattr(Config, "ENVIRONMENT")
    assert not hasattr(Config, "is_development")
    assert not hasattr(Config, "is_production")


def test_get_gemini_api_key_from_env():
    with patch.dict(os.environ, {"GEMINI_API_KEY": "gemini-key"}):
        assert Config.get_gemini_api_key() == "gemini-key"


@pytest.mark.parametrize(
    ("env_var", "default_value", "test_value", "expected_type"),
    [
        ("LOG_LEVEL", "INFO", "debug", str),
        ("OPENAI_LOG_LEVEL", "WARNING", "error", str),
        ("EMBEDDING_MODEL", "text-embedding-3-small", "text-embedding-ada-002", str),
        ("CHAT_MODEL", "gpt-4o", "gpt-4o-mini", str),
        ("CHAT_PROVIDER", "openai", "gemini", str),
        ("GEMINI_CHAT_MODEL", "gemini-1.5-pro", "gemini-1.5-flash", str),
        ("CHUNK_SIZE", 1000, "1500", int),
        ("CHUNK_OVERLAP", 200, "300", int),
        ("CHUNK_LOOKAHEAD", 100, "50", int),
        ("CHAT_MAX_TOKENS", 1500, "1000", int),
        ("CHAT_TEMPERATURE", 0.7, "0.5", float),
        ("MATCH_COUNT", 5, "8", int),
        ("MATCH_THRESHOLD", 0.5, "0.3", float),
        ("PAGE_FALLBACK_LIMIT", 3, "2", int),
        ("DIRECT_CONTEXT_CHARS", 6000, "4000", int),
        ("HISTORY_CHAR_BUDGET", 12000, "8000", int),
        ("HISTORY_MIN_MESSAGES", 4, "2", int),
    ],
)
def test_config_loading_from_env(env_var, default_value, test_value, expected_type):
    with patch.dict(os.environ, {}, clear=True):
        reload(config_module)
        assert getattr(config_module.Config, env_var) == default_value

    with patch.dict(os.environ, {env_var: test_value}):
        reload(config_module)
        actual_value = getattr(config_module.Config, env_var)
        if expected_type is int:
            expected = int(test_value)
        elif expected_type is float:
            expected = float(test_value)
        elif env_var in {"LOG_LEVEL", "OPENAI_LOG_LEVEL"}:
            expected = test_value.upper()
        else:
            expected = test_value
        assert actual_value == expected

    reload(config_module)


@pytest.mark.parametrize(
    ("env_var", "test_path"),
    [
        ("VECTOR_STORE_DB_PATH", "/custom/path/store.db"),
        ("VECTOR_STORE_DIR", "/custom/vectors"),
    ],
)
def test_path_config_loading(env_var, test_path):
    """Test Path configuration loading from environment variables."""
    with patch.dict(os.environ, {}, clear=True):
        reload(config_module)
        assert isinstance(getattr(config_module.Config, env_var), Path)

    with patch.dict(os.environ, {env_var: test_path}):
        reload(config_module)
        assert getattr(config_module.Config, env_var) == Path(test_path)

    reload(config_module)


@pytest.mark.parametrize(
    ("log_level", "openai_level", "expected_level", "expected_openai_level"),
    [
        ("INFO", "WARNING", logging.INFO, logging.WARNING),
        ("DEBUG", "ERROR", logging.DEBUG, logging.ERROR),
        ("INVALID", "INVALID", logging.INFO, logging.WARNING),
    ],
)
def test_setup_logging_levels(
    log_level, openai_level, expected_level, expected_openai_level
):
    """Verify logging setup respects overrides and falls back on invalid values."""
    with (
        patch.object(Config, "LOG_LEVEL", log_level),
        patch.object(Config, "OPENAI_LOG_LEVEL", openai_level),
        patch("pagewise.config.logging.basicConfig") as mock_basic,
        patch("pagewise.config.logging.getLogger") as mock_get_logger,
    ):
        mock_logger = mock_get_logger.return_value

        Config.setup_logging()

        mock_basic.assert_called_once_with(
            level=expected_level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        mock_get_logger.assert_called_once_with("openai")
        mock_logger.setLevel.assert_called_once_with(expected_openai_level)


def test_get_api_headers_uses_user_agent():
    with patch.object(Config, "API_USER_AGENT", "Pagewise-Test/2.0"):
        assert Config.get_api_headers() == {"User-Agent": "Pagewise-Test/2.0"}


def test_get_api_headers_empty_without_user_agent():
    with patch.object(Config, "API_USER_AGENT", ""):
        assert Config.get_api_headers() == {}


@pytest.mark.parametrize(
    ("env_var", "invalid_value", "error_match"),
    [
        ("CHUNK_SIZE", "not_a_number", "invalid literal for int"),
        ("CHAT_TEMPERATURE", "not_a_float", "could not convert string to float"),
    ],
)
def test_type_conversion_errors(env_var, invalid_value, error_match):
    with (
        patch.dict(os.environ, {env_var: invalid_value}),
        pytest.raises(ValueError, match=error_match),
    ):
        reload(config_module)

    reload(config_module)


def test_no_dotenv_loading_when_missing():
    """Test that .env file loading is skipped when file doesn't exist."""
    with (
        patch.object(Path, "exists", return_value=False),
        patch("pagewise.config.load_dotenv") as mock_load,
    ):
        reload(config_module)

        mock_load.assert_not_called()
