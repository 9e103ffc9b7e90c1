"""
Unit tests for global configuration loading and validation.
"""

import os

import pytest
from dataclasses import replace
from unittest.mock import patch

from translatebot.anthropic.client import BASE_URL
from translatebot.config.settings import GlobalConfig, load_global_config, validate_config
from translatebot.processing.translator import DEFAULT_MAX_TOKENS, DEFAULT_MODEL


REQUIRED_ENV = {
    "MATRIX_SERVER": "https://matrix.example.org/",
    "MATRIX_ACCESS_TOKEN": "syt_token",
    "MATRIX_USER_ID": "@translator:example.org",
    "ADMIN_USER_ID": "@admin:example.org",
    "ANTHROPIC_API_KEY": "sk-test",
}


def load_with_env(env):
    """Load configuration from exactly ``env``, ignoring any .env file."""
    with patch.dict(os.environ, env, clear=True), \
            patch("translatebot.config.settings.load_dotenv"):
        return load_global_config()


@pytest.fixture
def valid_config():
    return GlobalConfig(
        matrix_server="https://matrix.example.org",
        matrix_access_token="syt_token",
        matrix_user_id="@translator:example.org",
        admin_user_id="@admin:example.org",
        anthropic_api_key="sk-test"
    )


class TestLoadGlobalConfig:
    """Test cases for load_global_config."""

    def test_defaults(self):
        config = load_with_env(REQUIRED_ENV)

        assert config.matrix_server == "https://matrix.example.org"
        assert config.admin_user_id == "@admin:example.org"
        assert config.anthropic_url == BASE_URL
        assert config.anthropic_model == DEFAULT_MODEL
        assert config.anthropic_max_tokens == DEFAULT_MAX_TOKENS
        assert config.signature_stripping_enabled is True
        assert config.database_type == "sqlite"
        assert config.database_url == "./filter.db"
        assert config.log_level == "INFO"
        assert config.log_file is None

    def test_overrides(self):
        config = load_with_env({
            **REQUIRED_ENV,
            "ANTHROPIC_URL": "http://proxy.local:8080/",
            "ANTHROPIC_MODEL": "claude-test",
            "ANTHROPIC_MAX_TOKENS": "512",
            "SIGNATURE_STRIPPING_ENABLED": "off",
            "TYPING_TIMEOUT": "8000",
            "DATABASE_URL": "/data/filters.db",
            "LOG_LEVEL": "debug",
        })

        assert config.anthropic_url == "http://proxy.local:8080"
        assert config.anthropic_model == "claude-test"
        assert config.anthropic_max_tokens == 512
        assert config.signature_stripping_enabled is False
        assert config.typing_timeout_ms == 8000
        assert config.database_url == "/data/filters.db"
        assert config.log_level == "DEBUG"

    @pytest.mark.parametrize("missing", list(REQUIRED_ENV))
    def test_missing_required(self, missing):
        env = {key: value for key, value in REQUIRED_ENV.items() if key != missing}

        with pytest.raises(ValueError):
            load_with_env(env)

    def test_invalid_integer(self):
        with pytest.raises(ValueError, match="ANTHROPIC_TIMEOUT"):
            load_with_env({**REQUIRED_ENV, "ANTHROPIC_TIMEOUT": "soon"})

    def test_mysql_requires_connection_settings(self):
        with pytest.raises(ValueError, match="MySQL configuration incomplete"):
            load_with_env({**REQUIRED_ENV, "DATABASE_TYPE": "mysql", "MYSQL_HOST": "db"})

    def test_mysql_database_config(self):
        config = load_with_env({
            **REQUIRED_ENV,
            "DATABASE_TYPE": "MySQL",
            "MYSQL_HOST": "db",
            "MYSQL_USER": "bot",
            "MYSQL_PASSWORD": "secret",
            "MYSQL_DATABASE": "filters",
        })

        assert config.database_config() == {
            "DATABASE_TYPE": "mysql",
            "MYSQL_HOST": "db",
            "MYSQL_PORT": 3306,
            "MYSQL_USER": "bot",
            "MYSQL_PASSWORD": "secret",
            "MYSQL_DATABASE": "filters",
        }

    def test_sqlite_database_config(self, valid_config):
        assert valid_config.database_config() == {"DATABASE_TYPE": "sqlite", "DATABASE_URL": "./filter.db"}


class TestValidateConfig:
    """Test cases for validate_config."""

    def test_valid(self, valid_config):
        validate_config(valid_config)

    @pytest.mark.parametrize("changes,message", [
        ({"log_level": "VERBOSE"}, "Invalid log level"),
        ({"log_format": "xml"}, "Invalid log format"),
        ({"database_type": "postgres"}, "Invalid database type"),
        ({"matrix_server": "matrix.example.org"}, "MATRIX_SERVER"),
        ({"matrix_user_id": "translator"}, "Invalid Matrix user id"),
        ({"admin_user_id": "@admin"}, "Invalid Matrix user id"),
        ({"anthropic_timeout": 0}, "timeout must be positive"),
        ({"anthropic_max_tokens": -1}, "max tokens must be positive"),
        ({"typing_timeout_ms": -5}, "must not be negative"),
        ({"mysql_port": 70000}, "MySQL port"),
    ])
    def test_invalid(self, valid_config, changes, message):
        with pytest.raises(ValueError, match=message):
            validate_config(replace(valid_config, **changes))
