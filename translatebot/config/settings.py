"""
Global configuration management for the translation bot.

This module handles loading and validation of environment variables
and global application settings.
"""

import os
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from dotenv import load_dotenv

from ..anthropic.client import BASE_URL, DEFAULT_VERSION
from ..processing.translator import DEFAULT_MAX_TOKENS, DEFAULT_MODEL

logger = logging.getLogger(__name__)


TRUE_VALUES = ('true', '1', 'yes', 'on')


@dataclass
class GlobalConfig:
    """Global configuration settings loaded from environment variables."""

    # Required fields (no defaults)
    matrix_server: str
    matrix_access_token: str
    matrix_user_id: str
    admin_user_id: str
    anthropic_api_key: str

    # Optional fields (with defaults)
    anthropic_url: str = BASE_URL
    anthropic_version: str = DEFAULT_VERSION
    anthropic_model: str = DEFAULT_MODEL
    anthropic_max_tokens: int = DEFAULT_MAX_TOKENS
    anthropic_timeout: int = 60
    signature_stripping_enabled: bool = True
    sync_timeout_ms: int = 30000
    typing_timeout_ms: int = 5000
    database_type: str = 'sqlite'
    database_url: str = './filter.db'
    mysql_host: Optional[str] = None
    mysql_port: int = 3306
    mysql_user: Optional[str] = None
    mysql_password: Optional[str] = None
    mysql_database: Optional[str] = None
    log_level: str = 'INFO'
    log_format: str = 'console'
    log_file: Optional[str] = None

    def database_config(self) -> Dict[str, Any]:
        """Build the dictionary accepted by create_database_manager."""
        if self.database_type == 'mysql':
            return {
                'DATABASE_TYPE': 'mysql',
                'MYSQL_HOST': self.mysql_host,
                'MYSQL_PORT': self.mysql_port,
                'MYSQL_USER': self.mysql_user,
                'MYSQL_PASSWORD': self.mysql_password,
                'MYSQL_DATABASE': self.mysql_database
            }
        return {'DATABASE_TYPE': 'sqlite', 'DATABASE_URL': self.database_url}


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def load_global_config() -> GlobalConfig:
    """
    Load global configuration from environment variables.

    Returns:
        GlobalConfig: Loaded configuration

    Raises:
        ValueError: If required environment variables are missing or invalid
    """
    # Load environment variables from .env file if present
    load_dotenv()

    # Matrix configuration
    matrix_server = os.getenv('MATRIX_SERVER')
    matrix_access_token = os.getenv('MATRIX_ACCESS_TOKEN')
    matrix_user_id = os.getenv('MATRIX_USER_ID')

    if not matrix_server or not matrix_access_token or not matrix_user_id:
        raise ValueError(
            "Matrix configuration incomplete. Required: MATRIX_SERVER, "
            "MATRIX_ACCESS_TOKEN, MATRIX_USER_ID"
        )

    admin_user_id = os.getenv('ADMIN_USER_ID')
    if not admin_user_id:
        raise ValueError("ADMIN_USER_ID environment variable is required")

    # Anthropic configuration
    anthropic_api_key = os.getenv('ANTHROPIC_API_KEY')
    if not anthropic_api_key:
        raise ValueError("ANTHROPIC_API_KEY environment variable is required")

    # Database configuration
    database_type = os.getenv('DATABASE_TYPE', 'sqlite').lower()
    database_url = os.getenv('DATABASE_URL', './filter.db')

    # MySQL configuration (only required if using MySQL)
    mysql_host = os.getenv('MYSQL_HOST')
    mysql_port = _get_int('MYSQL_PORT', 3306)
    mysql_user = os.getenv('MYSQL_USER')
    mysql_password = os.getenv('MYSQL_PASSWORD')
    mysql_database = os.getenv('MYSQL_DATABASE')

    if database_type == 'mysql':
        if not all([mysql_host, mysql_user, mysql_password, mysql_database]):
            raise ValueError(
                "MySQL configuration incomplete. Required: MYSQL_HOST, "
                "MYSQL_USER, MYSQL_PASSWORD, MYSQL_DATABASE"
            )

    signature_stripping_enabled = os.getenv('SIGNATURE_STRIPPING_ENABLED', 'true').lower() in TRUE_VALUES

    return GlobalConfig(
        matrix_server=matrix_server.rstrip('/'),
        matrix_access_token=matrix_access_token,
        matrix_user_id=matrix_user_id,
        admin_user_id=admin_user_id,
        anthropic_api_key=anthropic_api_key,
        anthropic_url=os.getenv('ANTHROPIC_URL', BASE_URL).rstrip('/'),
        anthropic_version=os.getenv('ANTHROPIC_VERSION', DEFAULT_VERSION),
        anthropic_model=os.getenv('ANTHROPIC_MODEL', DEFAULT_MODEL),
        anthropic_max_tokens=_get_int('ANTHROPIC_MAX_TOKENS', DEFAULT_MAX_TOKENS),
        anthropic_timeout=_get_int('ANTHROPIC_TIMEOUT', 60),
        signature_stripping_enabled=signature_stripping_enabled,
        sync_timeout_ms=_get_int('SYNC_TIMEOUT', 30000),
        typing_timeout_ms=_get_int('TYPING_TIMEOUT', 5000),
        database_type=database_type,
        database_url=database_url,
        mysql_host=mysql_host,
        mysql_port=mysql_port,
        mysql_user=mysql_user,
        mysql_password=mysql_password,
        mysql_database=mysql_database,
        log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
        log_format=os.getenv('LOG_FORMAT', 'console'),  # 'console' or 'json'
        log_file=os.getenv('LOG_FILE') or None
    )


def validate_config(config: GlobalConfig) -> None:
    """
    Validate configuration values for consistency and correctness.

    Args:
        config: Configuration to validate

    Raises:
        ValueError: If configuration is invalid
    """
    valid_log_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
    if config.log_level not in valid_log_levels:
        raise ValueError(f"Invalid log level: {config.log_level}")

    valid_log_formats = ['console', 'json']
    if config.log_format not in valid_log_formats:
        raise ValueError(f"Invalid log format: {config.log_format}")

    valid_db_types = ['sqlite', 'mysql']
    if config.database_type not in valid_db_types:
        raise ValueError(f"Invalid database type: {config.database_type}")

    if not config.matrix_server.startswith(('http://', 'https://')):
        raise ValueError(f"MATRIX_SERVER must be an http(s) URL: {config.matrix_server}")

    for user_id in (config.matrix_user_id, config.admin_user_id):
        if not user_id.startswith('@') or ':' not in user_id:
            raise ValueError(f"Invalid Matrix user id: {user_id}")

    if config.anthropic_timeout <= 0:
        raise ValueError("Anthropic timeout must be positive")

    if config.anthropic_max_tokens <= 0:
        raise ValueError("Anthropic max tokens must be positive")

    if config.sync_timeout_ms < 0 or config.typing_timeout_ms < 0:
        raise ValueError("Sync and typing timeouts must not be negative")

    if config.mysql_port <= 0 or config.mysql_port > 65535:
        raise ValueError("MySQL port must be between 1 and 65535")
