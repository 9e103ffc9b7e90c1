"""Configuration module for environment settings and admin commands."""

from .commands import AdminCommandHandler
from .settings import GlobalConfig, load_global_config, validate_config

__all__ = ['AdminCommandHandler', 'GlobalConfig', 'load_global_config', 'validate_config']
