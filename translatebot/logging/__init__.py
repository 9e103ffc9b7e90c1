"""
Logging module for the translation bot.

This module provides structured logging capabilities with support for both
JSON and console output formats, configurable log levels, and file rotation.
"""

from .logger import StructuredLogger, get_logger
from .integration import (
    log_async_operation,
    log_message_processing,
    log_filter_event,
    log_translation_event
)

__all__ = [
    'StructuredLogger',
    'get_logger',
    'log_async_operation',
    'log_message_processing',
    'log_filter_event',
    'log_translation_event'
]
