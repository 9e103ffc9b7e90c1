"""
Integration utilities for logging throughout the translation bot.

This module provides helper functions and decorators to attach consistent
structured context to the pipeline's log events.
"""

import logging
import time
from functools import wraps
from typing import Callable, Optional


def log_async_operation(operation_name: str, include_timing: bool = True):
    """
    Decorator to log async methods with optional timing.

    Args:
        operation_name: Name of the operation for logging
        include_timing: Whether to include execution time in logs

    Usage:
        @log_async_operation("translate")
        async def translate(self, text: str):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(self, *args, **kwargs):
            logger = getattr(self, 'logger', None) or logging.getLogger(func.__module__)

            start_time = time.monotonic() if include_timing else None
            context = {"operation": operation_name}
            if args and isinstance(args[0], str):
                context['input_length'] = len(args[0])

            logger.debug(f"Starting {operation_name}", extra=context)

            try:
                result = await func(self, *args, **kwargs)
            except Exception as e:
                if start_time is not None:
                    context['duration_ms'] = round((time.monotonic() - start_time) * 1000, 2)
                logger.warning(
                    f"Failed {operation_name}",
                    extra={**context, "error": str(e), "error_type": type(e).__name__}
                )
                raise

            if start_time is not None:
                context['duration_ms'] = round((time.monotonic() - start_time) * 1000, 2)
            logger.info(f"Completed {operation_name}", extra=context)
            return result

        return wrapper
    return decorator


# Utility functions for common logging patterns

def log_message_processing(
    logger: logging.Logger,
    room_id: str,
    sender: str,
    message_content: str,
    processing_result: str,
    **extra_context
):
    """Log the terminal state of one pipeline run."""
    logger.info(
        "Message processed",
        extra={
            "room_id": room_id,
            "sender": sender,
            "message_length": len(message_content),
            "result": processing_result,
            **extra_context
        }
    )


def log_filter_event(
    logger: logging.Logger,
    room_id: str,
    blocked: bool,
    matched_keyword: Optional[str] = None,
    content_length: Optional[int] = None,
    **extra_context
):
    """Log keyword filter decisions."""
    if blocked:
        logger.warning(
            "Message suppressed by keyword filter",
            extra={
                "room_id": room_id,
                "matched_keyword": matched_keyword,
                "content_length": content_length,
                **extra_context
            }
        )
    else:
        logger.debug(
            "Message passed keyword filter",
            extra={"room_id": room_id, **extra_context}
        )


def log_translation_event(
    logger: logging.Logger,
    room_id: str,
    success: bool,
    duration_ms: float,
    model_used: str,
    **extra_context
):
    """Log translation attempts."""
    context = {
        "room_id": room_id,
        "duration_ms": round(duration_ms, 2),
        "model": model_used,
        **extra_context
    }
    if success:
        logger.info("Message translated successfully", extra=context)
    else:
        logger.warning("Message translation failed", extra=context)
