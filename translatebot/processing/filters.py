"""
Keyword filter implementation.

This module decides whether an inbound message must be suppressed instead
of translated, based on the admin-managed keyword patterns. Patterns are
regular expressions supplied through chat commands and are matched with the
``regex`` engine, which accepts Unicode property classes such as ``\\p{L}``
and bounds each search with a timeout. A pattern that fails to compile, or
runs out of time on a message, never matches again and never aborts
processing.
"""

import logging
from typing import Dict, Iterable, Optional, Tuple, Union

import regex

from .errors import MalformedRuleError


MAX_PATTERN_LENGTH = 256

# Seconds a single pattern may spend on one message
MATCH_TIMEOUT = 0.1


def compile_pattern(pattern: str) -> regex.Pattern:
    """
    Compile an admin-supplied pattern after validating it.

    Args:
        pattern: Regular expression source

    Returns:
        Compiled pattern (case-sensitive)

    Raises:
        MalformedRuleError: If the pattern is empty, too long, or not valid
            syntax
    """
    if not pattern:
        raise MalformedRuleError(pattern, "empty pattern")
    if len(pattern) > MAX_PATTERN_LENGTH:
        raise MalformedRuleError(pattern, f"longer than {MAX_PATTERN_LENGTH} characters")
    try:
        return regex.compile(pattern)
    except regex.error as e:
        raise MalformedRuleError(pattern, str(e)) from e


class KeywordFilter:
    """
    Matches message text against an ordered set of keyword patterns.

    Compiled patterns are cached by source string; malformed patterns are
    cached as failures so they are reported once rather than per message.
    A pattern whose search exceeds ``match_timeout`` is treated as malformed
    from then on.
    """

    def __init__(self, match_timeout: float = MATCH_TIMEOUT):
        self.match_timeout = match_timeout
        self._compiled: Dict[str, Union[regex.Pattern, MalformedRuleError]] = {}
        self.logger = logging.getLogger(__name__)

    def _reject(self, error: MalformedRuleError) -> None:
        self.logger.warning(
            "Ignoring malformed filter pattern",
            extra={
                "pattern": error.pattern,
                "filter_reason": error.reason.value,
                "detail": error.detail
            }
        )
        self._compiled[error.pattern] = error

    def _get_compiled(self, pattern: str) -> Optional[regex.Pattern]:
        cached = self._compiled.get(pattern)
        if cached is None:
            try:
                cached = compile_pattern(pattern)
            except MalformedRuleError as e:
                self._reject(e)
                return None
            self._compiled[pattern] = cached

        if isinstance(cached, MalformedRuleError):
            return None
        return cached

    def _matches(self, pattern: str, compiled: regex.Pattern, text: str) -> bool:
        try:
            return compiled.search(text, timeout=self.match_timeout) is not None
        except TimeoutError:
            self._reject(MalformedRuleError(pattern, f"match exceeded {self.match_timeout}s"))
            return False

    def should_suppress(self, text: str, rules: Iterable[str]) -> Tuple[bool, Optional[str]]:
        """
        Check a message against the rules in the order given.

        Args:
            text: Message body
            rules: Patterns, evaluated in order until the first match

        Returns:
            Tuple of (suppress, matched_keyword); matched_keyword is None
            when nothing matched
        """
        for pattern in rules:
            compiled = self._get_compiled(pattern)
            if compiled is not None and self._matches(pattern, compiled, text):
                return True, pattern
        return False, None

    def validate(self, pattern: str) -> Optional[str]:
        """
        Check a pattern before it is stored.

        Returns:
            None if the pattern is usable, otherwise a short reason
        """
        try:
            compile_pattern(pattern)
        except MalformedRuleError as e:
            return e.detail
        return None

    def forget(self, pattern: str) -> None:
        """Drop a pattern from the compile cache."""
        self._compiled.pop(pattern, None)

