"""
Error taxonomy for the message pipeline.

Every error the pipeline can recover from derives from
TranslationPipelineError and carries a FailureReason code. The controller
logs the detail and turns all of them into a localized chat notice.
"""

from enum import Enum


class FailureReason(Enum):
    """Why a pipeline run ended without delivering a translation."""
    PROVIDER_FAILURE = "provider_failure"
    EMPTY_REPLY = "empty_reply"
    EMPTY_INPUT = "empty_input"
    WRONG_LANGUAGE = "wrong_language"
    MALFORMED_RULE = "malformed_rule"
    UNSUPPORTED_CONTENT = "unsupported_content"
    KEYWORD_STORE = "keyword_store"
    INTERNAL = "internal"


class TranslationPipelineError(Exception):
    """Base exception for pipeline errors."""
    reason = FailureReason.INTERNAL


class ProviderFailureError(TranslationPipelineError):
    """Raised on transport errors, timeouts and non-success provider status."""
    reason = FailureReason.PROVIDER_FAILURE


class EmptyReplyError(TranslationPipelineError):
    """Raised when the provider reply carries no usable content block."""
    reason = FailureReason.EMPTY_REPLY


class EmptyInputError(TranslationPipelineError):
    """Raised when nothing is left to translate after normalization."""
    reason = FailureReason.EMPTY_INPUT


class WrongLanguageError(TranslationPipelineError):
    """Raised when the reply declares a language other than the target."""
    reason = FailureReason.WRONG_LANGUAGE

    def __init__(self, lang: str, expected: str):
        self.lang = lang
        self.expected = expected
        super().__init__(f"Reply declared language '{lang}', expected '{expected}'")


class MalformedRuleError(TranslationPipelineError):
    """Raised when a filter pattern cannot be compiled safely."""
    reason = FailureReason.MALFORMED_RULE

    def __init__(self, pattern: str, detail: str):
        self.pattern = pattern
        self.detail = detail
        super().__init__(f"Malformed filter pattern {pattern!r}: {detail}")


class UnsupportedContentError(TranslationPipelineError):
    """Raised for non-text messages."""
    reason = FailureReason.UNSUPPORTED_CONTENT


class KeywordStoreError(TranslationPipelineError):
    """Raised when the keyword rules cannot be read."""
    reason = FailureReason.KEYWORD_STORE
