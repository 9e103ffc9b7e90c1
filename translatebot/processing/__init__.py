"""Message processing module for filtering, normalization, translation and reply parsing."""

from .coordinator import (
    Failed,
    MessageProcessor,
    PipelineOutcome,
    PipelineState,
    Suppressed,
    Translated,
)
from .errors import (
    EmptyInputError,
    EmptyReplyError,
    FailureReason,
    KeywordStoreError,
    MalformedRuleError,
    ProviderFailureError,
    TranslationPipelineError,
    UnsupportedContentError,
    WrongLanguageError,
)
from .filters import KeywordFilter, compile_pattern
from .normalizer import normalize_text, remove_emojis, remove_signature
from .parser import ParsedTranslation, ResponseParser
from .ports import ChatSession, KeywordStorePort
from .translator import TranslationInvoker

__all__ = [
    'MessageProcessor',
    'PipelineOutcome',
    'PipelineState',
    'Suppressed',
    'Translated',
    'Failed',
    'FailureReason',
    'TranslationPipelineError',
    'ProviderFailureError',
    'EmptyReplyError',
    'EmptyInputError',
    'WrongLanguageError',
    'MalformedRuleError',
    'UnsupportedContentError',
    'KeywordStoreError',
    'KeywordFilter',
    'compile_pattern',
    'normalize_text',
    'remove_emojis',
    'remove_signature',
    'ParsedTranslation',
    'ResponseParser',
    'ChatSession',
    'KeywordStorePort',
    'TranslationInvoker',
]
