"""
Translation reply parsing.

The model has answered in three shapes over time: a hand-delimited
pseudo-JSON envelope, a real JSON object with a language tag, and plain
prose. Each shape has a parser that either returns a ParsedTranslation or
passes (returns None); the first one that succeeds wins. Decoding problems
always degrade to passing the raw text through, never to an exception.
"""

import json
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from ..anthropic.client import ContentBlock, MessageResponse, StructuredBlock
from .errors import EmptyReplyError, WrongLanguageError
from .translator import TARGET_LANGUAGE

logger = logging.getLogger(__name__)


LEGACY_PREFIX = '{\n"lang": "he",\n"text": "'
LEGACY_SUFFIX = '"\n}'


@dataclass(frozen=True)
class ParsedTranslation:
    """Translated output text and the language the model declared, if any."""
    text: str
    lang: Optional[str] = None


EnvelopeParser = Callable[[str], Optional[ParsedTranslation]]


def parse_legacy_envelope(raw: str) -> Optional[ParsedTranslation]:
    """
    Strip the legacy delimited envelope.

    The remainder is returned verbatim and the language tag is not
    reported, so it is never validated on this path.
    """
    if (len(raw) >= len(LEGACY_PREFIX) + len(LEGACY_SUFFIX)
            and raw.startswith(LEGACY_PREFIX) and raw.endswith(LEGACY_SUFFIX)):
        return ParsedTranslation(text=raw[len(LEGACY_PREFIX):-len(LEGACY_SUFFIX)])
    return None


def _text_value(value) -> str:
    # Non-string payloads are passed through as their JSON source
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def parse_json_envelope(raw: str) -> Optional[ParsedTranslation]:
    """
    Decode a ``{"lang": ..., "text": ...}`` object.

    An object that declares a language but carries no text is still an
    envelope: the raw reply stands in for the text so the language tag is
    checked.
    """
    try:
        decoded = json.loads(raw)
    except (ValueError, RecursionError):
        # ValueError covers JSONDecodeError and oversized integer literals
        return None

    if not isinstance(decoded, dict):
        return None

    lang = decoded.get("lang")
    if not isinstance(lang, str):
        lang = None

    if "text" in decoded:
        return ParsedTranslation(text=_text_value(decoded["text"]), lang=lang)
    if lang is not None:
        return ParsedTranslation(text=raw, lang=lang)
    return None


def parse_plain_text(raw: str) -> Optional[ParsedTranslation]:
    """Treat the reply as prose."""
    return ParsedTranslation(text=raw)


DEFAULT_PARSERS: Sequence[EnvelopeParser] = (
    parse_legacy_envelope,
    parse_json_envelope,
    parse_plain_text,
)


class ResponseParser:
    """
    Extracts the translated text from a provider reply.

    Only the first content block is consumed. A declared language tag must
    equal the target language.
    """

    def __init__(self,
                 target_language: str = TARGET_LANGUAGE,
                 parsers: Sequence[EnvelopeParser] = DEFAULT_PARSERS):
        self.target_language = target_language
        self.parsers = tuple(parsers)

    def parse_text(self, raw: str) -> ParsedTranslation:
        """
        Run the envelope parsers over a reply text in order.

        Raises:
            WrongLanguageError: If the reply declares a non-target language
        """
        for envelope_parser in self.parsers:
            parsed = envelope_parser(raw)
            if parsed is not None:
                logger.debug("Reply parsed", extra={
                    "envelope": envelope_parser.__name__,
                    "lang": parsed.lang
                })
                return self._check_language(parsed)

        return ParsedTranslation(text=raw)

    def parse_block(self, block: ContentBlock) -> ParsedTranslation:
        """Parse a single decoded content block."""
        if isinstance(block, StructuredBlock):
            return self._check_language(ParsedTranslation(text=_text_value(block.text), lang=block.lang))
        return self.parse_text(block.text)

    def parse(self, response: MessageResponse) -> ParsedTranslation:
        """
        Parse a provider reply.

        Raises:
            EmptyReplyError: If the reply has no content blocks
            WrongLanguageError: If the reply declares a non-target language
        """
        if not response.content:
            raise EmptyReplyError("Reply has no content blocks")
        return self.parse_block(response.content[0])

    def _check_language(self, parsed: ParsedTranslation) -> ParsedTranslation:
        if parsed.lang is not None and parsed.lang != self.target_language:
            raise WrongLanguageError(parsed.lang, self.target_language)
        return parsed
