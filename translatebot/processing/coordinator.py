"""
Message processing coordinator.

This module implements the MessageProcessor that takes one inbound chat
message through keyword filtering, normalization, translation and reply
parsing, and maps the result to exactly one observable action: a
suppression notice, a threaded translated reply, or a failure notice.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from ..database.models import MessageEvent
from ..logging.integration import log_filter_event, log_message_processing, log_translation_event
from .errors import (
    EmptyInputError,
    FailureReason,
    KeywordStoreError,
    TranslationPipelineError,
    UnsupportedContentError,
)
from .filters import KeywordFilter
from .normalizer import normalize_text
from .parser import ResponseParser
from .ports import ChatSession, KeywordStorePort
from .translator import TranslationInvoker

logger = logging.getLogger(__name__)


TEXT_ONLY_NOTICE = "ניתן לתרגם רק הודעות טקסט"
SUPPRESSED_NOTICE = "ההודעה שלך נחסמה מכיוון שהיא מכילה את הביטוי: {keyword}"
FAILURE_NOTICE = "שגיאה במהלך התרגום"

DEFAULT_TYPING_TIMEOUT_MS = 5000


class PipelineState(Enum):
    """States of one pipeline run."""
    RECEIVED = "received"
    FILTERED = "filtered"
    SUPPRESSED = "suppressed"
    NORMALIZING = "normalizing"
    TRANSLATING = "translating"
    PARSING = "parsing"
    DELIVERED = "delivered"
    FAILED = "failed"


@dataclass(frozen=True)
class Suppressed:
    """The message matched a filter keyword and was not translated."""
    matched_keyword: str


@dataclass(frozen=True)
class Translated:
    """The message was translated and the reply was sent."""
    text: str


@dataclass(frozen=True)
class Failed:
    """The run ended with a failure notice (or a text-only notice)."""
    reason: FailureReason


PipelineOutcome = Union[Suppressed, Translated, Failed]


class MessageProcessor:
    """
    Main message processing coordinator.

    All collaborators are injected; the processor holds no per-message
    state, so independent messages can be processed concurrently.
    """

    def __init__(self,
                 chat_session: ChatSession,
                 keyword_store: KeywordStorePort,
                 translator: TranslationInvoker,
                 bot_user_id: str,
                 keyword_filter: Optional[KeywordFilter] = None,
                 response_parser: Optional[ResponseParser] = None,
                 strip_signatures: bool = True,
                 typing_timeout_ms: int = DEFAULT_TYPING_TIMEOUT_MS):
        """
        Initialize MessageProcessor.

        Args:
            chat_session: Chat operations (notices, replies, receipts, typing)
            keyword_store: Source of the filter patterns
            translator: Translation invoker
            bot_user_id: The bot's own identity; its messages are ignored
            keyword_filter: Keyword filter (a fresh one if omitted)
            response_parser: Reply parser (a fresh one if omitted)
            strip_signatures: Whether normalization strips signature lines
            typing_timeout_ms: TTL for the typing indicator
        """
        self.chat_session = chat_session
        self.keyword_store = keyword_store
        self.translator = translator
        self.bot_user_id = bot_user_id
        self.keyword_filter = keyword_filter or KeywordFilter()
        self.response_parser = response_parser or ResponseParser()
        self.strip_signatures = strip_signatures
        self.typing_timeout_ms = typing_timeout_ms

        logger.info("MessageProcessor initialized", extra={
            "bot_user_id": bot_user_id,
            "strip_signatures": strip_signatures
        })

    async def process_incoming_message(self, message_event: MessageEvent) -> Optional[PipelineOutcome]:
        """
        Process one inbound message.

        Flow:
        1. Ignore the bot's own messages and empty bodies; answer non-text
           messages with a text-only notice
        2. Check the keyword filter; on a match send a suppression notice
        3. Normalize, translate and parse the reply
        4. Send the translation as a reply threaded to the original message

        Never raises: every failure is logged and reported to the room.

        Args:
            message_event: MessageEvent from the chat session

        Returns:
            The outcome, or None if the message was ignored
        """
        if message_event.sender == self.bot_user_id:
            return None

        room_id = message_event.room_id

        try:
            if not message_event.is_text:
                raise UnsupportedContentError(f"Unsupported message type: {message_event.msgtype}")

            if not message_event.body:
                return None

            outcome = await self._run(message_event)

        except UnsupportedContentError as e:
            logger.info("Received message with non-text content", extra={
                "room_id": room_id,
                "event_id": message_event.event_id,
                "msgtype": message_event.msgtype
            })
            await self._send_notice(room_id, TEXT_ONLY_NOTICE)
            outcome = Failed(e.reason)

        except TranslationPipelineError as e:
            logger.error(f"Error processing message: {e}", extra={
                "room_id": room_id,
                "event_id": message_event.event_id,
                "state": PipelineState.FAILED.value,
                "failure_reason": e.reason.value
            })
            await self._send_notice(room_id, FAILURE_NOTICE)
            outcome = Failed(e.reason)

        except Exception as e:
            logger.exception(f"Unexpected error processing message: {e}", extra={
                "room_id": room_id,
                "event_id": message_event.event_id
            })
            await self._send_notice(room_id, FAILURE_NOTICE)
            outcome = Failed(FailureReason.INTERNAL)

        if outcome is not None:
            log_message_processing(
                logger,
                room_id,
                message_event.sender,
                message_event.body,
                type(outcome).__name__.lower(),
                event_id=message_event.event_id
            )
        return outcome

    async def _run(self, message_event: MessageEvent) -> PipelineOutcome:
        """Run filter, translation and delivery for a text message."""
        room_id = message_event.room_id
        self._trace(message_event, PipelineState.RECEIVED)

        try:
            rules = await self.keyword_store.list_keywords()
        except Exception as e:
            raise KeywordStoreError(f"Error getting filter keywords: {e}") from e

        suppress, matched_keyword = self.keyword_filter.should_suppress(message_event.body, rules)
        self._trace(message_event, PipelineState.FILTERED)
        log_filter_event(
            logger,
            room_id,
            suppress,
            matched_keyword=matched_keyword,
            content_length=len(message_event.body),
            rules_count=len(rules)
        )

        if suppress:
            self._trace(message_event, PipelineState.SUPPRESSED)
            await self._send_notice(room_id, SUPPRESSED_NOTICE.format(keyword=matched_keyword))
            return Suppressed(matched_keyword)

        await self._mark_read(room_id, message_event.event_id)
        await self._set_typing(room_id, True)
        try:
            self._trace(message_event, PipelineState.NORMALIZING)
            normalized = normalize_text(message_event.body, self.strip_signatures)
            if not normalized.strip():
                raise EmptyInputError("Nothing left to translate after normalization")

            self._trace(message_event, PipelineState.TRANSLATING)
            start_time = time.monotonic()
            try:
                response = await self.translator.translate(normalized)
            except TranslationPipelineError as e:
                log_translation_event(
                    logger, room_id, False, (time.monotonic() - start_time) * 1000,
                    self.translator.model, failure_reason=e.reason.value
                )
                raise
            log_translation_event(
                logger, room_id, True, (time.monotonic() - start_time) * 1000,
                self.translator.model,
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens
            )

            self._trace(message_event, PipelineState.PARSING)
            parsed = self.response_parser.parse(response)
        finally:
            await self._set_typing(room_id, False)

        self._trace(message_event, PipelineState.DELIVERED)
        await self._send_reply(room_id, message_event.event_id, parsed.text)
        return Translated(parsed.text)

    def _trace(self, message_event: MessageEvent, state: PipelineState) -> None:
        logger.debug("Pipeline state", extra={
            "room_id": message_event.room_id,
            "event_id": message_event.event_id,
            "state": state.value
        })

    # Chat side effects: failures are logged and never change the outcome

    async def _send_notice(self, room_id: str, text: str) -> None:
        try:
            await self.chat_session.send_notice(room_id, text)
        except Exception as e:
            logger.error(f"Failed to send notice: {e}", extra={"room_id": room_id})

    async def _send_reply(self, room_id: str, event_id: str, text: str) -> None:
        try:
            await self.chat_session.send_reply(room_id, event_id, text)
            logger.info("Sent translated reply", extra={
                "room_id": room_id,
                "event_id": event_id,
                "reply_length": len(text)
            })
        except Exception as e:
            logger.error(f"Failed to send translated reply: {e}", extra={
                "room_id": room_id,
                "event_id": event_id
            })

    async def _mark_read(self, room_id: str, event_id: str) -> None:
        try:
            await self.chat_session.mark_read(room_id, event_id)
        except Exception as e:
            logger.warning(f"Failed to send read receipt: {e}", extra={"room_id": room_id})

    async def _set_typing(self, room_id: str, typing: bool) -> None:
        try:
            await self.chat_session.set_typing(room_id, typing, self.typing_timeout_ms if typing else 0)
        except Exception as e:
            logger.warning(f"Failed to update typing indicator: {e}", extra={"room_id": room_id})
