"""Ports (interfaces) used by the message pipeline.

Ports define the minimal contracts for the chat session and the keyword
store so that the pipeline can run against any chat backend or storage,
and against plain mocks in tests.
"""

from __future__ import annotations

from typing import List, Protocol


class ChatSession(Protocol):
    """Chat operations the pipeline needs."""

    async def send_notice(self, room_id: str, text: str) -> None:
        ...

    async def send_reply(self, room_id: str, in_reply_to: str, text: str) -> None:
        ...

    async def mark_read(self, room_id: str, event_id: str) -> None:
        ...

    async def set_typing(self, room_id: str, typing: bool, timeout_ms: int = 0) -> None:
        ...


class KeywordStorePort(Protocol):
    """Keyword storage operations."""

    async def list_keywords(self) -> List[str]:
        ...

    async def upsert_keyword(self, keyword: str) -> bool:
        ...

    async def delete_keyword(self, keyword: str) -> bool:
        ...
