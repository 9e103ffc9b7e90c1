"""
Database models and schema definitions.

This module defines the keyword rule model persisted by the keyword store
and the inbound message event handed from the chat layer to the pipeline.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


TEXT_MSGTYPE = "m.text"


@dataclass
class KeywordRule:
    """A filter pattern stored by the admin. Membership only, no payload."""
    keyword: str
    created_at: Optional[datetime] = None

    @classmethod
    def from_db_row(cls, row: tuple) -> 'KeywordRule':
        """Create KeywordRule instance from database row."""
        created_at = row[1] if len(row) > 1 else None
        if created_at is not None and not isinstance(created_at, datetime):
            created_at = datetime.fromisoformat(str(created_at))
        return cls(keyword=row[0], created_at=created_at)


@dataclass(frozen=True)
class MessageEvent:
    """Represents an incoming room message event from the chat session."""
    room_id: str
    sender: str
    event_id: str
    body: str
    msgtype: str = TEXT_MSGTYPE
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def is_text(self) -> bool:
        return self.msgtype == TEXT_MSGTYPE

    @classmethod
    def from_matrix_event(cls, room_id: str, event: Dict[str, Any]) -> 'MessageEvent':
        """Create MessageEvent from a raw ``m.room.message`` timeline event."""
        content = event.get('content') or {}
        body = content.get('body')
        origin_ts = event.get('origin_server_ts')
        return cls(
            room_id=room_id,
            sender=event.get('sender', ''),
            event_id=event.get('event_id', ''),
            body=body if isinstance(body, str) else '',
            msgtype=content.get('msgtype', ''),
            timestamp=datetime.fromtimestamp(origin_ts / 1000) if isinstance(origin_ts, (int, float)) else datetime.now()
        )
