"""
Pytest configuration and shared fixtures for the test suite.
"""

import pytest
import os
import tempfile
from typing import Any, Dict, List
from unittest.mock import AsyncMock, Mock

from translatebot.anthropic.client import AnthropicClient, MessageResponse, TextBlock, Usage
from translatebot.database.models import MessageEvent
from translatebot.database.operations import DatabaseManager, KeywordStore
from translatebot.matrix.client import MatrixClient
from translatebot.processing.coordinator import MessageProcessor
from translatebot.processing.filters import KeywordFilter
from translatebot.processing.translator import TranslationInvoker


BOT_USER_ID = "@translator:example.org"
ADMIN_USER_ID = "@admin:example.org"
USER_ID = "@alice:example.org"
ROOM_ID = "!room:example.org"


def make_response(*blocks, model: str = "claude-3-haiku-20240307") -> MessageResponse:
    """Build a provider reply from content blocks (plain strings become text blocks)."""
    content = [TextBlock(text=block) if isinstance(block, str) else block for block in blocks]
    return MessageResponse(
        id="msg_test",
        type="message",
        role="assistant",
        content=content,
        model=model,
        stop_reason="end_turn",
        usage=Usage(input_tokens=12, output_tokens=34)
    )


def make_matrix_event(body: Any = "Hello everyone!", sender: str = USER_ID,
                      event_id: str = "$event1", msgtype: str = "m.text") -> Dict[str, Any]:
    """Build a raw ``m.room.message`` timeline event."""
    content: Dict[str, Any] = {"msgtype": msgtype}
    if body is not None:
        content["body"] = body
    return {
        "type": "m.room.message",
        "sender": sender,
        "event_id": event_id,
        "origin_server_ts": 1700000000000,
        "content": content,
    }


@pytest.fixture
def temp_db_file():
    """Create a temporary database file for testing."""
    with tempfile.NamedTemporaryFile(suffix='.db', delete=False) as f:
        temp_path = f.name
    yield temp_path
    # Cleanup
    if os.path.exists(temp_path):
        os.unlink(temp_path)


@pytest.fixture
async def db_manager(temp_db_file):
    """Create a test database manager with SQLite."""
    manager = DatabaseManager(db_type="sqlite", database_url=temp_db_file)
    await manager.initialize()
    yield manager
    await manager.close()


@pytest.fixture
async def keyword_store(db_manager):
    """Create a keyword store on the temporary database."""
    return KeywordStore(db_manager)


@pytest.fixture
def mock_keyword_store():
    """Create an in-memory stand-in for the keyword store."""
    keywords: List[str] = []

    async def upsert(keyword):
        if keyword not in keywords:
            keywords.append(keyword)
        return True

    async def delete(keyword):
        if keyword in keywords:
            keywords.remove(keyword)
        return True

    store = Mock(spec=KeywordStore)
    store.keywords = keywords
    store.list_keywords = AsyncMock(side_effect=lambda: list(keywords))
    store.upsert_keyword = AsyncMock(side_effect=upsert)
    store.delete_keyword = AsyncMock(side_effect=delete)
    return store


@pytest.fixture
def mock_chat_session():
    """Create a mock Matrix client exposing the chat session operations."""
    session = Mock(spec=MatrixClient)
    session.user_id = BOT_USER_ID
    session.send_notice = AsyncMock()
    session.send_reply = AsyncMock()
    session.mark_read = AsyncMock()
    session.set_typing = AsyncMock()
    session.join_room = AsyncMock()
    return session


@pytest.fixture
def mock_anthropic_client():
    """Create a mock Anthropic client answering with a plain translation."""
    client = Mock(spec=AnthropicClient)
    client.create_message = AsyncMock(return_value=make_response("שלום"))
    client.close = AsyncMock()
    return client


@pytest.fixture
def translator(mock_anthropic_client):
    """Create a translation invoker on the mock client."""
    return TranslationInvoker(mock_anthropic_client)


@pytest.fixture
def keyword_filter():
    return KeywordFilter()


@pytest.fixture
def message_processor(mock_chat_session, mock_keyword_store, translator, keyword_filter):
    """Create a message processor with mocked collaborators."""
    return MessageProcessor(
        chat_session=mock_chat_session,
        keyword_store=mock_keyword_store,
        translator=translator,
        bot_user_id=BOT_USER_ID,
        keyword_filter=keyword_filter
    )


@pytest.fixture
def sample_message_event():
    """Create a sample MessageEvent for testing."""
    return MessageEvent(
        room_id=ROOM_ID,
        sender=USER_ID,
        event_id="$event1",
        body="Hello everyone!"
    )
