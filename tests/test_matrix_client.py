"""
Unit tests for MatrixClient and SyncResilienceManager.

Tests room operations, sync response dispatch, and the reconnecting
sync loop.
"""

import asyncio
import json

import aiohttp
import pytest
from unittest.mock import AsyncMock, Mock, patch

from translatebot.matrix.client import (
    ConnectionState,
    MatrixAPIError,
    MatrixClient,
    MatrixError,
    MatrixTimeoutError,
    SyncResilienceManager,
)
from tests.conftest import BOT_USER_ID, ROOM_ID, make_matrix_event


def mock_http_response(status=200, json_body=None, text_body=None):
    response = Mock()
    response.status = status
    response.json = AsyncMock(return_value=json_body if json_body is not None else {})
    response.text = AsyncMock(return_value=text_body if text_body is not None else json.dumps(json_body))
    return response


def sync_response(next_batch, joined=None, invited=None):
    rooms = {}
    if joined:
        rooms["join"] = {
            room_id: {"timeline": {"events": events}} for room_id, events in joined.items()
        }
    if invited:
        rooms["invite"] = {
            room_id: {"invite_state": {"events": events}} for room_id, events in invited.items()
        }
    return {"next_batch": next_batch, "rooms": rooms}


def invite_event(state_key=BOT_USER_ID, membership="invite"):
    return {
        "type": "m.room.member",
        "state_key": state_key,
        "sender": "@alice:example.org",
        "content": {"membership": membership}
    }


@pytest.fixture
async def client():
    client = MatrixClient("https://matrix.example.org/", "syt_token", BOT_USER_ID, sync_timeout_ms=1000)
    yield client
    await client.close()


class TestSyncResilienceManager:
    """Test cases for the reconnection policy."""

    def test_no_delay_before_first_failure(self):
        manager = SyncResilienceManager()
        assert manager.calculate_reconnect_delay() == 0

    def test_exponential_backoff(self):
        manager = SyncResilienceManager(base_delay=5.0, max_delay=300.0)

        with patch('translatebot.matrix.client.random.random', return_value=0.5):
            delays = []
            for _ in range(4):
                manager.record_sync_failure(MatrixTimeoutError("timeout"))
                delays.append(manager.calculate_reconnect_delay())

        assert delays == [5.0, 10.0, 20.0, 40.0]

    def test_backoff_is_capped_with_jitter(self):
        manager = SyncResilienceManager(base_delay=5.0, max_delay=30.0)
        manager.reconnect_attempts = 10

        delay = manager.calculate_reconnect_delay()
        assert 27.0 <= delay <= 33.0

    def test_should_attempt_reconnect(self):
        unlimited = SyncResilienceManager(max_reconnect_attempts=0)
        unlimited.reconnect_attempts = 1000
        assert unlimited.should_attempt_reconnect()

        limited = SyncResilienceManager(max_reconnect_attempts=2)
        limited.reconnect_attempts = 1
        assert limited.should_attempt_reconnect()
        limited.reconnect_attempts = 2
        assert not limited.should_attempt_reconnect()

    def test_success_resets_attempts(self):
        manager = SyncResilienceManager()
        manager.record_sync_failure(MatrixError("boom"))
        assert manager.state == ConnectionState.RECONNECTING

        manager.record_sync_success()

        assert manager.state == ConnectionState.CONNECTED
        assert manager.reconnect_attempts == 0
        stats = manager.get_connection_stats()
        assert stats["successful_syncs"] == 1
        assert stats["failed_syncs"] == 1
        assert "uptime_seconds" in stats


class TestRoomOperations:
    """Test cases for client-server API calls."""

    def test_initialization(self):
        client = MatrixClient("https://matrix.example.org/", "syt_token", BOT_USER_ID)
        assert client.homeserver == "https://matrix.example.org"
        assert client._headers() == {"Authorization": "Bearer syt_token"}

    @pytest.mark.asyncio
    async def test_whoami(self, client):
        with patch('aiohttp.ClientSession.request') as mock_request:
            mock_request.return_value.__aenter__.return_value = mock_http_response(200, {"user_id": BOT_USER_ID})

            assert await client.whoami() == BOT_USER_ID

        args, kwargs = mock_request.call_args
        assert args == ("GET", "https://matrix.example.org/_matrix/client/v3/account/whoami")
        assert kwargs["headers"]["Authorization"] == "Bearer syt_token"

    @pytest.mark.asyncio
    async def test_send_notice(self, client):
        with patch('aiohttp.ClientSession.request') as mock_request:
            mock_request.return_value.__aenter__.return_value = mock_http_response(200, {"event_id": "$sent"})

            await client.send_notice(ROOM_ID, "שגיאה במהלך התרגום")

        args, kwargs = mock_request.call_args
        assert args[0] == "PUT"
        # Room ids are percent-encoded into the path
        assert "/rooms/%21room%3Aexample.org/send/m.room.message/" in args[1]
        assert kwargs["json"] == {"msgtype": "m.notice", "body": "שגיאה במהלך התרגום"}

    @pytest.mark.asyncio
    async def test_send_reply_threads_to_event(self, client):
        with patch('aiohttp.ClientSession.request') as mock_request:
            mock_request.return_value.__aenter__.return_value = mock_http_response(200, {"event_id": "$sent"})

            await client.send_reply(ROOM_ID, "$event1", "שלום")

        assert mock_request.call_args.kwargs["json"] == {
            "msgtype": "m.text",
            "body": "שלום",
            "m.relates_to": {"m.in_reply_to": {"event_id": "$event1"}},
        }

    @pytest.mark.asyncio
    async def test_transaction_ids_are_unique(self, client):
        with patch('aiohttp.ClientSession.request') as mock_request:
            mock_request.return_value.__aenter__.return_value = mock_http_response(200, {"event_id": "$sent"})

            await client.send_notice(ROOM_ID, "one")
            await client.send_notice(ROOM_ID, "two")

        urls = [c.args[1] for c in mock_request.call_args_list]
        assert urls[0] != urls[1]

    @pytest.mark.asyncio
    async def test_mark_read(self, client):
        with patch('aiohttp.ClientSession.request') as mock_request:
            mock_request.return_value.__aenter__.return_value = mock_http_response(200, {})

            await client.mark_read(ROOM_ID, "$event1")

        args, kwargs = mock_request.call_args
        assert args[0] == "POST"
        assert args[1].endswith("/rooms/%21room%3Aexample.org/receipt/m.read/%24event1")
        assert kwargs["json"] == {}

    @pytest.mark.asyncio
    async def test_set_typing(self, client):
        with patch('aiohttp.ClientSession.request') as mock_request:
            mock_request.return_value.__aenter__.return_value = mock_http_response(200, {})

            await client.set_typing(ROOM_ID, True, 5000)
            await client.set_typing(ROOM_ID, False)

        on_call, off_call = mock_request.call_args_list
        assert on_call.args[1].endswith("/typing/%40translator%3Aexample.org")
        assert on_call.kwargs["json"] == {"typing": True, "timeout": 5000}
        assert off_call.kwargs["json"] == {"typing": False}

    @pytest.mark.asyncio
    async def test_api_error(self, client):
        """Test error statuses are decoded into MatrixAPIError."""
        body = {"errcode": "M_FORBIDDEN", "error": "You are not in this room"}

        with patch('aiohttp.ClientSession.request') as mock_request:
            mock_request.return_value.__aenter__.return_value = mock_http_response(403, body)

            with pytest.raises(MatrixAPIError) as exc_info:
                await client.join_room(ROOM_ID)

        assert exc_info.value.status == 403
        assert exc_info.value.errcode == "M_FORBIDDEN"
        assert not exc_info.value.is_auth_error

    @pytest.mark.asyncio
    async def test_api_error_non_json_body(self, client):
        with patch('aiohttp.ClientSession.request') as mock_request:
            mock_request.return_value.__aenter__.return_value = mock_http_response(502, text_body="Bad gateway")

            with pytest.raises(MatrixAPIError) as exc_info:
                await client.whoami()

        assert exc_info.value.status == 502
        assert exc_info.value.error == "Bad gateway"

    def test_auth_error_detection(self):
        assert MatrixAPIError(401).is_auth_error
        assert MatrixAPIError(403, "M_UNKNOWN_TOKEN").is_auth_error

    @pytest.mark.asyncio
    async def test_timeout(self, client):
        with patch('aiohttp.ClientSession.request') as mock_request:
            mock_request.side_effect = asyncio.TimeoutError()

            with pytest.raises(MatrixTimeoutError):
                await client.whoami()

    @pytest.mark.asyncio
    async def test_client_error(self, client):
        with patch('aiohttp.ClientSession.request') as mock_request:
            mock_request.side_effect = aiohttp.ClientError("Connection refused")

            with pytest.raises(MatrixError, match="Client error"):
                await client.whoami()

    @pytest.mark.asyncio
    async def test_sync_params(self, client):
        with patch('aiohttp.ClientSession.request') as mock_request:
            mock_request.return_value.__aenter__.return_value = mock_http_response(200, {"next_batch": "s2"})

            response = await client.sync("s1")

        assert response == {"next_batch": "s2"}
        params = mock_request.call_args.kwargs["params"]
        assert params["since"] == "s1"
        assert params["timeout"] == "1000"
        assert json.loads(params["filter"])["room"]["timeline"]["types"] == ["m.room.message"]

    @pytest.mark.asyncio
    async def test_close_session(self):
        client = MatrixClient("https://matrix.example.org", "syt_token", BOT_USER_ID)

        await client._get_session()
        assert client._session is not None

        await client.close()
        assert client._session.closed


class TestSyncDispatch:
    """Test cases for sync response dispatch."""

    @pytest.mark.asyncio
    async def test_timeline_messages_are_dispatched(self, client):
        handler = AsyncMock()
        client.add_message_handler(handler)
        event = make_matrix_event("Hello")
        other = {"type": "m.room.member", "event_id": "$join", "content": {"membership": "join"}}

        dispatched = client.process_sync_response(sync_response("s1", joined={ROOM_ID: [event, other]}))
        await client.wait_for_pending()

        assert dispatched == 1
        handler.assert_awaited_once_with(ROOM_ID, event)

    @pytest.mark.asyncio
    async def test_backlog_is_not_dispatched(self, client):
        handler = AsyncMock()
        client.add_message_handler(handler)

        dispatched = client.process_sync_response(
            sync_response("s1", joined={ROOM_ID: [make_matrix_event("old")]}),
            dispatch_timeline=False
        )

        assert dispatched == 0
        handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_invites_for_the_bot_are_dispatched(self, client):
        handler = AsyncMock()
        client.add_invite_handler(handler)
        response = sync_response("s1", invited={
            "!new:example.org": [invite_event()],
            "!other:example.org": [invite_event(state_key="@bob:example.org")],
        })

        dispatched = client.process_sync_response(response, dispatch_timeline=False)
        await client.wait_for_pending()

        assert dispatched == 1
        handler.assert_awaited_once_with("!new:example.org", invite_event())

    @pytest.mark.asyncio
    async def test_handler_errors_are_contained(self, client):
        failing = AsyncMock(side_effect=RuntimeError("boom"))
        working = AsyncMock()
        client.add_message_handler(failing)
        client.add_message_handler(working)

        client.process_sync_response(sync_response("s1", joined={ROOM_ID: [make_matrix_event()]}))
        await client.wait_for_pending()

        working.assert_awaited_once()
        assert client.pending_tasks == 0


class TestSyncForever:
    """Test cases for the sync loop."""

    @staticmethod
    def scripted_sync(client, results):
        """Replace client.sync with a script; the loop stops after the last item."""
        results = list(results)
        calls = []

        async def fake_sync(since=None):
            calls.append(since)
            result = results.pop(0)
            if not results:
                client.stop()
            if isinstance(result, Exception):
                raise result
            return result

        client.sync = fake_sync
        return calls

    @pytest.mark.asyncio
    async def test_first_sync_backlog_is_skipped(self, client):
        handler = AsyncMock()
        client.add_message_handler(handler)
        new_event = make_matrix_event("new", event_id="$new")
        calls = self.scripted_sync(client, [
            sync_response("s1", joined={ROOM_ID: [make_matrix_event("old", event_id="$old")]}),
            sync_response("s2", joined={ROOM_ID: [new_event]}),
        ])

        await client.sync_forever()
        await client.wait_for_pending()

        assert calls == [None, "s1"]
        assert client.next_batch == "s2"
        handler.assert_awaited_once_with(ROOM_ID, new_event)
        assert client.resilience_manager.state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_failed_sync_is_retried_with_backoff(self, client):
        calls = self.scripted_sync(client, [
            sync_response("s1"),
            MatrixTimeoutError("timeout"),
            MatrixError("Client error: reset"),
            sync_response("s2"),
        ])

        with patch('translatebot.matrix.client.asyncio.sleep', new_callable=AsyncMock) as mock_sleep, \
                patch('translatebot.matrix.client.random.random', return_value=0.5):
            await client.sync_forever()

        assert calls == [None, "s1", "s1", "s1"]
        assert [c.args[0] for c in mock_sleep.await_args_list] == [5.0, 10.0]
        assert client.resilience_manager.reconnect_attempts == 0

    @pytest.mark.asyncio
    async def test_auth_error_ends_loop(self, client):
        self.scripted_sync(client, [
            MatrixAPIError(401, "M_UNKNOWN_TOKEN", "Invalid access token"),
            sync_response("s1"),
        ])

        with pytest.raises(MatrixAPIError):
            await client.sync_forever()

        assert client.resilience_manager.state == ConnectionState.FAILED

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        client = MatrixClient(
            "https://matrix.example.org", "syt_token", BOT_USER_ID,
            resilience_manager=SyncResilienceManager(max_reconnect_attempts=2)
        )
        client.sync = AsyncMock(side_effect=MatrixTimeoutError("timeout"))

        with patch('translatebot.matrix.client.asyncio.sleep', new_callable=AsyncMock) as mock_sleep:
            with pytest.raises(MatrixTimeoutError):
                await client.sync_forever()

        assert client.sync.await_count == 2
        assert mock_sleep.await_count == 1
        assert client.resilience_manager.state == ConnectionState.FAILED
