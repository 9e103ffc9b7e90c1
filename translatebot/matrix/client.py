"""
Matrix client implementation.

This module speaks the Matrix client-server API over aiohttp: the sync
long-poll loop with automatic reconnection, and the room operations the
bot needs (notices, threaded replies, read receipts, typing, joins).
"""

import asyncio
import itertools
import json
import logging
import random
import time
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set
from urllib.parse import quote

import aiohttp

logger = logging.getLogger(__name__)


CLIENT_API_PREFIX = "/_matrix/client/v3"

# Timeline and invites only; account data, presence and ephemeral events are not needed
SYNC_FILTER = {
    "account_data": {"types": []},
    "presence": {"types": []},
    "room": {
        "account_data": {"types": []},
        "ephemeral": {"types": []},
        "timeline": {"types": ["m.room.message"]},
    },
}

DEFAULT_REQUEST_TIMEOUT = 30
SYNC_TIMEOUT_GRACE = 30

EventHandler = Callable[[str, Dict[str, Any]], Awaitable[None]]


class MatrixError(Exception):
    """Base exception for Matrix-related errors."""
    pass


class MatrixTimeoutError(MatrixError):
    """Raised when a homeserver request times out."""
    pass


class MatrixAPIError(MatrixError):
    """Raised when the homeserver answers with an error status."""

    def __init__(self, status: int, errcode: str = "", error: str = ""):
        self.status = status
        self.errcode = errcode
        self.error = error
        super().__init__(f"Matrix error: {status} {errcode} - {error}")

    @property
    def is_auth_error(self) -> bool:
        return self.status == 401 or self.errcode == "M_UNKNOWN_TOKEN"


class ConnectionState(Enum):
    """Sync connection states."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


class SyncResilienceManager:
    """
    Tracks sync health and computes reconnection delays with exponential backoff.
    """

    def __init__(self, max_reconnect_attempts: int = 0, base_delay: float = 5.0, max_delay: float = 300.0):
        """
        Initialize sync resilience manager.

        Args:
            max_reconnect_attempts: Maximum consecutive failed syncs (0 = infinite)
            base_delay: Base delay for exponential backoff (seconds)
            max_delay: Maximum delay between reconnection attempts (seconds)
        """
        self.max_reconnect_attempts = max_reconnect_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay

        self.state = ConnectionState.DISCONNECTED
        self.reconnect_attempts = 0
        self.last_connection_time: Optional[datetime] = None
        self.last_disconnection_time: Optional[datetime] = None

        self.successful_syncs = 0
        self.failed_syncs = 0
        self.uptime_start: Optional[datetime] = None

    def calculate_reconnect_delay(self) -> float:
        """
        Calculate exponential backoff delay with jitter.

        Returns:
            float: Delay in seconds
        """
        if self.reconnect_attempts == 0:
            return 0

        # Exponential backoff: base_delay * 2^(attempts - 1)
        delay = self.base_delay * (2 ** (self.reconnect_attempts - 1))
        delay = min(delay, self.max_delay)

        # Jitter of +/-10%
        jitter = delay * 0.2 * (random.random() - 0.5)
        return max(0, delay + jitter)

    def should_attempt_reconnect(self) -> bool:
        """Check if another sync should be attempted after a failure."""
        if self.max_reconnect_attempts == 0:
            return True
        return self.reconnect_attempts < self.max_reconnect_attempts

    def record_sync_success(self):
        """Record a successful sync response."""
        if self.state != ConnectionState.CONNECTED:
            self.last_connection_time = datetime.now()
            self.uptime_start = datetime.now()
            if self.reconnect_attempts:
                logger.info(f"Matrix sync recovered after {self.reconnect_attempts} failed attempt(s)")
        self.state = ConnectionState.CONNECTED
        self.successful_syncs += 1
        self.reconnect_attempts = 0

    def record_sync_failure(self, error: Exception):
        """
        Record a failed sync.

        Args:
            error: The exception that caused the failure
        """
        self.state = ConnectionState.RECONNECTING
        self.last_disconnection_time = datetime.now()
        self.uptime_start = None
        self.failed_syncs += 1
        self.reconnect_attempts += 1

        logger.error(f"Matrix sync failed (attempt #{self.reconnect_attempts}): {error}")

    def get_connection_stats(self) -> Dict[str, Any]:
        """
        Get connection statistics.

        Returns:
            Dict containing connection stats
        """
        now = datetime.now()
        stats = {
            'state': self.state.value,
            'reconnect_attempts': self.reconnect_attempts,
            'successful_syncs': self.successful_syncs,
            'failed_syncs': self.failed_syncs,
        }

        if self.last_connection_time:
            stats['last_connection_time'] = self.last_connection_time.isoformat()

        if self.last_disconnection_time:
            stats['last_disconnection_time'] = self.last_disconnection_time.isoformat()

        if self.uptime_start:
            stats['uptime_seconds'] = (now - self.uptime_start).total_seconds()

        return stats


class MatrixClient:
    """
    Matrix client-server API client with a resilient sync loop.

    Every dispatched event runs in its own task, so a slow translation in
    one room never delays events from the next sync batch.
    """

    def __init__(self,
                 homeserver: str,
                 access_token: str,
                 user_id: str,
                 sync_timeout_ms: int = 30000,
                 resilience_manager: Optional[SyncResilienceManager] = None):
        """
        Initialize the client.

        Args:
            homeserver: Homeserver base URL (e.g., "https://matrix.org")
            access_token: Access token of the bot account
            user_id: Full user id of the bot account
            sync_timeout_ms: Long-poll timeout passed to /sync
            resilience_manager: Backoff policy for failed syncs
        """
        self.homeserver = homeserver.rstrip('/')
        self.access_token = access_token
        self.user_id = user_id
        self.sync_timeout_ms = sync_timeout_ms
        self.resilience_manager = resilience_manager or SyncResilienceManager()

        self.next_batch: Optional[str] = None
        self._session: Optional[aiohttp.ClientSession] = None
        self._txn_counter = itertools.count()
        self._message_handlers: List[EventHandler] = []
        self._invite_handlers: List[EventHandler] = []
        self._tasks: Set[asyncio.Task] = set()
        self._running = False

    def add_message_handler(self, handler: EventHandler) -> None:
        """Register an async callback for room message events."""
        self._message_handlers.append(handler)

    def add_invite_handler(self, handler: EventHandler) -> None:
        """Register an async callback for invites addressed to the bot."""
        self._invite_handlers.append(handler)

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}

    async def _request(self, method: str, path: str, *,
                       params: Optional[Dict[str, str]] = None,
                       json_body: Optional[Dict[str, Any]] = None,
                       timeout: float = DEFAULT_REQUEST_TIMEOUT) -> Dict[str, Any]:
        """
        Perform one client-server API request.

        Raises:
            MatrixTimeoutError: If the request times out
            MatrixAPIError: If the homeserver answers with status >= 400
            MatrixError: For transport errors
        """
        session = await self._get_session()
        url = f"{self.homeserver}{CLIENT_API_PREFIX}{path}"

        try:
            async with session.request(
                method, url,
                params=params,
                json=json_body,
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=timeout)
            ) as response:
                if response.status >= 400:
                    raise await self._api_error(response)

                try:
                    data = await response.json(content_type=None)
                except (json.JSONDecodeError, aiohttp.ContentTypeError, UnicodeDecodeError) as e:
                    raise MatrixError(f"Invalid response body from {path}: {e}")

                return data if isinstance(data, dict) else {}

        except asyncio.TimeoutError:
            raise MatrixTimeoutError(f"{method} {path} timed out after {timeout}s")
        except aiohttp.ClientError as e:
            raise MatrixError(f"Client error: {str(e)}")

    async def _api_error(self, response: aiohttp.ClientResponse) -> MatrixAPIError:
        error_text = await response.text()
        try:
            body = json.loads(error_text)
            return MatrixAPIError(response.status, body.get("errcode", ""), body.get("error", ""))
        except (json.JSONDecodeError, AttributeError):
            return MatrixAPIError(response.status, error=error_text[:200])

    @staticmethod
    def _quote(value: str) -> str:
        return quote(value, safe='')

    def _next_txn_id(self) -> str:
        return f"tb{int(time.time() * 1000)}.{next(self._txn_counter)}"

    async def whoami(self) -> str:
        """Return the user id the access token belongs to."""
        data = await self._request("GET", "/account/whoami")
        return data.get("user_id", "")

    async def send_message(self, room_id: str, content: Dict[str, Any]) -> str:
        """
        Send an ``m.room.message`` event.

        Returns:
            Event id assigned by the homeserver
        """
        path = f"/rooms/{self._quote(room_id)}/send/m.room.message/{self._quote(self._next_txn_id())}"
        data = await self._request("PUT", path, json_body=content)
        return data.get("event_id", "")

    async def send_notice(self, room_id: str, text: str) -> None:
        """Send a notice (bot-to-human informational message)."""
        await self.send_message(room_id, {"msgtype": "m.notice", "body": text})
        logger.debug("Notice sent", extra={"room_id": room_id, "notice_length": len(text)})

    async def send_reply(self, room_id: str, in_reply_to: str, text: str) -> None:
        """Send a text message threaded as a reply to ``in_reply_to``."""
        await self.send_message(room_id, {
            "msgtype": "m.text",
            "body": text,
            "m.relates_to": {"m.in_reply_to": {"event_id": in_reply_to}},
        })

    async def mark_read(self, room_id: str, event_id: str) -> None:
        """Send a read receipt for ``event_id``."""
        path = f"/rooms/{self._quote(room_id)}/receipt/m.read/{self._quote(event_id)}"
        await self._request("POST", path, json_body={})

    async def set_typing(self, room_id: str, typing: bool, timeout_ms: int = 0) -> None:
        """Start or stop the typing indicator."""
        body: Dict[str, Any] = {"typing": typing}
        if typing:
            body["timeout"] = timeout_ms
        path = f"/rooms/{self._quote(room_id)}/typing/{self._quote(self.user_id)}"
        await self._request("PUT", path, json_body=body)

    async def join_room(self, room_id: str) -> None:
        """Join a room the bot was invited to."""
        await self._request("POST", f"/rooms/{self._quote(room_id)}/join", json_body={})
        logger.info(f"Joined room: {room_id}")

    async def sync(self, since: Optional[str] = None) -> Dict[str, Any]:
        """
        Perform one /sync long-poll.

        Args:
            since: Batch token from the previous sync, None for the initial sync

        Returns:
            Raw sync response
        """
        params = {
            "timeout": str(self.sync_timeout_ms),
            "filter": json.dumps(SYNC_FILTER),
        }
        if since:
            params["since"] = since
        return await self._request(
            "GET", "/sync",
            params=params,
            timeout=self.sync_timeout_ms / 1000 + SYNC_TIMEOUT_GRACE
        )

    def process_sync_response(self, response: Dict[str, Any], dispatch_timeline: bool = True) -> int:
        """
        Dispatch invites and room messages from a sync response.

        Args:
            response: Raw sync response
            dispatch_timeline: False to skip timeline events (initial backlog)

        Returns:
            int: Number of dispatched events
        """
        rooms = response.get("rooms") or {}
        dispatched = 0

        for room_id, room in (rooms.get("invite") or {}).items():
            for event in (room.get("invite_state") or {}).get("events", []):
                if (event.get("type") == "m.room.member"
                        and event.get("state_key") == self.user_id
                        and (event.get("content") or {}).get("membership") == "invite"):
                    logger.info(f"Received invite for room: {room_id}")
                    for handler in self._invite_handlers:
                        self._dispatch(handler, room_id, event)
                        dispatched += 1

        if not dispatch_timeline:
            return dispatched

        for room_id, room in (rooms.get("join") or {}).items():
            for event in (room.get("timeline") or {}).get("events", []):
                if event.get("type") != "m.room.message":
                    continue
                for handler in self._message_handlers:
                    self._dispatch(handler, room_id, event)
                    dispatched += 1

        return dispatched

    def _dispatch(self, handler: EventHandler, room_id: str, event: Dict[str, Any]) -> None:
        task = asyncio.create_task(self._run_handler(handler, room_id, event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_handler(self, handler: EventHandler, room_id: str, event: Dict[str, Any]) -> None:
        try:
            await handler(room_id, event)
        except Exception as e:
            logger.exception(f"Unhandled error in event handler: {e}", extra={
                "room_id": room_id,
                "event_id": event.get("event_id")
            })

    async def sync_forever(self) -> None:
        """
        Sync until stopped.

        The timeline of the very first sync is skipped so that history is
        not translated on startup. Failed syncs are retried with exponential
        backoff; an invalid access token ends the loop.

        Raises:
            MatrixAPIError: If the access token is rejected
            MatrixError: If the reconnection attempts are exhausted
        """
        self._running = True
        first_sync = self.next_batch is None
        self.resilience_manager.state = ConnectionState.CONNECTING
        logger.info("Starting Matrix sync loop", extra={"user_id": self.user_id})

        while self._running:
            try:
                response = await self.sync(self.next_batch)
            except MatrixError as e:
                self.resilience_manager.record_sync_failure(e)
                if isinstance(e, MatrixAPIError) and e.is_auth_error:
                    self.resilience_manager.state = ConnectionState.FAILED
                    raise
                if not self.resilience_manager.should_attempt_reconnect():
                    logger.error("Maximum reconnection attempts reached, giving up")
                    self.resilience_manager.state = ConnectionState.FAILED
                    raise

                delay = self.resilience_manager.calculate_reconnect_delay()
                logger.info(f"Waiting {delay:.2f}s before next sync attempt")
                await asyncio.sleep(delay)
                continue

            self.resilience_manager.record_sync_success()
            dispatched = self.process_sync_response(response, dispatch_timeline=not first_sync)
            if first_sync:
                logger.info("Initial sync complete, backlog skipped")
            elif dispatched:
                logger.debug(f"Dispatched {dispatched} event(s)")
            first_sync = False
            self.next_batch = response.get("next_batch", self.next_batch)

        self.resilience_manager.state = ConnectionState.DISCONNECTED

    def stop(self) -> None:
        """Ask the sync loop to exit after the current long-poll."""
        self._running = False

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def wait_for_pending(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight event handlers to finish."""
        if self._tasks:
            await asyncio.wait(set(self._tasks), timeout=timeout)

    async def close(self) -> None:
        """Close HTTP session."""
        self.stop()
        if self._session and not self._session.closed:
            await self._session.close()
