"""
Event handlers for Matrix sync events.

This module routes invites to room joins, and room messages to the admin
command handler or the translation pipeline.
"""

import logging
from typing import Any, Dict, Optional

from ..config.commands import AdminCommandHandler
from ..database.models import MessageEvent
from ..processing.coordinator import MessageProcessor, PipelineOutcome
from .client import MatrixClient

logger = logging.getLogger(__name__)


class MembershipEventHandler:
    """Joins rooms the bot is invited to."""

    def __init__(self, client: MatrixClient):
        """
        Initialize MembershipEventHandler.

        Args:
            client: Matrix client used to join rooms
        """
        self.client = client

    async def handle_invite(self, room_id: str, event: Dict[str, Any]) -> None:
        """
        Handle an ``m.room.member`` invite event.

        Args:
            room_id: Room the bot was invited to
            event: Raw stripped state event
        """
        content = event.get('content') or {}
        if content.get('membership') != 'invite' or event.get('state_key') != self.client.user_id:
            return

        try:
            await self.client.join_room(room_id)
        except Exception as e:
            logger.error(f"Failed to join room {room_id}: {e}", extra={
                "room_id": room_id,
                "inviter": event.get('sender')
            })


class RoomMessageHandler:
    """
    Handler for room message events.

    Admin commands are answered with a notice and never translated;
    everything else goes through the message processor.
    """

    def __init__(self,
                 client: MatrixClient,
                 message_processor: MessageProcessor,
                 command_handler: AdminCommandHandler):
        """
        Initialize RoomMessageHandler.

        Args:
            client: Matrix client used to answer commands
            message_processor: Translation pipeline
            command_handler: Admin keyword command handler
        """
        self.client = client
        self.message_processor = message_processor
        self.command_handler = command_handler

    async def handle_message(self, room_id: str, event: Dict[str, Any]) -> Optional[PipelineOutcome]:
        """
        Handle an ``m.room.message`` timeline event.

        Args:
            room_id: Room the event was sent in
            event: Raw timeline event

        Returns:
            Pipeline outcome, or None for commands and ignored messages
        """
        message_event = MessageEvent.from_matrix_event(room_id, event)

        if message_event.sender == self.client.user_id:
            return None

        logger.debug(
            "Processing message event",
            extra={
                "room_id": room_id,
                "event_id": message_event.event_id,
                "msgtype": message_event.msgtype,
                "content_length": len(message_event.body)
            }
        )

        if message_event.is_text and message_event.body:
            reply = await self.command_handler.process_command(message_event.sender, message_event.body)
            if reply is not None:
                try:
                    await self.client.send_notice(room_id, reply)
                except Exception as e:
                    logger.error(f"Failed to answer admin command: {e}", extra={"room_id": room_id})
                return None

        return await self.message_processor.process_incoming_message(message_event)
