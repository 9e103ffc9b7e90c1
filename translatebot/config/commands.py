"""
Admin command handling for the translation bot.

This module handles parsing and processing of the !add, !remove and !list
commands that manage the filter keywords.
"""

import logging
from typing import Optional

from ..processing.filters import KeywordFilter
from ..processing.ports import KeywordStorePort

logger = logging.getLogger(__name__)


ADD_PREFIX = "!add "
REMOVE_PREFIX = "!remove "
LIST_COMMAND = "!list"


class AdminCommandHandler:
    """Processes keyword management commands from the admin user."""

    def __init__(self, keyword_store: KeywordStorePort, admin_user_id: str,
                 keyword_filter: Optional[KeywordFilter] = None):
        """
        Initialize AdminCommandHandler.

        Args:
            keyword_store: Keyword storage
            admin_user_id: The only identity allowed to issue commands
            keyword_filter: Filter whose compile cache is kept in sync with removals
        """
        self.keyword_store = keyword_store
        self.admin_user_id = admin_user_id
        self.keyword_filter = keyword_filter or KeywordFilter()

    def is_admin(self, sender: str) -> bool:
        """Check whether the sender may manage filter keywords."""
        return sender == self.admin_user_id

    async def process_command(self, sender: str, text: str) -> Optional[str]:
        """
        Process a potential admin command.

        Args:
            sender: Message sender identity
            text: Message body

        Returns:
            str: Reply to send as a notice, or None if the message is not an
            admin command and should be processed normally
        """
        if not self.is_admin(sender):
            return None

        if text.startswith(ADD_PREFIX):
            return await self._add_keyword(text[len(ADD_PREFIX):])
        if text.startswith(REMOVE_PREFIX):
            return await self._remove_keyword(text[len(REMOVE_PREFIX):])
        if text.strip() == LIST_COMMAND:
            return await self._list_keywords()

        return None

    async def _add_keyword(self, keyword: str) -> str:
        if not keyword:
            return "Usage: !add <pattern>"

        try:
            success = await self.keyword_store.upsert_keyword(keyword)
        except Exception as e:
            logger.error(f"Error adding filter keyword: {e}", extra={"keyword": keyword})
            success = False

        if not success:
            return f"Failed to add filter keyword: {keyword}"

        logger.info("Filter keyword added", extra={"keyword": keyword})
        reply = f"Added filter keyword: {keyword}"

        problem = self.keyword_filter.validate(keyword)
        if problem:
            reply += f" (warning: invalid pattern, it will never match: {problem})"
        return reply

    async def _remove_keyword(self, keyword: str) -> str:
        if not keyword:
            return "Usage: !remove <pattern>"

        try:
            success = await self.keyword_store.delete_keyword(keyword)
        except Exception as e:
            logger.error(f"Error removing filter keyword: {e}", extra={"keyword": keyword})
            success = False

        if not success:
            return f"Failed to remove filter keyword: {keyword}"

        self.keyword_filter.forget(keyword)
        logger.info("Filter keyword removed", extra={"keyword": keyword})
        return f"Removed filter keyword: {keyword}"

    async def _list_keywords(self) -> str:
        try:
            keywords = await self.keyword_store.list_keywords()
        except Exception as e:
            logger.error(f"Error listing filter keywords: {e}")
            return "Failed to list filter keywords"

        if not keywords:
            return "No filter keywords configured"
        return "Filter keywords:\n" + "\n".join(keywords)
