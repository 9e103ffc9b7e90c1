"""
Main entry point for the Matrix translation bot.

This module handles application startup, configuration loading,
component initialization, and graceful shutdown procedures.
"""

import asyncio
import logging
import signal
import sys
from typing import List, Optional

from translatebot.anthropic.client import AnthropicClient
from translatebot.config.commands import AdminCommandHandler
from translatebot.config.settings import GlobalConfig, load_global_config, validate_config
from translatebot.database import DatabaseManager, KeywordStore, create_database_manager
from translatebot.logging.logger import StructuredLogger, get_logger
from translatebot.matrix.client import MatrixClient
from translatebot.matrix.handlers import MembershipEventHandler, RoomMessageHandler
from translatebot.processing.coordinator import MessageProcessor
from translatebot.processing.filters import KeywordFilter
from translatebot.processing.parser import ResponseParser
from translatebot.processing.translator import TranslationInvoker


PENDING_TASKS_TIMEOUT = 30


class TranslateBotApplication:
    """Main application class for the Matrix translation bot."""

    def __init__(self):
        self.config: Optional[GlobalConfig] = None
        self.logger: Optional[StructuredLogger] = None  # Initialized after config loading
        self._shutdown_event = asyncio.Event()

        # Core components
        self.db_manager: Optional[DatabaseManager] = None
        self.keyword_store: Optional[KeywordStore] = None
        self.keyword_filter: Optional[KeywordFilter] = None
        self.anthropic_client: Optional[AnthropicClient] = None
        self.matrix_client: Optional[MatrixClient] = None
        self.message_processor: Optional[MessageProcessor] = None
        self._sync_task: Optional[asyncio.Task] = None
        self._sync_error: Optional[BaseException] = None

        # Component initialization tracking
        self._initialized_components: List[str] = []

    async def startup(self) -> None:
        """Initialize the application in dependency order."""
        try:
            # Step 1: Load and validate global configuration
            await self._initialize_configuration()

            # Step 2: Set up structured logging
            await self._initialize_logging()

            # Step 3: Initialize keyword store
            await self._initialize_database()

            # Step 4: Initialize translation provider client
            await self._initialize_anthropic_client()

            # Step 5: Initialize Matrix client
            await self._initialize_matrix_client()

            # Step 6: Initialize message processing and event routing
            await self._initialize_message_processor()

            # Step 7: Start syncing
            await self._start_sync()

            self.logger.info(
                "Translation bot started successfully",
                user_id=self.config.matrix_user_id,
                database_type=self.config.database_type,
                model=self.config.anthropic_model,
                signature_stripping=self.config.signature_stripping_enabled
            )

        except Exception as e:
            if self.logger:
                self.logger.error(f"Failed to start translation bot: {e}")
            else:
                logging.error(f"Failed to start translation bot: {e}")

            await self._cleanup_on_failure()
            raise

    async def _initialize_configuration(self) -> None:
        """Load and validate global configuration."""
        self.config = load_global_config()
        validate_config(self.config)
        self._initialized_components.append("configuration")

    async def _initialize_logging(self) -> None:
        """Configure the package logger; module loggers inherit its handlers."""
        self.logger = get_logger(
            "translatebot",
            level=self.config.log_level,
            format_type=self.config.log_format,
            log_file=self.config.log_file
        )

        self.logger.info(
            "Logging system initialized",
            log_level=self.config.log_level,
            log_format=self.config.log_format
        )
        self._initialized_components.append("logging")

    async def _initialize_database(self) -> None:
        """Initialize the keyword store."""
        self.logger.info("Initializing database connection...")

        self.db_manager = create_database_manager(self.config.database_config())
        if not await self.db_manager.initialize():
            raise RuntimeError("Failed to initialize database")

        self.keyword_store = KeywordStore(self.db_manager)

        keywords = await self.keyword_store.list_keywords()
        self.logger.info(
            "Database initialized successfully",
            database_type=self.config.database_type,
            filter_keywords=len(keywords)
        )
        self._initialized_components.append("database")

    async def _initialize_anthropic_client(self) -> None:
        """Initialize the translation provider client."""
        self.anthropic_client = AnthropicClient(
            api_key=self.config.anthropic_api_key,
            anthropic_version=self.config.anthropic_version,
            base_url=self.config.anthropic_url,
            timeout=self.config.anthropic_timeout
        )

        self.logger.info(
            "Anthropic client initialized",
            anthropic_url=self.config.anthropic_url,
            model=self.config.anthropic_model
        )
        self._initialized_components.append("anthropic_client")

    async def _initialize_matrix_client(self) -> None:
        """Initialize the Matrix client and verify the access token."""
        self.logger.info("Initializing Matrix client...")

        self.matrix_client = MatrixClient(
            homeserver=self.config.matrix_server,
            access_token=self.config.matrix_access_token,
            user_id=self.config.matrix_user_id,
            sync_timeout_ms=self.config.sync_timeout_ms
        )
        self._initialized_components.append("matrix_client")

        token_user_id = await self.matrix_client.whoami()
        if token_user_id != self.config.matrix_user_id:
            raise RuntimeError(
                f"Access token belongs to {token_user_id!r}, expected {self.config.matrix_user_id!r}"
            )

        self.logger.info("Matrix client authenticated", user_id=token_user_id)

    async def _initialize_message_processor(self) -> None:
        """Wire the pipeline and register the event handlers."""
        self.logger.info("Initializing message processor...")

        self.keyword_filter = KeywordFilter()

        translator = TranslationInvoker(
            client=self.anthropic_client,
            model=self.config.anthropic_model,
            max_tokens=self.config.anthropic_max_tokens
        )

        self.message_processor = MessageProcessor(
            chat_session=self.matrix_client,
            keyword_store=self.keyword_store,
            translator=translator,
            bot_user_id=self.config.matrix_user_id,
            keyword_filter=self.keyword_filter,
            response_parser=ResponseParser(),
            strip_signatures=self.config.signature_stripping_enabled,
            typing_timeout_ms=self.config.typing_timeout_ms
        )

        command_handler = AdminCommandHandler(
            keyword_store=self.keyword_store,
            admin_user_id=self.config.admin_user_id,
            keyword_filter=self.keyword_filter
        )

        message_handler = RoomMessageHandler(self.matrix_client, self.message_processor, command_handler)
        membership_handler = MembershipEventHandler(self.matrix_client)

        self.matrix_client.add_message_handler(message_handler.handle_message)
        self.matrix_client.add_invite_handler(membership_handler.handle_invite)

        self.logger.info("Message processor initialized")
        self._initialized_components.append("message_processor")

    async def _start_sync(self) -> None:
        """Start the sync loop in the background."""
        self.logger.info("Starting Matrix sync...")

        self._sync_task = asyncio.create_task(self.matrix_client.sync_forever())
        self._sync_task.add_done_callback(self._on_sync_done)

        self._initialized_components.append("sync")

    def _on_sync_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.logger.error(f"Matrix sync stopped: {error}")
            self._sync_error = error
        self._shutdown_event.set()

    async def shutdown(self) -> None:
        """Gracefully shut down: stop syncing, finish in-flight messages, close sessions."""
        if self.logger:
            self.logger.info("Shutting down translation bot...")

        # Step 1: Stop the sync loop
        await self._stop_sync()

        # Step 2: Let in-flight pipeline runs finish
        await self._drain_pending_messages()

        # Step 3: Close HTTP sessions
        await self._shutdown_matrix_client()
        await self._shutdown_anthropic_client()

        # Step 4: Close database connections
        await self._shutdown_database()

        if self.logger:
            self.logger.info("Translation bot shutdown complete")

    async def _stop_sync(self) -> None:
        try:
            if self.matrix_client:
                self.matrix_client.stop()
            if self._sync_task and not self._sync_task.done():
                self._sync_task.cancel()
                try:
                    await self._sync_task
                except asyncio.CancelledError:
                    pass
        except Exception as e:
            if self.logger:
                self.logger.error(f"Error stopping sync loop: {e}")

    async def _drain_pending_messages(self) -> None:
        try:
            if self.matrix_client and self.matrix_client.pending_tasks:
                if self.logger:
                    self.logger.info(
                        "Waiting for in-flight messages",
                        pending=self.matrix_client.pending_tasks
                    )
                await self.matrix_client.wait_for_pending(timeout=PENDING_TASKS_TIMEOUT)
        except Exception as e:
            if self.logger:
                self.logger.error(f"Error waiting for in-flight messages: {e}")

    async def _shutdown_matrix_client(self) -> None:
        try:
            if self.matrix_client:
                await self.matrix_client.close()
                if self.logger:
                    self.logger.info("Matrix client closed")
        except Exception as e:
            if self.logger:
                self.logger.error(f"Error closing Matrix client: {e}")

    async def _shutdown_anthropic_client(self) -> None:
        try:
            if self.anthropic_client:
                await self.anthropic_client.close()
                if self.logger:
                    self.logger.info("Anthropic client closed")
        except Exception as e:
            if self.logger:
                self.logger.error(f"Error closing Anthropic client: {e}")

    async def _shutdown_database(self) -> None:
        try:
            if self.db_manager:
                await self.db_manager.close()
                if self.logger:
                    self.logger.info("Database connections closed")
        except Exception as e:
            if self.logger:
                self.logger.error(f"Error closing database connections: {e}")

    async def _cleanup_on_failure(self) -> None:
        """Cleanup resources on startup failure, in reverse order of initialization."""
        for component in reversed(self._initialized_components):
            try:
                if component == "sync":
                    await self._stop_sync()
                elif component == "matrix_client" and self.matrix_client:
                    await self.matrix_client.close()
                elif component == "anthropic_client" and self.anthropic_client:
                    await self.anthropic_client.close()
                elif component == "database" and self.db_manager:
                    await self.db_manager.close()
            except Exception as cleanup_error:
                if self.logger:
                    self.logger.error(f"Error cleaning up {component}: {cleanup_error}")

    async def run(self) -> None:
        """
        Run until a shutdown signal arrives or the sync loop ends.

        Raises:
            MatrixError: After shutdown, if the sync loop stopped on an error
                (rejected access token or exhausted reconnection attempts)
        """
        await self.startup()

        await self._shutdown_event.wait()

        await self.shutdown()

        if self._sync_error is not None:
            raise self._sync_error

    def request_shutdown(self, signum: int) -> None:
        """Handle shutdown signals."""
        if self.logger:
            self.logger.info(f"Received signal {signum}, initiating shutdown...")
        else:
            logging.info(f"Received signal {signum}, initiating shutdown...")
        self._shutdown_event.set()


async def main() -> None:
    """Main entry point with startup validation."""
    # Basic logging until the configured logger takes over
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )

    app = TranslateBotApplication()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, app.request_shutdown, sig)

    try:
        await app.run()
    except Exception as e:
        logging.error(f"Application error: {e}")
        sys.exit(1)


def run() -> None:
    """Console script entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logging.info("Received keyboard interrupt, shutting down...")


if __name__ == "__main__":
    run()
