"""Main application: wires sync, identity refresh and reminder loops together."""

import asyncio
import logging
import signal
from typing import Any, Optional

from .config.settings import ReminderBotSettings
from .messaging.matrix import MatrixClient
from .reminders.dispatcher import ReminderDispatcher
from .reminders.identity import IdentityCache
from .reminders.queue import ReminderQueue
from .reminders.scheduler import ReminderScheduler
from .storage.database import DatabaseManager
from .storage.exceptions import PersistenceError
from .sync.coordinator import SyncCoordinator
from .sync.exceptions import SyncError
from .utils.helpers import safe_async_call

logger = logging.getLogger(__name__)


class ReminderBot:
    """Main application coordinating all components."""

    def __init__(
        self,
        settings: ReminderBotSettings,
        database: Optional[DatabaseManager] = None,
        messaging_client: Optional[Any] = None,
        coordinator: Optional[SyncCoordinator] = None,
    ) -> None:
        self.settings = settings
        self.running = False
        self.shutdown_event = asyncio.Event()

        self.database = database or DatabaseManager(settings.database_file)
        self.messaging_client = messaging_client or MatrixClient(settings)

        self.queue = ReminderQueue()
        self.identity_cache = IdentityCache()
        self.dispatcher = ReminderDispatcher(
            self.messaging_client, self.database, self.identity_cache
        )
        self.scheduler = ReminderScheduler(settings, self.queue, self.dispatcher, self.database)
        self.coordinator = coordinator or SyncCoordinator(
            settings, self.database, on_synced=self.scheduler.recompute
        )

        logger.info("ReminderBot initialized")

    async def initialize(self) -> bool:
        """Prepare storage and load the initial identity mappings and queue.

        Returns:
            True if initialization successful, False otherwise
        """
        if not await self.database.initialize():
            logger.error("Database initialization failed")
            return False

        try:
            await self.refresh_identity_mappings()
            await self.scheduler.recompute()
        except PersistenceError:
            logger.exception("Failed to load initial state")
            return False

        logger.info("ReminderBot initialization completed successfully")
        return True

    async def refresh_identity_mappings(self) -> int:
        """Reload the email to Matrix id mappings from storage.

        Returns:
            Number of mappings loaded
        """
        mappings = await self.database.get_user_mappings()
        self.identity_cache.replace(mappings)
        logger.debug(f"Loaded {len(mappings)} identity mappings")
        return len(mappings)

    async def trigger_calendar_sync(self, calendar_id: int) -> bool:
        """Synchronize one calendar now, outside the periodic loop.

        Returns:
            True if the calendar was synced, False if it is unknown or failed
        """
        try:
            await self.coordinator.sync_calendar_by_id(calendar_id)
        except SyncError as e:
            logger.warning(f"Triggered sync of calendar {calendar_id} failed: {e.message}")
            return False
        return True

    async def trigger_reminder_recompute(self) -> int:
        """Rebuild the reminder queue now, e.g. after reminders were edited.

        Returns:
            Number of queued firings
        """
        return await self.scheduler.recompute()

    async def run_sync_loop(self) -> None:
        """Sync every calendar on the configured interval."""
        logger.info(f"Starting calendar sync loop (interval: {self.settings.sync_interval}s)")

        while not self.shutdown_event.is_set():
            await self.coordinator.sync_all_calendars()

            try:
                await asyncio.wait_for(
                    self.shutdown_event.wait(), timeout=self.settings.sync_interval
                )
                break
            except asyncio.TimeoutError:
                continue

        logger.info("Calendar sync loop stopped")

    async def run_mappings_loop(self) -> None:
        """Refresh identity mappings on the configured interval."""
        logger.info(
            f"Starting identity refresh loop "
            f"(interval: {self.settings.mappings_refresh_interval}s)"
        )

        while not self.shutdown_event.is_set():
            try:
                await asyncio.wait_for(
                    self.shutdown_event.wait(), timeout=self.settings.mappings_refresh_interval
                )
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self.refresh_identity_mappings()
            except PersistenceError as e:
                logger.error(f"Identity mapping refresh failed: {e.message}")

        logger.info("Identity refresh loop stopped")

    async def sync_once(self) -> bool:
        """Run a single sync pass and send whatever is due."""
        results = await self.coordinator.sync_all_calendars()
        await self.scheduler.dispatch_due()
        return all(results.values())

    async def start(self) -> bool:
        """Start the application and run until stopped."""
        try:
            logger.info("Starting ReminderBot...")

            if not await self.initialize():
                logger.error("Initialization failed, exiting")
                return False

            self.running = True

            await asyncio.gather(
                self.run_sync_loop(),
                self.run_mappings_loop(),
                self.scheduler.run(self.shutdown_event),
            )
            return True

        except Exception:
            logger.exception("Error running ReminderBot")
            return False
        finally:
            await self.cleanup()

    async def stop(self) -> None:
        """Stop all loops."""
        logger.info("Stopping ReminderBot...")
        self.running = False
        self.shutdown_event.set()
        self.scheduler.notify()

    async def cleanup(self) -> None:
        """Close network clients."""
        logger.info("Cleaning up resources...")
        await safe_async_call(self.coordinator.close, log_errors=False)
        await safe_async_call(self.messaging_client._close_client, log_errors=False)
        logger.info("Cleanup completed")


def setup_signal_handlers(app: ReminderBot) -> None:
    """Set up signal handlers for graceful shutdown."""

    background_tasks = set()

    def signal_handler(signum: int, frame: Any) -> None:  # noqa: ARG001
        logger.info(f"Received signal {signum}")
        task = asyncio.create_task(app.stop())
        background_tasks.add(task)
        task.add_done_callback(background_tasks.discard)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


async def main(settings: ReminderBotSettings, sync_once: bool = False) -> int:
    """Run the bot with the given settings."""
    try:
        if not settings.matrix.access_token:
            logger.error("Matrix access token is required")
            logger.info(
                "Set matrix.access_token in config.yaml or "
                "REMINDERBOT_MATRIX__ACCESS_TOKEN in the environment"
            )
            return 1

        app = ReminderBot(settings)

        if sync_once:
            try:
                if not await app.initialize():
                    return 1
                return 0 if await app.sync_once() else 1
            finally:
                await app.cleanup()

        setup_signal_handlers(app)
        success = await app.start()
        return 0 if success else 1

    except Exception:
        logger.exception("Fatal error")
        return 1
