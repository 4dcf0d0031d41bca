"""
Connection Manager - единственное подключение бота к Telegram.

Owns the python-telegram-bot ``Application``: lazy construction, hot
rebuild when the token changes, and teardown. At most one application is
polling at any time; the old one is stopped before the new one starts.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from telegram.ext import Application

from exceptions import ConfigurationMissingError

from .credential_store import CredentialStore

logger = logging.getLogger("connection_manager")

ApplicationFactory = Callable[[str, str], Application]
HandlerInstaller = Callable[[Application], None]
StartedHook = Callable[[Application], Awaitable[None]]

ALLOWED_UPDATES = ["message", "callback_query"]


def default_application_factory(token: str, api_url: str) -> Application:
    """PTB application talking to ``api_url`` (the public Bot API or a self-hosted server)."""
    return (
        Application.builder()
        .token(token)
        .base_url(f"{api_url}/bot")
        .base_file_url(f"{api_url}/file/bot")
        .build()
    )


class BotConnectionManager:
    """Lock-guarded owner of the bot connection."""

    def __init__(self, credential_store: CredentialStore,
                 application_factory: ApplicationFactory = None,
                 handler_installer: Optional[HandlerInstaller] = None,
                 on_started: Optional[StartedHook] = None,
                 start_polling: bool = True):
        """
        Initialize connection manager.

        Args:
            credential_store: Source of the bot token
            application_factory: Builds an Application from a token and Bot API url
            handler_installer: Registers the bot handlers on a fresh Application
            on_started: Awaited after the Application starts (e.g. set bot commands)
            start_polling: Start the updater; disabled for webhook-less tests
        """
        self.credential_store = credential_store
        self.application_factory = application_factory or default_application_factory
        self.handler_installer = handler_installer
        self.on_started = on_started
        self.start_polling = start_polling

        self._application: Optional[Application] = None
        self._lock = asyncio.Lock()
        self._generation = 0
        self.last_error: Optional[str] = None

    @property
    def application(self) -> Optional[Application]:
        """Current application, without building one."""
        return self._application

    @property
    def is_running(self) -> bool:
        return self._application is not None and bool(getattr(self._application, "running", False))

    @property
    def generation(self) -> int:
        """Number of completed rebuilds."""
        return self._generation

    async def get_connection(self) -> Application:
        """
        Return the live application, building it on first use.

        Raises:
            ConfigurationMissingError: no bot token is configured anywhere
        """
        application = self._application
        if application is not None:
            return application

        async with self._lock:
            if self._application is None:
                await self._build_locked()
            return self._application

    async def start(self) -> bool:
        """Startup entry point; missing configuration is reported, never raised."""
        try:
            await self.get_connection()
            return True
        except ConfigurationMissingError as e:
            self.last_error = e.message
            logger.error(f"❌ Bot not started: {e.message}. Set the token in the admin settings.")
        except Exception as e:
            self.last_error = str(e)
            logger.error(f"❌ Bot failed to start: {e}")
        return False

    async def rebuild(self) -> bool:
        """
        Replace the connection using the current credentials.

        Concurrent callers are serialized; a caller that waited while another
        rebuild finished returns that result instead of building again.

        Returns:
            True if a live connection exists afterwards
        """
        generation = self._generation
        async with self._lock:
            if self._generation != generation:
                logger.info("🔁 Rebuild already completed by a concurrent caller")
                return self._application is not None

            try:
                await self._quiesce_locked()
                await self._build_locked()
                logger.info("✅ Bot connection rebuilt")
                return True
            except ConfigurationMissingError as e:
                self.last_error = e.message
                logger.error(f"❌ Rebuild aborted: {e.message}")
                return False
            except Exception as e:
                self.last_error = str(e)
                logger.error(f"❌ Rebuild failed: {e}")
                return False
            finally:
                self._generation += 1

    async def shutdown(self) -> None:
        """Stop receiving and drop the connection; safe to call repeatedly."""
        async with self._lock:
            await self._quiesce_locked()

    async def send_message(self, chat_id, text: str, **kwargs):
        application = await self.get_connection()
        return await application.bot.send_message(chat_id=chat_id, text=text, **kwargs)

    async def _build_locked(self) -> None:
        token = self.credential_store.get_bot_token()
        if not token:
            raise ConfigurationMissingError("Telegram bot token is not configured")

        application = self.application_factory(token, self.credential_store.get_bot_api_url())
        if self.handler_installer is not None:
            self.handler_installer(application)

        try:
            await application.initialize()
            await application.start()
            if self.start_polling and application.updater is not None:
                await application.updater.start_polling(allowed_updates=ALLOWED_UPDATES)
        except Exception:
            await self._stop_application(application)
            raise

        self._application = application
        self.last_error = None
        logger.info("🎯 Bot connection started")

        if self.on_started is not None:
            try:
                await self.on_started(application)
            except Exception as e:
                logger.warning(f"⚠️ Post-start hook failed: {e}")

    async def _quiesce_locked(self) -> None:
        application, self._application = self._application, None
        if application is not None:
            await self._stop_application(application)

    async def _stop_application(self, application: Application) -> None:
        """Best effort stop; each step is skipped if already stopped."""
        try:
            updater = application.updater
            if updater is not None and updater.running:
                await updater.stop()
            if application.running:
                await application.stop()
            await application.shutdown()
            logger.info("🛑 Bot connection stopped")
        except Exception as e:
            logger.warning(f"⚠️ Failed to stop old bot connection cleanly: {e}")
