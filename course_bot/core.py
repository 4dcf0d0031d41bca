"""
Bot Core - основной файл инициализации и конфигурации бота.

Собирает хранилища, лимитеры, проверку заказов и сценарий диалога,
и передает их менеджеру подключения, который пересоздает Application
при смене токена.
"""

import asyncio
import logging
from typing import Optional

from telegram import BotCommand
from telegram.ext import (
    Application, CommandHandler, MessageHandler, CallbackQueryHandler, filters
)

import config
from audit_logger import AuditLogger, INFO as ACTIVITY_INFO
from db_service import DatabaseConnectionPool
from secrets_manager import install_log_filter
from security_middleware import RateLimiters, build_rate_limiters

from .handlers import CommandHandler as CmdHandler, MessageHandler as MsgHandler, ButtonHandler as BtnHandler
from .services import (
    BotConnectionManager,
    ConversationService,
    CredentialStore,
    MenuBuilder,
    NotificationService,
    RecordStore,
    SessionStore,
    SQLiteRecordStore,
    WooCommerceOrderOracle,
)
from .services.connection_manager import ApplicationFactory

logger = logging.getLogger("bot_core")

BOT_COMMANDS = [
    BotCommand("start", "Verify your purchase"),
    BotCommand("courses", "Browse your courses"),
    BotCommand("help", "Show help"),
]


class BotCore:
    """Central bot core for initialization and management."""

    def __init__(self, record_store: RecordStore = None,
                 rate_limiters: RateLimiters = None,
                 oracle: WooCommerceOrderOracle = None,
                 application_factory: ApplicationFactory = None,
                 start_polling: bool = True):
        """Initialize bot core."""
        self.record_store = record_store or SQLiteRecordStore(DatabaseConnectionPool(config.DATABASE_PATH))
        self.rate_limiters = rate_limiters or build_rate_limiters()
        self.audit = AuditLogger(self.record_store)
        self.credential_store = CredentialStore(self.record_store)
        self.session_store = SessionStore(
            ttl_seconds=config.SESSION_TTL_SECONDS,
            cleanup_interval=config.SESSION_CLEANUP_INTERVAL,
        )
        self.oracle = oracle or WooCommerceOrderOracle(self.credential_store)

        self.conversation = ConversationService(
            self.record_store,
            self.session_store,
            self.oracle,
            rate_limiter=self.rate_limiters.chat,
            audit=self.audit,
            menu_builder=MenuBuilder(),
        )

        self.cmd_handler = CmdHandler(self.conversation)
        self.msg_handler = MsgHandler(self.conversation)
        self.btn_handler = BtnHandler(self.conversation)

        self.connection_manager = BotConnectionManager(
            self.credential_store,
            application_factory=application_factory,
            handler_installer=self.setup_handlers,
            on_started=self.post_start,
            start_polling=start_polling,
        )
        self.notifications = NotificationService(self.record_store, self.connection_manager, self.audit)

    def setup_handlers(self, application: Application) -> None:
        """Register command, message, and callback handlers on a fresh application."""
        application.add_handler(CommandHandler("start", self.cmd_handler.handle_start))
        application.add_handler(CommandHandler("help", self.cmd_handler.handle_help))
        application.add_handler(CommandHandler("courses", self.cmd_handler.handle_courses))

        application.add_handler(MessageHandler(
            filters.TEXT & ~filters.COMMAND,
            self.msg_handler.handle_text_message
        ))

        application.add_handler(CallbackQueryHandler(self.btn_handler.handle_callback))

        logger.info("✅ Handlers registered")

    async def post_start(self, application: Application) -> None:
        """Publish the command list once the connection is live."""
        await application.bot.set_my_commands(BOT_COMMANDS)
        logger.info(f"✅ Bot commands configured ({len(BOT_COMMANDS)} commands)")

    async def startup(self) -> bool:
        """Seed default configurations, then connect; never raises for missing config."""
        logger.info("🚀 Bot starting...")
        self.credential_store.initialize_defaults()
        started = await self.connection_manager.start()
        if started:
            self.audit.record(ACTIVITY_INFO, "Bot started")
        return started

    async def shutdown(self) -> None:
        logger.info("🛑 Bot shutting down...")
        await self.connection_manager.shutdown()

    async def rebuild(self, admin_id: Optional[int] = None) -> bool:
        """Reconnect with the current token (after an admin changed it)."""
        rebuilt = await self.connection_manager.rebuild()
        outcome = "rebuilt" if rebuilt else f"rebuild failed: {self.connection_manager.last_error}"
        self.audit.admin_event(f"Bot connection {outcome}", admin_id=admin_id)
        return rebuilt

    def get_stats(self) -> dict:
        return {
            "bot_running": self.connection_manager.is_running,
            "last_error": self.connection_manager.last_error,
            "connection_generation": self.connection_manager.generation,
            **self.conversation.get_stats(),
            "rate_limits": {
                "chat": self.rate_limiters.chat.get_stats(),
                "api": self.rate_limiters.api.get_stats(),
            },
        }


# Global bot instance
_bot_core_instance: Optional[BotCore] = None


def get_bot_core() -> BotCore:
    """Get or create bot core instance."""
    global _bot_core_instance
    if _bot_core_instance is None:
        _bot_core_instance = BotCore()
    return _bot_core_instance


async def main() -> None:
    """Run the bot alone, without the admin API."""
    bot = get_bot_core()
    await bot.startup()
    try:
        await asyncio.Event().wait()
    except asyncio.CancelledError:
        logger.info("🛑 Shutdown signal received")
    finally:
        await bot.shutdown()


if __name__ == "__main__":
    config.setup_logging()
    install_log_filter()
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
