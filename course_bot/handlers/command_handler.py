"""
Command Handler - обработчик команд бота.

SRP: Обрабатывает только команды, логика в ConversationService.
"""

import logging
from telegram import Update
from telegram.ext import ContextTypes

from exceptions import handle_exception

from ..services import ConversationService
from .reply_sender import send_replies

logger = logging.getLogger("command_handler")


class CommandHandler:
    """Handler for /start, /help and /courses."""

    def __init__(self, conversation: ConversationService):
        self.conversation = conversation

    async def handle_start(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle /start command."""
        chat_id = update.effective_chat.id
        try:
            replies = await self.conversation.handle_start(chat_id)
            await send_replies(update.effective_message, replies)
            logger.info(f"✅ /start handled for chat {chat_id}")
        except Exception as e:
            logger.error(f"❌ Error in /start handler for chat {chat_id}: {e}", exc_info=True)
            await self._apologize(update, e, "/start")

    async def handle_help(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle /help command."""
        try:
            await send_replies(update.effective_message, await self.conversation.handle_help())
        except Exception as e:
            logger.error(f"❌ Error in /help handler: {e}")
            await self._apologize(update, e, "/help")

    async def handle_courses(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle /courses command."""
        chat_id = update.effective_chat.id
        try:
            replies = await self.conversation.handle_courses(chat_id)
            await send_replies(update.effective_message, replies)
        except Exception as e:
            logger.error(f"❌ Error in /courses handler for chat {chat_id}: {e}", exc_info=True)
            await self._apologize(update, e, "/courses")

    @staticmethod
    async def _apologize(update: Update, error: Exception, command: str) -> None:
        chat_id = update.effective_chat.id if update.effective_chat else None
        try:
            await update.effective_message.reply_text(handle_exception(error, user_id=chat_id, context=command))
        except Exception as e:
            logger.error(f"❌ Could not deliver error message: {e}")
