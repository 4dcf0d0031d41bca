"""
Message Handler - обработчик текстовых сообщений.

SRP: Передает текст в сценарий проверки, отвечает пользователю.
"""

import logging
from telegram import Update
from telegram.ext import ContextTypes

from exceptions import handle_exception

from ..schemas import BotReply
from ..services import ConversationService
from .reply_sender import send_replies

logger = logging.getLogger("message_handler")


class MessageHandler:
    """Handler for plain text messages (email and order id input)."""

    def __init__(self, conversation: ConversationService):
        self.conversation = conversation

    async def handle_text_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """
        Handle incoming text.

        The progress notice is sent before the order lookup so the user is not
        left waiting in silence.
        """
        message = update.effective_message
        if message is None or not message.text:
            logger.warning("❌ Empty message received")
            return

        chat_id = update.effective_chat.id

        async def notify(reply: BotReply) -> None:
            await send_replies(message, [reply])

        try:
            replies = await self.conversation.handle_text(chat_id, message.text, on_progress=notify)
            await send_replies(message, replies)
        except Exception as e:
            logger.error(f"❌ Error handling message from chat {chat_id}: {e}", exc_info=True)
            try:
                await message.reply_text(handle_exception(e, user_id=chat_id, context="text message"))
            except Exception as send_error:
                logger.error(f"❌ Could not deliver error message: {send_error}")
