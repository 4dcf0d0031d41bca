"""
Button Handler - обработчик нажатий на кнопки.

SRP: Обрабатывает callback queries, логика в ConversationService.
"""

import logging
from telegram import Update
from telegram.constants import ParseMode
from telegram.error import BadRequest
from telegram.ext import ContextTypes

from exceptions import handle_exception

from ..services import ConversationService
from .reply_sender import build_markup, send_replies, split_long_message

logger = logging.getLogger("button_handler")


class ButtonHandler:
    """Handler for inline keyboard buttons (course and lesson menus)."""

    def __init__(self, conversation: ConversationService):
        self.conversation = conversation

    async def handle_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Route a button press; menus replace the message they were pressed on."""
        query = update.callback_query
        chat_id = update.effective_chat.id

        try:
            replies = await self.conversation.handle_selection(chat_id, query.data or "")
        except Exception as e:
            logger.error(f"❌ Error handling callback {query.data} from chat {chat_id}: {e}",
                         exc_info=True)
            await query.answer(handle_exception(e, user_id=chat_id, context="callback"), show_alert=True)
            return

        alerts = [reply for reply in replies if reply.alert]
        if alerts:
            await query.answer(alerts[0].text, show_alert=True)
            return

        await query.answer()  # Acknowledge button press
        try:
            if len(replies) == 1 and len(split_long_message(replies[0].text)) == 1:
                await self._edit_in_place(query, replies[0])
            else:
                await send_replies(query.message, replies)
        except Exception as e:
            logger.error(f"❌ Error sending menu to chat {chat_id}: {e}")
            await self._apologize(query, chat_id, e)

    @staticmethod
    async def _edit_in_place(query, reply) -> None:
        try:
            await query.edit_message_text(
                reply.text,
                parse_mode=ParseMode.HTML,
                reply_markup=build_markup(reply.menu),
            )
        except BadRequest as e:
            if "not modified" in str(e).lower():
                return
            logger.debug(f"Cannot edit message, sending a new one: {e}")
            await send_replies(query.message, [reply])

    @staticmethod
    async def _apologize(query, chat_id, error: Exception) -> None:
        """Apology as a chat message; the callback query is already answered."""
        try:
            await query.message.reply_text(handle_exception(error, user_id=chat_id, context="callback reply"))
        except Exception as e:
            logger.error(f"❌ Could not deliver error message to chat {chat_id}: {e}")
