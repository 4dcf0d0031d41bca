"""
Reply Sender - отправка BotReply в Telegram.

Converts engine replies into ``reply_text`` calls with inline keyboards and
splits bodies that exceed Telegram's message limit.
"""

import logging
from typing import List, Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Message
from telegram.constants import ParseMode

from ..schemas import BotReply, Menu

logger = logging.getLogger("reply_sender")

# Telegram limit is 4096; leave headroom for HTML entities
SAFE_MESSAGE_LENGTH = 3500


def build_markup(menu: Optional[Menu]) -> Optional[InlineKeyboardMarkup]:
    if menu is None or not menu.rows:
        return None
    return InlineKeyboardMarkup([
        [InlineKeyboardButton(button.label, callback_data=button.selector) for button in row]
        for row in menu.rows
    ])


def _safe_cut(text: str, limit: int) -> int:
    """Cut position <= ``limit`` that does not fall inside an HTML entity or tag."""
    cut = limit
    amp = text.rfind("&", 0, cut)
    if amp != -1 and ";" not in text[amp:cut]:
        cut = amp
    lt = text.rfind("<", 0, cut)
    if lt != -1 and ">" not in text[lt:cut]:
        cut = lt
    return cut if cut > 0 else limit


def _hard_split(text: str, max_length: int) -> List[str]:
    chunks = []
    while len(text) > max_length:
        cut = _safe_cut(text, max_length)
        if text[:cut].strip():
            chunks.append(text[:cut].strip())
        text = text[cut:]
    if text.strip():
        chunks.append(text.strip())
    return chunks


def split_long_message(message: str, max_length: int = SAFE_MESSAGE_LENGTH) -> List[str]:
    """
    Разбивает длинное сообщение на части для отправки в Telegram.

    Splits on paragraph boundaries first, then on sentences, and only cuts
    inside a sentence when a single sentence is longer than ``max_length``.
    ``message`` is already HTML; a cut never lands inside an entity or tag.
    """
    if len(message) <= max_length:
        return [message]

    parts: List[str] = []
    current = ""

    def flush():
        nonlocal current
        if current.strip():
            parts.append(current.strip())
        current = ""

    for paragraph in message.split("\n"):
        if len(current) + len(paragraph) + 1 <= max_length:
            current = f"{current}\n{paragraph}" if current else paragraph
            continue

        flush()
        if len(paragraph) <= max_length:
            current = paragraph
            continue

        for sentence in paragraph.split(". "):
            if len(sentence) > max_length:
                flush()
                parts.extend(_hard_split(sentence, max_length))
            elif len(current) + len(sentence) + 2 > max_length:
                flush()
                current = sentence + ". "
            else:
                current += sentence + ". "

    flush()
    return parts


async def send_replies(message: Message, replies: List[BotReply]) -> None:
    """Send every reply as a new message in ``message``'s chat; the menu goes on the last chunk."""
    for reply in replies:
        chunks = split_long_message(reply.text)
        for position, chunk in enumerate(chunks):
            markup = build_markup(reply.menu) if position == len(chunks) - 1 else None
            await message.reply_text(chunk, parse_mode=ParseMode.HTML, reply_markup=markup)
