"""
Handlers package initialization.

Exports all handler classes for easy importing.
"""

from .command_handler import CommandHandler
from .message_handler import MessageHandler
from .button_handler import ButtonHandler
from .reply_sender import build_markup, send_replies, split_long_message

__all__ = [
    "CommandHandler",
    "MessageHandler",
    "ButtonHandler",
    "build_markup",
    "send_replies",
    "split_long_message",
]
