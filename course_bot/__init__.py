"""
Course Gate Bot package.

Telegram bot that unlocks course content after a WooCommerce purchase is verified.

Structure:
├── handlers/          # Command, message, button handlers (SRP)
├── services/         # Verification flow, stores, connection lifecycle
├── schemas/          # Pydantic data models (DRY - single source of truth)
├── core.py          # Bot wiring and orchestration
└── __init__.py      # Package exports
"""

from .core import BotCore, get_bot_core, main
from .handlers import CommandHandler, MessageHandler, ButtonHandler

__version__ = "1.0.0"
__all__ = [
    "BotCore",
    "get_bot_core",
    "main",
    "CommandHandler",
    "MessageHandler",
    "ButtonHandler",
]
