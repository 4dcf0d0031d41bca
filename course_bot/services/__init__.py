"""
Services package initialization.

Exports all service classes for easy importing.
"""

from .record_store import RecordStore, InMemoryRecordStore, SQLiteRecordStore
from .credential_store import CredentialStore, TELEGRAM, WOOCOMMERCE
from .session_store import SessionStore
from .order_oracle import WooCommerceOrderOracle
from .menu_builder import MenuBuilder
from .connection_manager import BotConnectionManager
from .conversation_service import ConversationService
from .notification_service import NotificationService

__all__ = [
    "RecordStore",
    "InMemoryRecordStore",
    "SQLiteRecordStore",
    "CredentialStore",
    "TELEGRAM",
    "WOOCOMMERCE",
    "SessionStore",
    "WooCommerceOrderOracle",
    "MenuBuilder",
    "BotConnectionManager",
    "ConversationService",
    "NotificationService",
]
