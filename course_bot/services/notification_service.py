"""
Notification Service - рассылка сообщений пользователям из админки.
"""

import logging
from typing import Dict, Iterable, Optional

from telegram.constants import ParseMode
from telegram.error import TelegramError

from audit_logger import AuditLogger

from .connection_manager import BotConnectionManager
from .record_store import RecordStore

logger = logging.getLogger("notification_service")


class NotificationService:
    """Sends admin messages to verified, non-banned users."""

    def __init__(self, record_store: RecordStore, connection_manager: BotConnectionManager,
                 audit: AuditLogger = None):
        self.record_store = record_store
        self.connection_manager = connection_manager
        self.audit = audit or AuditLogger(record_store)

    async def send(self, user_ids: Iterable[int], message: str,
                   admin_id: Optional[int] = None) -> Dict[str, int]:
        """
        Send ``message`` to each user in ``user_ids``.

        Unknown, unverified and banned users are skipped. A failed delivery
        to one user does not stop the rest.

        Raises:
            ConfigurationMissingError: the bot has no token yet

        Returns:
            {"sent": n, "skipped": n, "failed": n}
        """
        requested = list(dict.fromkeys(user_ids))
        users = {user.id: user for user in self.record_store.get_users(requested)}
        stats = {"sent": 0, "skipped": 0, "failed": 0}

        for user_id in requested:
            user = users.get(user_id)
            if user is None or user.is_banned or not user.is_verified:
                stats["skipped"] += 1
                continue

            try:
                await self.connection_manager.send_message(user.chat_id, message,
                                                           parse_mode=ParseMode.HTML)
                stats["sent"] += 1
            except TelegramError as e:
                stats["failed"] += 1
                logger.warning(f"⚠️ Failed to notify user {user_id}: {e}")

        logger.info(f"📣 Notification sent by admin {admin_id}: {stats}")
        self.audit.admin_event(
            f"Sent notification to {stats['sent']} users "
            f"({stats['skipped']} skipped, {stats['failed']} failed)",
            admin_id=admin_id,
        )
        return stats
