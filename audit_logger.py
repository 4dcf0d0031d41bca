"""
📝 Audit Logger - activity trail for the admin dashboard
v2.0 - Fire-and-forget activity records written through the record store
"""
import logging
from typing import Optional

logger = logging.getLogger("COURSE_BOT_AUDIT")

# =============================================================================
# ACTIVITY KINDS
# =============================================================================

USER = "USER"
ADMIN = "ADMIN"
INFO = "INFO"
WARNING = "WARNING"
ERROR = "ERROR"

_LOG_LEVELS = {
    USER: logging.INFO,
    ADMIN: logging.INFO,
    INFO: logging.INFO,
    WARNING: logging.WARNING,
    ERROR: logging.ERROR,
}

# =============================================================================
# AUDIT LOGGER
# =============================================================================


class AuditLogger:
    """
    Appends activity entries to the record store.

    Recording never raises: a failed write is reported on the Python logger
    and the operation that triggered it carries on.
    """

    def __init__(self, record_store):
        self._store = record_store

    def record(self, kind: str, description: str, user_id: Optional[int] = None,
               admin_id: Optional[int] = None, chat_id: Optional[str] = None) -> bool:
        """
        Record an activity.

        Args:
            kind: USER, ADMIN, INFO, WARNING or ERROR
            description: Human readable description for the activity feed
            user_id: Bot user the event concerns
            admin_id: Dashboard admin who triggered the event
            chat_id: Telegram chat the event came from

        Returns:
            True if the entry was stored
        """
        logger.log(_LOG_LEVELS.get(kind, logging.INFO),
                   f"[{kind}] {description} (user={user_id}, admin={admin_id}, chat={chat_id})")
        try:
            self._store.create_activity(kind, description, user_id=user_id,
                                        admin_id=admin_id, chat_id=chat_id)
            return True
        except Exception as e:
            logger.error(f"❌ Failed to record activity '{description}': {e}")
            return False

    def user_event(self, description: str, user_id: Optional[int] = None,
                   chat_id: Optional[str] = None) -> bool:
        return self.record(USER, description, user_id=user_id, chat_id=chat_id)

    def admin_event(self, description: str, admin_id: Optional[int] = None) -> bool:
        return self.record(ADMIN, description, admin_id=admin_id)
