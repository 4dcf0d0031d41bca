"""
🔒 Secrets Manager - keep bot tokens and store keys out of logs and API responses
v2.0 - Registered-value masking plus a logging filter
"""
import logging
from threading import RLock
from typing import Any, Dict, Set

logger = logging.getLogger("COURSE_BOT_SECRETS")

SECRET_KEY_MARKERS = ("password", "token", "secret", "key", "auth")

# =============================================================================
# SECRETS MANAGER
# =============================================================================


class SecretsManager:
    """Masks known secret values wherever they show up in text."""

    def __init__(self):
        self._secrets: Set[str] = set()
        self._lock = RLock()

    def register_secret(self, value: str) -> None:
        """
        Register a secret to be protected

        Args:
            value: The secret value; short values are ignored
        """
        if value and len(value) >= 8:
            with self._lock:
                self._secrets.add(value)

    @staticmethod
    def mask_value(value: str) -> str:
        """Keep the last four characters of long secrets, hide the rest."""
        if not value:
            return ""
        if len(value) <= 10:
            return "[REDACTED]"
        return "•" * 8 + value[-4:]

    def sanitize_string(self, text: str) -> str:
        """Replace every registered secret found in ``text``."""
        if not text:
            return text
        with self._lock:
            secrets = sorted(self._secrets, key=len, reverse=True)
        for secret in secrets:
            if secret in text:
                text = text.replace(secret, "[REDACTED]")
        return text

    def sanitize_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Remove secrets from a dictionary

        Keys that look like secrets are masked, string values are scrubbed.
        """
        sanitized = {}
        for key, value in data.items():
            if any(marker in key.lower() for marker in SECRET_KEY_MARKERS):
                sanitized[key] = self.mask_value(str(value)) if value else ""
            elif isinstance(value, str):
                sanitized[key] = self.sanitize_string(value)
            elif isinstance(value, dict):
                sanitized[key] = self.sanitize_dict(value)
            else:
                sanitized[key] = value
        return sanitized


class SecretsFilter(logging.Filter):
    """Logging filter that scrubs registered secrets from every record."""

    def __init__(self, manager: "SecretsManager"):
        super().__init__()
        self.manager = manager

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        sanitized = self.manager.sanitize_string(message)
        if sanitized != message:
            record.msg = sanitized
            record.args = ()
        return True


# =============================================================================
# SINGLETON INSTANCE
# =============================================================================

secrets_manager = SecretsManager()


def install_log_filter(manager: SecretsManager = secrets_manager) -> None:
    """Attach the secrets filter to every root handler."""
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, SecretsFilter) for f in handler.filters):
            handler.addFilter(SecretsFilter(manager))
