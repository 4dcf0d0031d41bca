"""
Custom exception classes for Course Gate Bot.
Provides standardized error handling across the application.
"""

import logging

import config

logger = logging.getLogger("exceptions")


def support_hint() -> str:
    """Who users are told to contact; set with SUPPORT_CONTACT."""
    return f"contact {config.SUPPORT_CONTACT}"


class CourseBotException(Exception):
    """Base exception for all Course Gate Bot errors."""

    def __init__(self, message: str, error_code: str = None, context: dict = None):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = context or {}
        super().__init__(self.message)

    def to_user_message(self) -> str:
        """Return a user-friendly error message."""
        return f"❌ {self.message}"


# ============================================================================
# VALIDATION ERRORS
# ============================================================================

class ValidationError(CourseBotException):
    """Base exception for input validation errors."""
    pass


class InvalidInputError(ValidationError):
    """Raised when an email or order id has the wrong shape; ``message`` is the re-prompt."""
    pass


class DuplicateEmailError(ValidationError):
    """Raised when an email is already bound to another chat."""

    def to_user_message(self) -> str:
        return (
            "❌ This email is already registered. "
            f"Please use a different email or {support_hint()}."
        )


class RateLimitError(ValidationError):
    """Raised when rate limit is exceeded."""

    def to_user_message(self) -> str:
        return "⏳ Too many requests. Please slow down and try again in a minute."


# ============================================================================
# VERIFICATION ERRORS
# ============================================================================

class VerificationError(CourseBotException):
    """Base exception for order verification errors."""
    pass


class VerificationFailedError(VerificationError):
    """
    Raised when the order is unknown, unpaid, or belongs to another email.

    ``message`` tells the user what to fix; ``context["reason"]`` keeps the
    oracle reason for logs.
    """

    def to_user_message(self) -> str:
        return f"❌ {self.message}" if self.message else (
            f"❌ We could not verify your purchase. Please check your order ID or {support_hint()}."
        )


class TransientOracleError(VerificationError):
    """Raised when the commerce system could not be reached."""

    def to_user_message(self) -> str:
        return (
            "⚠️ We could not reach the store to verify your order right now. "
            "Please send your order ID again in a moment."
        )


# ============================================================================
# DATABASE ERRORS
# ============================================================================

class PersistenceError(CourseBotException):
    """Raised when a record store write fails."""

    def to_user_message(self) -> str:
        return (
            "❌ Your payment was confirmed but we could not save your access. "
            f"Please {support_hint()}."
        )


class NotFoundError(CourseBotException):
    """Raised by the admin surface when a referenced record does not exist."""

    def to_user_message(self) -> str:
        return "❌ Not found."


# ============================================================================
# CONFIGURATION ERRORS
# ============================================================================

class ConfigurationMissingError(CourseBotException):
    """Raised when required credentials are not configured."""

    def to_user_message(self) -> str:
        return "❌ The bot is not configured yet. Please try again later."


# ============================================================================
# UTILITY FUNCTIONS
# ============================================================================

GENERIC_ERROR_MESSAGE = f"❌ An error occurred. Please try again later or {support_hint()}."


def handle_exception(exc: Exception, user_id: int = None, context: str = None) -> str:
    """
    Convert any exception to user-friendly message.

    Args:
        exc: The exception to handle
        user_id: ID of the user (for logging)
        context: Additional context (for logging)

    Returns:
        User-friendly error message
    """
    if isinstance(exc, CourseBotException):
        logger.info(f"ℹ️ {exc.error_code} for user {user_id} in {context or 'unknown context'}: {exc.message}")
        return exc.to_user_message()

    logger.error(f"❌ Unexpected {type(exc).__name__} for user {user_id} in {context or 'unknown context'}: {exc}")
    return GENERIC_ERROR_MESSAGE
