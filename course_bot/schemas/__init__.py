"""
Bot Pydantic Schemas for type safety and validation.

This module defines all data models used throughout the bot application.
Following DRY principle: single source of truth for data structures.
"""

from .user_schema import UserSchema, ActivitySchema
from .course_schema import CourseSchema, CourseSubcontentSchema
from .session_schema import ConversationStep, ConversationSession
from .verification_schema import VerificationReason, VerificationResult
from .menu_schema import MenuButton, Menu, BotReply
from .config_schema import ApiConfigurationSchema, TelegramCredentials, WooCommerceCredentials

__all__ = [
    "UserSchema",
    "ActivitySchema",
    "CourseSchema",
    "CourseSubcontentSchema",
    "ConversationStep",
    "ConversationSession",
    "VerificationReason",
    "VerificationResult",
    "MenuButton",
    "Menu",
    "BotReply",
    "ApiConfigurationSchema",
    "TelegramCredentials",
    "WooCommerceCredentials",
]
