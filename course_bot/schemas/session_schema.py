"""Conversation session schemas."""

import time
from enum import Enum
from pydantic import BaseModel, Field
from typing import Optional


class ConversationStep(str, Enum):
    """Steps of the verification dialogue; no session means idle."""
    AWAITING_EMAIL = "awaiting_email"
    AWAITING_ORDER_ID = "awaiting_order_id"


class ConversationSession(BaseModel):
    """Per-chat progress through the verification dialogue."""
    chat_id: str
    step: ConversationStep
    pending_email: Optional[str] = None
    touched_at: float = Field(default_factory=time.monotonic)
