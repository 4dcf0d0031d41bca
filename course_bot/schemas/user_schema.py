"""User-related Pydantic schemas."""

from datetime import datetime
from pydantic import BaseModel, Field
from typing import Optional


class UserSchema(BaseModel):
    """Verified (or pending) bot user, one per chat."""
    id: int
    chat_id: str = Field(..., description="Telegram chat ID")
    email: str
    is_verified: bool = Field(default=False)
    is_banned: bool = Field(default=False)
    order_id: Optional[str] = Field(default=None, description="WooCommerce order ID")
    created_at: datetime = Field(default_factory=datetime.now)

    class Config:
        from_attributes = True


class ActivitySchema(BaseModel):
    """Audit trail entry shown in the dashboard activity feed."""
    id: int
    kind: str = Field(..., pattern="^(USER|ADMIN|INFO|WARNING|ERROR)$")
    description: str
    user_id: Optional[int] = None
    admin_id: Optional[int] = None
    chat_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)

    class Config:
        from_attributes = True
