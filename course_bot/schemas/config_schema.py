"""API configuration schemas (credentials managed from the admin surface)."""

from datetime import datetime
from pydantic import BaseModel, Field
from typing import Dict, Optional


class ApiConfigurationSchema(BaseModel):
    """Named external API configuration ("telegram" or "woocommerce")."""
    name: str = Field(..., pattern="^(telegram|woocommerce)$")
    url: str = ""
    credentials: Dict[str, str] = Field(default_factory=dict)
    is_active: bool = Field(default=True)
    updated_by: Optional[int] = None
    updated_at: datetime = Field(default_factory=datetime.now)

    class Config:
        from_attributes = True


class TelegramCredentials(BaseModel):
    bot_token: str = Field(..., min_length=1)


class WooCommerceCredentials(BaseModel):
    consumer_key: str = Field(..., min_length=1)
    consumer_secret: str = Field(..., min_length=1)
