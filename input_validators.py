"""
Input Validators v1.0
Валидация email и номера заказа, которые пользователь вводит в чат.
"""

import re
import logging
from typing import Optional, Tuple
from pydantic import BaseModel, Field, field_validator, ValidationError

logger = logging.getLogger(__name__)

# Константы валидации
MAX_EMAIL_LENGTH = 254
MAX_ORDER_ID_LENGTH = 20

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
ORDER_ID_PATTERN = re.compile(r"[0-9]+")


def sanitize_string(value: str) -> str:
    """
    Escapes characters unsafe for storage and trims whitespace.

    Single quotes are doubled and backslashes escaped before trimming.
    """
    if not value:
        return ""
    return value.replace("'", "''").replace("\\", "\\\\").strip()


class EmailInput(BaseModel):
    """Валидированный email"""
    email: str = Field(..., min_length=3, max_length=MAX_EMAIL_LENGTH)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        if not EMAIL_PATTERN.match(v):
            raise ValueError("not a valid email address")
        return v


class OrderIdInput(BaseModel):
    """Валидированный номер заказа (только цифры)"""
    order_id: str = Field(..., min_length=1, max_length=MAX_ORDER_ID_LENGTH)

    @field_validator('order_id')
    @classmethod
    def validate_order_id(cls, v: str) -> str:
        if not ORDER_ID_PATTERN.fullmatch(v):
            raise ValueError("order id must be numeric")
        return v


def _first_error(e: ValidationError) -> str:
    first_error = e.errors()[0]
    return f"{first_error['loc'][0]}: {first_error['msg']}"


def validate_email(text: str) -> Tuple[Optional[str], Optional[str]]:
    """
    Sanitizes and validates an email.

    Returns:
        (sanitized_email, error_message); exactly one of them is None
    """
    sanitized = sanitize_string(text or "")
    try:
        return EmailInput(email=sanitized).email, None
    except ValidationError as e:
        error_msg = _first_error(e)
        logger.debug(f"⚠️ Email validation error: {error_msg}")
        return None, error_msg


def validate_order_id(text: str) -> Tuple[Optional[str], Optional[str]]:
    """
    Sanitizes and validates a WooCommerce order id.

    Returns:
        (sanitized_order_id, error_message); exactly one of them is None
    """
    sanitized = sanitize_string(text or "")
    try:
        return OrderIdInput(order_id=sanitized).order_id, None
    except ValidationError as e:
        error_msg = _first_error(e)
        logger.debug(f"⚠️ Order id validation error: {error_msg}")
        return None, error_msg
