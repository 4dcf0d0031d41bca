"""Order verification result schemas."""

from enum import Enum
from pydantic import BaseModel
from typing import Optional


class VerificationReason(str, Enum):
    VERIFIED = "verified"
    NOT_FOUND = "not_found"
    EMAIL_MISMATCH = "email_mismatch"
    UNPAID = "unpaid"
    TRANSIENT_ERROR = "transient_error"


class VerificationResult(BaseModel):
    """Outcome of a single order lookup."""
    paid: bool
    reason: VerificationReason
    order_email: Optional[str] = None
    order_status: Optional[str] = None
    detail: Optional[str] = None

    @classmethod
    def verified(cls, order_email: str, order_status: str) -> "VerificationResult":
        return cls(paid=True, reason=VerificationReason.VERIFIED,
                   order_email=order_email, order_status=order_status)

    @classmethod
    def rejected(cls, reason: VerificationReason, **kwargs) -> "VerificationResult":
        return cls(paid=False, reason=reason, **kwargs)

    @property
    def is_transient(self) -> bool:
        return self.reason == VerificationReason.TRANSIENT_ERROR
