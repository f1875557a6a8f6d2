"""Billing domain schemas - Pydantic models for validation"""

from typing import Optional

from pydantic import BaseModel, field_validator


class CheckoutRequest(BaseModel):
    """Schema for creating a checkout session"""

    userId: str
    email: str
    businessName: Optional[str] = None
    role: Optional[str] = None

    @field_validator("userId", "email")
    @classmethod
    def validate_required(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("User ID and email are required")
        return v.strip()


class CheckoutResponse(BaseModel):
    sessionId: str
    url: Optional[str] = None


class CancelRequest(BaseModel):
    """Schema for canceling a subscription at period end"""

    subscriptionId: str
    userId: str


class CancelResponse(BaseModel):
    success: bool
    message: str
    cancelAt: Optional[int] = None


class SubscriptionEmailRequest(BaseModel):
    """Schema for the admin sync / recover flows"""

    email: str

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        if not v or "@" not in v:
            raise ValueError("A valid email is required")
        return v.strip()


class SyncSubscriptionResponse(BaseModel):
    success: bool
    message: str
    userId: str
    subscriptionId: str
    status: str
    canceledDuplicates: int = 0
