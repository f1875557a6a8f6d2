"""
Document models for the Firestore collections this service reads and writes.

Stored documents keep the camelCase field names used by the web client;
the models expose snake_case attributes and dump back to camelCase.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class SubscriptionStatus(str, Enum):
    FREE = "free"
    PREMIUM_TRIAL = "premium_trial"
    PREMIUM = "premium"


class UserRole(str, Enum):
    PROFESSIONAL = "professional"
    CLIENT = "client"
    CEO = "ceo"


class ServiceStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC so comparisons never mix naive and aware values"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class DocumentModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    @field_validator("*", mode="after")
    @classmethod
    def _normalize_datetimes(cls, v: Any) -> Any:
        if isinstance(v, datetime):
            return as_utc(v)
        return v

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, exclude={"id"})


class TrialInfo(DocumentModel):
    active: bool = False
    started_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None


class SubscriptionInfo(DocumentModel):
    active: bool = False
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    plan: Optional[str] = None
    started_at: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    cancel_at: Optional[datetime] = None


class PlanTransition(DocumentModel):
    """Audit trail of the most recent downgrade reconciliation"""

    last_check: Optional[datetime] = None
    services_disabled: int = 0
    total_clients: int = 0
    total_appointments: int = 0
    notified: bool = False


class ProfessionalAccount(DocumentModel):
    """The subscription-relevant view of a `users/{uid}` document"""

    id: str
    email: Optional[str] = None
    role: Optional[str] = None
    name: Optional[str] = None
    business_name: Optional[str] = None
    # Kept as a raw string: unknown values must resolve to free, not fail validation
    subscription_status: Optional[str] = None
    trial: Optional[TrialInfo] = None
    subscription: Optional[SubscriptionInfo] = None
    plan_transition: Optional[PlanTransition] = None

    @classmethod
    def from_document(cls, doc_id: str, data: Optional[dict]) -> "ProfessionalAccount":
        return cls.model_validate({**(data or {}), "id": doc_id})

    @property
    def is_professional(self) -> bool:
        return self.role == UserRole.PROFESSIONAL.value

    @property
    def trial_active(self) -> bool:
        return bool(self.trial and self.trial.active)


class Service(DocumentModel):
    id: str
    professional_id: str
    name: Optional[str] = None
    status: str = ServiceStatus.ACTIVE.value
    created_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc_id: str, data: Optional[dict]) -> "Service":
        return cls.model_validate({**(data or {}), "id": doc_id})


class Appointment(DocumentModel):
    id: str
    professional_id: str
    client_name: Optional[str] = None
    # The WhatsApp number is the client's identity; clients are not stored on their own
    client_whatsapp: Optional[str] = None
    date: Optional[datetime] = None
    status: Optional[str] = None

    @classmethod
    def from_document(cls, doc_id: str, data: Optional[dict]) -> "Appointment":
        return cls.model_validate({**(data or {}), "id": doc_id})
