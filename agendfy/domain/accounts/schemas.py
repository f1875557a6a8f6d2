"""Account domain schemas - Pydantic models for validation"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, field_validator


class LimitedResource(str, Enum):
    SERVICES = "services"
    CLIENTS = "clients"
    APPOINTMENTS_PER_MONTH = "appointmentsPerMonth"


class RegisterProfessionalRequest(BaseModel):
    """Schema for the registration hook called right after sign-up"""

    name: str
    businessName: Optional[str] = None
    email: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Name is required")
        return v.strip()


class ResourceUsage(BaseModel):
    current: int
    limit: Optional[int] = None
    remaining: Optional[int] = None
    canAdd: bool


class UsageResponse(BaseModel):
    hasPremiumAccess: bool
    services: ResourceUsage
    clients: ResourceUsage
    appointmentsPerMonth: ResourceUsage


class ExcessResourcesResponse(BaseModel):
    hasExcess: bool
    excessServices: int
    excessClients: int
    message: str
