"""Pydantic models for accounts: shared enums, auth and profile payloads."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator

# =============================================================================
# Enums
# =============================================================================


class Role(str, Enum):
    """Account roles. Also used for an actor's side of a mission."""

    client = "CLIENT"
    provider = "PROVIDER"
    admin = "ADMIN"


class MissionStatus(str, Enum):
    """Mission lifecycle states."""

    pending = "PENDING"
    accepted = "ACCEPTED"
    in_progress = "IN_PROGRESS"
    completed = "COMPLETED"
    cancelled = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (MissionStatus.completed, MissionStatus.cancelled)


class PaymentStatus(str, Enum):
    """Payment states, driven by the payment processor."""

    pending = "PENDING"
    processing = "PROCESSING"
    completed = "COMPLETED"
    failed = "FAILED"
    refunded = "REFUNDED"


# =============================================================================
# Auth Models
# =============================================================================


class UserRegister(BaseModel):
    """Request to register a new account."""

    email: str = Field(..., min_length=3, max_length=254, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(..., min_length=8, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone_number: str | None = Field(None, max_length=32)
    role: Role = Role.client

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class UserLogin(BaseModel):
    """Request for a token."""

    email: str
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class UserSummary(BaseModel):
    """Minimal public view of a user, attached to missions and messages."""

    id: str
    first_name: str
    last_name: str
    phone_number: str | None = None
    rating: float | None = None


class UserInfo(BaseModel):
    """Full profile of the authenticated user."""

    id: str
    email: str
    first_name: str
    last_name: str
    role: Role
    phone_number: str | None = None
    profile_image: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    address: str | None = None
    rating: float = 0.0
    total_jobs: int = 0
    is_available: bool = True
    created_at: datetime | None = None


class AuthResponse(BaseModel):
    """JWT token plus the account it was issued for."""

    token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserInfo


# =============================================================================
# Profile Models
# =============================================================================


class ProfileUpdate(BaseModel):
    """Partial profile update. Only fields that are sent are changed."""

    first_name: str | None = Field(None, min_length=1, max_length=100)
    last_name: str | None = Field(None, min_length=1, max_length=100)
    phone_number: str | None = Field(None, max_length=32)
    profile_image: str | None = None
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)
    address: str | None = None
    is_available: bool | None = None
    device_token: str | None = None  # FCM registration token


class NearbyProvider(BaseModel):
    """An available provider and how far away they are."""

    id: str
    first_name: str
    last_name: str
    rating: float = 0.0
    total_jobs: int = 0
    latitude: float
    longitude: float
    distance_km: float


class NearbyProvidersResponse(BaseModel):
    providers: list[NearbyProvider]
