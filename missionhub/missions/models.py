"""Mission records, the transition table and response shaping."""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from ..models import MissionStatus, Role, UserSummary

# =============================================================================
# Transitions
# =============================================================================

# (current, requested) -> party roles allowed to request it through updateStatus.
# PENDING -> ACCEPTED is owned by accept(); CANCELLED by cancel().
STATUS_TRANSITIONS: dict[tuple[MissionStatus, MissionStatus], frozenset[Role]] = {
    (MissionStatus.accepted, MissionStatus.in_progress): frozenset({Role.provider}),
    (MissionStatus.in_progress, MissionStatus.completed): frozenset({Role.provider}),
}

CANCEL_RULES: dict[MissionStatus, frozenset[Role]] = {
    MissionStatus.pending: frozenset({Role.client}),
    MissionStatus.accepted: frozenset({Role.client, Role.provider}),
    MissionStatus.in_progress: frozenset({Role.client, Role.provider}),
}

# Timestamp column stamped when a mission enters a status
STATUS_TIMESTAMPS: dict[MissionStatus, str] = {
    MissionStatus.accepted: "accepted_at",
    MissionStatus.in_progress: "started_at",
    MissionStatus.completed: "completed_at",
    MissionStatus.cancelled: "cancelled_at",
}


def party_role(mission: dict, actor_id: str) -> Role | None:
    """The actor's side of a mission, or None if they are not a party to it."""
    if mission.get("client_id") == actor_id:
        return Role.client
    if mission.get("provider_id") and mission["provider_id"] == actor_id:
        return Role.provider
    return None


def counterparty_id(mission: dict, actor_id: str) -> str | None:
    """The other party of a mission relative to ``actor_id``."""
    if mission.get("client_id") == actor_id:
        return mission.get("provider_id")
    return mission.get("client_id")


# =============================================================================
# Request/Response Models
# =============================================================================


class MissionCreate(BaseModel):
    """Request to post a mission."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1, max_length=100)
    is_urgent: bool = False
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: str = Field(..., min_length=1)
    estimated_price: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)


class StatusUpdateRequest(BaseModel):
    status: MissionStatus


class CancelRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)


class MissionResponse(BaseModel):
    """Mission details response."""

    id: str
    title: str
    description: str
    category: str
    is_urgent: bool = False
    latitude: float | None = None
    longitude: float | None = None
    address: str | None = None
    estimated_price: Decimal
    commission: Decimal
    status: MissionStatus
    client_id: str
    provider_id: str | None = None
    cancellation_reason: str | None = None
    created_at: datetime
    updated_at: datetime | None = None
    accepted_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    client: UserSummary | None = None
    provider: UserSummary | None = None


class MissionListResponse(BaseModel):
    """Paginated list of missions."""

    missions: list[MissionResponse]
    total: int
    limit: int
    offset: int


UserMissionRole = Literal["client", "provider"]


def to_mission_response(mission: dict, users: dict[str, dict] | None = None) -> MissionResponse:
    """Convert DB mission dict to response model, attaching party summaries if given."""
    users = users or {}
    client = users.get(mission["client_id"])
    provider = users.get(mission.get("provider_id")) if mission.get("provider_id") else None
    return MissionResponse(
        id=mission["id"],
        title=mission["title"],
        description=mission["description"],
        category=mission["category"],
        is_urgent=bool(mission.get("is_urgent")),
        latitude=mission.get("latitude"),
        longitude=mission.get("longitude"),
        address=mission.get("address"),
        estimated_price=Decimal(str(mission["estimated_price"])),
        commission=Decimal(str(mission["commission"])),
        status=mission["status"],
        client_id=mission["client_id"],
        provider_id=mission.get("provider_id"),
        cancellation_reason=mission.get("cancellation_reason"),
        created_at=mission["created_at"],
        updated_at=mission.get("updated_at"),
        accepted_at=mission.get("accepted_at"),
        started_at=mission.get("started_at"),
        completed_at=mission.get("completed_at"),
        cancelled_at=mission.get("cancelled_at"),
        client=UserSummary(**client) if client else None,
        provider=UserSummary(**provider) if provider else None,
    )
