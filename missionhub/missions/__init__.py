"""Mission lifecycle: models, transition rules and the lifecycle engine."""

from .models import (
    CANCEL_RULES,
    STATUS_TRANSITIONS,
    CancelRequest,
    MissionCreate,
    MissionListResponse,
    MissionResponse,
    StatusUpdateRequest,
    counterparty_id,
    party_role,
    to_mission_response,
)
from .service import (
    MissionService,
    atomic_update_mission_status,
    attach_parties,
    get_mission,
    is_participant,
    list_missions,
    reconcile_provider_jobs,
)

__all__ = [
    # Rules
    "STATUS_TRANSITIONS",
    "CANCEL_RULES",
    "party_role",
    "counterparty_id",
    # API models
    "MissionCreate",
    "MissionResponse",
    "MissionListResponse",
    "StatusUpdateRequest",
    "CancelRequest",
    "to_mission_response",
    # Engine
    "MissionService",
    "get_mission",
    "list_missions",
    "atomic_update_mission_status",
    "reconcile_provider_jobs",
    "attach_parties",
    "is_participant",
]
