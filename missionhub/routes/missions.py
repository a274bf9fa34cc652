"""Mission routes: posting, browsing and the lifecycle operations."""

from typing import Annotated

from fastapi import APIRouter, Body, Depends, Query, Request, status

from ..auth import ClientUser, CurrentUser, ProviderUser
from ..chat import MessageListResponse, list_messages, to_message_response
from ..config import Settings, get_settings
from ..database import Database
from ..errors import NotAuthorizedError, NotFoundError
from ..logging_config import get_logger
from ..missions import (
    CancelRequest,
    MissionCreate,
    MissionListResponse,
    MissionResponse,
    MissionService,
    StatusUpdateRequest,
    attach_parties,
    get_mission,
    is_participant,
    list_missions,
    to_mission_response,
)
from ..missions.models import UserMissionRole
from ..models import MissionStatus
from ..notifications import Notifier
from ..payments import Gateway
from ..rate_limit import limiter

logger = get_logger("routes.missions")
router = APIRouter(prefix="/missions", tags=["missions"])


def get_mission_service(
    db: Database,
    notifier: Notifier,
    gateway: Gateway,
    settings: Annotated[Settings, Depends(get_settings)],
) -> MissionService:
    """FastAPI dependency wiring the lifecycle engine to its collaborators."""
    return MissionService(db, notifier, gateway, commission_rate=settings.commission_rate)


Missions = Annotated[MissionService, Depends(get_mission_service)]


async def _with_parties(db, missions: list[dict]) -> list[MissionResponse]:
    users = await attach_parties(db, missions)
    return [to_mission_response(m, users) for m in missions]


@router.post("", response_model=MissionResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def create_mission(
    request: Request,
    mission_request: MissionCreate,
    auth: ClientUser,
    service: Missions,
):
    """Post a new mission. Commission is fixed from the configured rate."""
    logger.info(f"POST /missions | client={auth.user_id} | category={mission_request.category}")
    mission = await service.create(auth.user_id, mission_request)
    return to_mission_response(mission)


@router.get("", response_model=MissionListResponse)
async def browse_missions(
    auth: CurrentUser,
    db: Database,
    status_filter: MissionStatus | None = Query(None, alias="status"),
    category: str | None = None,
    is_urgent: bool | None = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    """List missions newest first with optional filters."""
    missions, total = await list_missions(
        db,
        status_filter=status_filter.value if status_filter else None,
        category=category,
        is_urgent=is_urgent,
        limit=limit,
        offset=offset,
    )
    return MissionListResponse(
        missions=await _with_parties(db, missions),
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/user", response_model=list[MissionResponse])
async def user_missions(
    auth: CurrentUser,
    db: Database,
    service: Missions,
    role: UserMissionRole | None = None,
):
    """Missions where the caller is the client, the provider, or either."""
    missions = await service.list_for_user(auth.user_id, role)
    return await _with_parties(db, missions)


@router.get("/{mission_id}", response_model=MissionResponse)
async def get_mission_detail(mission_id: str, auth: CurrentUser, db: Database):
    """Get a mission with its client and provider summaries."""
    mission = await get_mission(db, mission_id)
    if not mission:
        raise NotFoundError("Mission not found")
    users = await attach_parties(db, [mission])
    return to_mission_response(mission, users)


@router.post("/{mission_id}/accept", response_model=MissionResponse)
@limiter.limit("30/minute")
async def accept_mission(
    request: Request,
    mission_id: str,
    auth: ProviderUser,
    service: Missions,
):
    """Take a PENDING mission. Only one provider can win."""
    logger.info(f"POST /missions/{mission_id}/accept | provider={auth.user_id}")
    mission = await service.accept(mission_id, auth.user_id)
    return to_mission_response(mission)


@router.patch("/{mission_id}/status", response_model=MissionResponse)
async def update_mission_status(
    mission_id: str,
    update: StatusUpdateRequest,
    auth: CurrentUser,
    service: Missions,
):
    logger.info(f"PATCH /missions/{mission_id}/status | user={auth.user_id} | status={update.status.value}")
    mission = await service.update_status(mission_id, auth.user_id, update.status)
    return to_mission_response(mission)


@router.post("/{mission_id}/cancel", response_model=MissionResponse)
async def cancel_mission(
    mission_id: str,
    auth: CurrentUser,
    service: Missions,
    cancel_request: Annotated[CancelRequest | None, Body()] = None,
):
    """Cancel a mission. Captured payments are refunded."""
    reason = cancel_request.reason if cancel_request else None
    logger.info(f"POST /missions/{mission_id}/cancel | user={auth.user_id}")
    mission = await service.cancel(mission_id, auth.user_id, reason)
    return to_mission_response(mission)


@router.get("/{mission_id}/messages", response_model=MessageListResponse)
async def mission_messages(mission_id: str, auth: CurrentUser, db: Database):
    """Chat history for a mission, oldest first. Participants only."""
    mission = await get_mission(db, mission_id)
    if not mission:
        raise NotFoundError("Mission not found")
    if not is_participant(mission, auth.user_id):
        raise NotAuthorizedError("Not authorized")

    messages = await list_messages(db, mission_id)
    return MessageListResponse(
        messages=[to_message_response(m) for m in messages],
        total=len(messages),
    )
