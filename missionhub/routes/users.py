"""Profile and provider discovery routes."""

from fastapi import APIRouter, Query

from ..auth import CurrentUser
from ..database import Database, list_available_providers, update_user
from ..errors import NotFoundError, ValidationError
from ..geo import within_radius
from ..logging_config import get_logger
from ..models import NearbyProvider, NearbyProvidersResponse, ProfileUpdate, UserInfo
from .auth import to_user_info

logger = get_logger("routes.users")
router = APIRouter(prefix="/users", tags=["users"])


@router.patch("/profile", response_model=UserInfo)
async def update_profile(update: ProfileUpdate, auth: CurrentUser, db: Database):
    """Change only the profile fields present in the request body."""
    changes = update.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("No fields to update")

    logger.info(f"PATCH /users/profile | user={auth.user_id} | fields={sorted(changes)}")
    user = await update_user(db, auth.user_id, changes)
    if not user:
        raise NotFoundError("User not found")
    return to_user_info(user)


@router.get("/nearby-providers", response_model=NearbyProvidersResponse)
async def nearby_providers(
    auth: CurrentUser,
    db: Database,
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    radius: float = Query(10.0, gt=0, le=500, description="Search radius in km"),
):
    """Available providers within ``radius`` km, nearest first."""
    providers = await list_available_providers(db)
    nearby = within_radius((latitude, longitude), providers, radius)
    logger.debug(f"GET /users/nearby-providers | radius={radius} | found={len(nearby)}")
    return NearbyProvidersResponse(
        providers=[
            NearbyProvider(**{k: v for k, v in p.items() if k in NearbyProvider.model_fields and v is not None})
            for p in nearby
        ]
    )
