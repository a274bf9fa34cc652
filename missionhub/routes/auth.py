"""Authentication routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from ..auth import CurrentUser, create_access_token, hash_password, verify_password
from ..config import Settings, get_settings
from ..database import (
    Database,
    create_user,
    get_user,
    get_user_by_email,
    is_duplicate_error,
)
from ..errors import ConflictError, NotAuthenticatedError, NotFoundError, ValidationError
from ..logging_config import get_logger, log_auth_event
from ..models import AuthResponse, Role, UserInfo, UserLogin, UserRegister
from ..rate_limit import limiter

logger = get_logger("routes.auth")
router = APIRouter(prefix="/auth", tags=["auth"])

INVALID_CREDENTIALS = "Invalid email or password"


def to_user_info(user: dict) -> UserInfo:
    """Convert DB user dict to the public profile (drops credential fields)."""
    return UserInfo(**{k: v for k, v in user.items() if k in UserInfo.model_fields and v is not None})


def _auth_response(user: dict, settings: Settings) -> AuthResponse:
    token = create_access_token(user["id"], Role(user["role"]), settings)
    return AuthResponse(
        token=token,
        expires_in=settings.jwt_expire_minutes * 60,
        user=to_user_info(user),
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
async def register(
    request: Request,
    register_request: UserRegister,
    db: Database,
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Create a CLIENT or PROVIDER account and return a token for it."""
    logger.info(f"POST /auth/register | role={register_request.role.value}")

    if register_request.role == Role.admin:
        log_auth_event("register", None, False, reason="admin self-registration")
        raise ValidationError("Cannot self-register as ADMIN")

    if await get_user_by_email(db, register_request.email):
        log_auth_event("register", None, False, reason="email taken")
        raise ConflictError("User already exists")

    try:
        user = await create_user(
            db,
            email=register_request.email,
            password_hash=hash_password(register_request.password),
            first_name=register_request.first_name,
            last_name=register_request.last_name,
            role=register_request.role.value,
            phone_number=register_request.phone_number,
        )
    except Exception as e:
        if is_duplicate_error(e):
            log_auth_event("register", None, False, reason="email taken")
            raise ConflictError("User already exists")
        raise

    if not user:
        log_auth_event("register", None, False, reason="database error")
        raise RuntimeError("Failed to create user")

    log_auth_event("register", user["id"], True, role=user["role"])
    return _auth_response(user, settings)


@router.post("/login", response_model=AuthResponse)
@limiter.limit("10/minute")
async def login(
    request: Request,
    login_request: UserLogin,
    db: Database,
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Exchange email and password for a token."""
    user = await get_user_by_email(db, login_request.email)
    if not user or not verify_password(login_request.password, user.get("password_hash") or ""):
        log_auth_event("login", user["id"] if user else None, False)
        raise NotAuthenticatedError(INVALID_CREDENTIALS)

    log_auth_event("login", user["id"], True)
    return _auth_response(user, settings)


@router.get("/me", response_model=UserInfo)
async def get_me(auth: CurrentUser, db: Database):
    """Get the caller's profile."""
    user = await get_user(db, auth.user_id)
    if not user:
        raise NotFoundError("User not found")
    return to_user_info(user)
