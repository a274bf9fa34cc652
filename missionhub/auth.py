"""Authentication utilities for the MissionHub backend."""

from datetime import datetime, timedelta, timezone
from typing import Annotated

import bcrypt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from .config import Settings, get_settings
from .errors import NotAuthenticatedError, NotAuthorizedError
from .models import Role

# Bearer token scheme; missing headers are reported by get_current_user
security = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(plain: str, hashed: str) -> bool:
    """Verify a password against its hash."""
    try:
        return bcrypt.checkpw(plain.encode(), hashed.encode())
    except (ValueError, TypeError):
        return False


def create_access_token(
    user_id: str,
    role: Role,
    settings: Settings,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a JWT access token carrying the user's id and role."""
    now = datetime.now(timezone.utc)
    if expires_delta:
        expire = now + expires_delta
    else:
        expire = now + timedelta(minutes=settings.jwt_expire_minutes)

    to_encode = {
        "sub": user_id,
        "role": Role(role).value,
        "exp": expire,
        "iat": now,
        "type": "access",
    }
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> dict:
    """Decode and validate a JWT token."""
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        raise NotAuthenticatedError("Invalid or expired token")


class AuthContext:
    """The authenticated principal attached to a request."""

    def __init__(self, user_id: str, role: Role):
        self.user_id = user_id
        self.role = role

    def __repr__(self) -> str:
        return f"AuthContext(user_id={self.user_id!r}, role={self.role.value})"


def authenticate_token(token: str | None, settings: Settings) -> AuthContext:
    """Resolve a raw bearer token into an AuthContext.

    Shared by the HTTP dependency and the WebSocket handshake.
    """
    if not token:
        raise NotAuthenticatedError("Not authenticated")

    payload = decode_token(token, settings)
    user_id = payload.get("sub")
    if not user_id or payload.get("type") != "access":
        raise NotAuthenticatedError("Invalid token payload")
    try:
        role = Role(payload.get("role"))
    except ValueError:
        raise NotAuthenticatedError("Invalid token payload")
    return AuthContext(user_id=user_id, role=role)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> AuthContext:
    """Get the authenticated user from the Authorization header."""
    token = credentials.credentials if credentials else None
    return authenticate_token(token, settings)


def require_role(*roles: Role):
    """Build a dependency that admits only the given account roles."""
    allowed = frozenset(roles)

    async def _check_role(
        auth: Annotated[AuthContext, Depends(get_current_user)],
    ) -> AuthContext:
        if auth.role not in allowed:
            names = ", ".join(sorted(r.value for r in allowed))
            raise NotAuthorizedError(f"Requires role: {names}")
        return auth

    return _check_role


# Type aliases for dependency injection
CurrentUser = Annotated[AuthContext, Depends(get_current_user)]
ClientUser = Annotated[AuthContext, Depends(require_role(Role.client))]
ProviderUser = Annotated[AuthContext, Depends(require_role(Role.provider))]
AdminUser = Annotated[AuthContext, Depends(require_role(Role.admin))]
