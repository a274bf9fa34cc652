"""API routes."""

from .admin import router as admin_router
from .auth import router as auth_router
from .chat import router as chat_router
from .missions import router as missions_router
from .payments import router as payments_router
from .users import router as users_router

__all__ = [
    "admin_router",
    "auth_router",
    "chat_router",
    "missions_router",
    "payments_router",
    "users_router",
]
