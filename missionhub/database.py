"""Database utilities for Supabase integration."""

import asyncio
from typing import Annotated, Any

from fastapi import Depends
from supabase import Client, create_client

from .config import Settings, get_settings

_supabase_client: Client | None = None


def get_supabase_client(settings: Settings | None = None) -> Client:
    """Get cached Supabase client."""
    global _supabase_client
    if _supabase_client is None:
        if settings is None:
            settings = get_settings()
        # Prefer new secret key, fall back to legacy service_role_key
        api_key = settings.supabase_secret_key or settings.supabase_service_role_key
        if not api_key:
            raise ValueError("Either SUPABASE_SECRET_KEY or SUPABASE_SERVICE_ROLE_KEY must be set")
        _supabase_client = create_client(settings.supabase_url, api_key)
    return _supabase_client


def get_db(settings: Annotated[Settings, Depends(get_settings)]) -> Client:
    """FastAPI dependency for Supabase client."""
    return get_supabase_client(settings)


# Type alias for dependency injection
Database = Annotated[Client, Depends(get_db)]


async def run_query(query) -> Any:
    """Execute a PostgREST query builder without blocking the event loop."""
    return await asyncio.to_thread(query.execute)


# =============================================================================
# Table Names
# =============================================================================

USERS_TABLE = "users"
MISSIONS_TABLE = "missions"
PAYMENTS_TABLE = "payments"
MESSAGES_TABLE = "messages"

USER_PROFILE_COLUMNS = (
    "id, email, first_name, last_name, role, phone_number, profile_image, "
    "latitude, longitude, address, rating, total_jobs, is_available, created_at"
)
USER_SUMMARY_COLUMNS = "id, first_name, last_name, phone_number, rating"


def is_duplicate_error(exc: Exception) -> bool:
    """True if a store error is a unique-constraint violation."""
    text = str(exc).lower()
    return "duplicate" in text or "unique" in text or "23505" in text


# =============================================================================
# User Operations
# =============================================================================


async def create_user(
    db: Client,
    email: str,
    password_hash: str,
    first_name: str,
    last_name: str,
    role: str,
    phone_number: str | None = None,
) -> dict | None:
    """Create a new user in the database."""
    data = {
        "email": email,
        "password_hash": password_hash,
        "first_name": first_name,
        "last_name": last_name,
        "role": role,
        "phone_number": phone_number,
    }
    result = await run_query(db.table(USERS_TABLE).insert(data))
    return result.data[0] if result.data else None


async def get_user(db: Client, user_id: str) -> dict | None:
    """Get a user by ID (all columns, including credential hash)."""
    result = await run_query(db.table(USERS_TABLE).select("*").eq("id", user_id))
    return result.data[0] if result.data else None


async def get_user_by_email(db: Client, email: str) -> dict | None:
    """Get a user by email address."""
    result = await run_query(db.table(USERS_TABLE).select("*").eq("email", email).limit(1))
    return result.data[0] if result.data else None


async def get_user_summaries(db: Client, user_ids: list[str]) -> dict[str, dict]:
    """Fetch minimal profiles for a set of users, keyed by id."""
    ids = sorted({uid for uid in user_ids if uid})
    if not ids:
        return {}
    result = await run_query(
        db.table(USERS_TABLE).select(USER_SUMMARY_COLUMNS).in_("id", ids)
    )
    return {row["id"]: row for row in result.data or []}


async def update_user(db: Client, user_id: str, updates: dict) -> dict | None:
    """Apply a partial update to a user."""
    result = await run_query(db.table(USERS_TABLE).update(updates).eq("id", user_id))
    return result.data[0] if result.data else None


async def list_available_providers(db: Client) -> list[dict]:
    """Providers that are available and have a known location."""
    result = await run_query(
        db.table(USERS_TABLE)
        .select("id, first_name, last_name, rating, total_jobs, latitude, longitude")
        .eq("role", "PROVIDER")
        .eq("is_available", True)
        .not_.is_("latitude", "null")
        .not_.is_("longitude", "null")
    )
    return result.data or []
