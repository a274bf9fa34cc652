"""Admin routes for platform oversight.

These routes require an ADMIN account.
"""

import math
from decimal import Decimal

from fastapi import APIRouter, Path, Query
from pydantic import BaseModel

from ..auth import AdminUser
from ..database import (
    MISSIONS_TABLE,
    PAYMENTS_TABLE,
    USER_PROFILE_COLUMNS,
    USERS_TABLE,
    Database,
    run_query,
)
from ..errors import InvalidStateError, NotFoundError
from ..logging_config import get_logger
from ..missions import get_mission
from ..models import MissionStatus, PaymentStatus, Role
from ..payments import Gateway, PaymentService
from ..payments.models import PaymentResponse, to_payment_response

logger = get_logger("routes.admin")

router = APIRouter(prefix="/admin", tags=["admin"])


# =============================================================================
# Models
# =============================================================================


class UserStats(BaseModel):
    total: int
    clients: int
    providers: int


class MissionStats(BaseModel):
    total: int
    pending: int
    completed: int


class RevenueStats(BaseModel):
    total_commission: Decimal


class PlatformStats(BaseModel):
    """Headline numbers for the admin dashboard."""

    users: UserStats
    missions: MissionStats
    revenue: RevenueStats


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class Page(BaseModel):
    """One page of raw records."""

    items: list[dict]
    pagination: Pagination


# =============================================================================
# Helpers
# =============================================================================


async def _count(db, table: str, **filters) -> int:
    query = db.table(table).select("id", count="exact")
    for column, value in filters.items():
        query = query.eq(column, value)
    result = await run_query(query)
    return result.count or 0


async def _page(db, table: str, columns: str, page: int, limit: int, **filters) -> Page:
    offset = (page - 1) * limit
    query = db.table(table).select(columns, count="exact")
    for column, value in filters.items():
        if value is not None:
            query = query.eq(column, value)
    query = query.order("created_at", desc=True).range(offset, offset + limit - 1)
    result = await run_query(query)
    total = result.count or 0
    return Page(
        items=result.data or [],
        pagination=Pagination(
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit) if total else 0,
        ),
    )


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/stats", response_model=PlatformStats)
async def platform_stats(admin: AdminUser, db: Database):
    """User, mission and revenue totals."""
    logger.info(f"GET /admin/stats | admin={admin.user_id}")

    completed_payments = await run_query(
        db.table(PAYMENTS_TABLE)
        .select("commission")
        .eq("status", PaymentStatus.completed.value)
    )
    total_commission = sum(
        (Decimal(str(p["commission"])) for p in completed_payments.data or []),
        Decimal("0.00"),
    )

    return PlatformStats(
        users=UserStats(
            total=await _count(db, USERS_TABLE),
            clients=await _count(db, USERS_TABLE, role=Role.client.value),
            providers=await _count(db, USERS_TABLE, role=Role.provider.value),
        ),
        missions=MissionStats(
            total=await _count(db, MISSIONS_TABLE),
            pending=await _count(db, MISSIONS_TABLE, status=MissionStatus.pending.value),
            completed=await _count(db, MISSIONS_TABLE, status=MissionStatus.completed.value),
        ),
        revenue=RevenueStats(total_commission=total_commission),
    )


@router.get("/users", response_model=Page)
async def admin_list_users(
    admin: AdminUser,
    db: Database,
    role: Role | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    return await _page(
        db, USERS_TABLE, USER_PROFILE_COLUMNS, page, limit,
        role=role.value if role else None,
    )


@router.get("/missions", response_model=Page)
async def admin_list_missions(
    admin: AdminUser,
    db: Database,
    status: MissionStatus | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    return await _page(
        db, MISSIONS_TABLE, "*", page, limit,
        status=status.value if status else None,
    )


@router.get("/payments", response_model=Page)
async def admin_list_payments(
    admin: AdminUser,
    db: Database,
    status: PaymentStatus | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    return await _page(
        db, PAYMENTS_TABLE, "*", page, limit,
        status=status.value if status else None,
    )


@router.post("/payments/{payment_id}/refund", response_model=PaymentResponse)
async def admin_refund_payment(
    admin: AdminUser,
    db: Database,
    gateway: Gateway,
    payment_id: str = Path(..., min_length=1),
):
    """Refund a captured payment of a cancelled mission.

    Retry path for a refund that failed during cancellation.
    """
    payment = await PaymentService.get_payment(db, payment_id)
    if not payment:
        raise NotFoundError("Payment not found")
    mission = await get_mission(db, payment["mission_id"])
    if not mission or mission["status"] != MissionStatus.cancelled.value:
        raise InvalidStateError("Only payments of cancelled missions can be refunded")

    logger.info(f"POST /admin/payments/{payment_id}/refund | admin={admin.user_id}")
    refunded = await PaymentService.refund_payment(db, gateway, payment)
    return to_payment_response(refunded)
