"""Mission lifecycle engine.

PENDING -> ACCEPTED -> IN_PROGRESS -> COMPLETED, with CANCELLED reachable
from every non-terminal state. Each transition is a compare-and-set on
``status`` (UPDATE ... WHERE id = ? AND status = expected), so concurrent
requests against the same mission serialize through the store and the
loser observes InvalidStateError.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from supabase import Client

from ..database import (
    MISSIONS_TABLE,
    get_user,
    get_user_summaries,
    run_query,
    update_user,
)
from ..errors import InvalidStateError, NotAuthorizedError, NotFoundError
from ..logging_config import get_logger
from ..models import MissionStatus
from ..money import compute_commission
from ..notifications import PushNotifier
from ..payments import PaymentService, StripeGateway
from .models import (
    CANCEL_RULES,
    STATUS_TIMESTAMPS,
    STATUS_TRANSITIONS,
    MissionCreate,
    counterparty_id,
    party_role,
)

logger = get_logger("missions")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# Database Operations
# =============================================================================


async def get_mission(db: Client, mission_id: str) -> dict | None:
    """Get a mission by ID."""
    result = await run_query(db.table(MISSIONS_TABLE).select("*").eq("id", mission_id))
    return result.data[0] if result.data else None


async def list_missions(
    db: Client,
    status_filter: str | None = None,
    category: str | None = None,
    is_urgent: bool | None = None,
    client_id: str | None = None,
    provider_id: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[dict], int]:
    """List missions with optional filters, newest first."""
    query = db.table(MISSIONS_TABLE).select("*", count="exact")

    if status_filter:
        query = query.eq("status", status_filter)
    if category:
        query = query.eq("category", category)
    if is_urgent is not None:
        query = query.eq("is_urgent", is_urgent)
    if client_id:
        query = query.eq("client_id", client_id)
    if provider_id:
        query = query.eq("provider_id", provider_id)

    query = query.order("created_at", desc=True).range(offset, offset + limit - 1)
    result = await run_query(query)
    return result.data or [], result.count or 0


async def atomic_update_mission_status(
    db: Client,
    mission_id: str,
    expected_status: MissionStatus,
    new_status: MissionStatus,
    **updates,
) -> tuple[dict | None, str | None]:
    """Atomically move a mission from ``expected_status`` to ``new_status``.

    Returns:
        Tuple of (updated_mission, error).
        - If successful: (mission_dict, None)
        - If mission not found: (None, "not_found")
        - If status mismatch (lost a race): (None, "conflict")
    """
    now = _now()
    update_data = {"status": new_status.value, "updated_at": now, **updates}
    if new_status in STATUS_TIMESTAMPS:
        update_data[STATUS_TIMESTAMPS[new_status]] = now

    query = (
        db.table(MISSIONS_TABLE)
        .update(update_data)
        .eq("id", mission_id)
        .eq("status", expected_status.value)
    )
    if expected_status == MissionStatus.pending:
        # A pending mission must not already carry a provider
        query = query.is_("provider_id", "null")
    result = await run_query(query)

    if result.data:
        return result.data[0], None

    mission = await get_mission(db, mission_id)
    if not mission:
        return None, "not_found"

    logger.warning(
        f"Race condition detected on mission {mission_id}: "
        f"expected status '{expected_status.value}', found '{mission['status']}'"
    )
    return None, "conflict"


async def count_completed_missions(db: Client, provider_id: str) -> int:
    result = await run_query(
        db.table(MISSIONS_TABLE)
        .select("id", count="exact")
        .eq("provider_id", provider_id)
        .eq("status", MissionStatus.completed.value)
    )
    return result.count or 0


async def reconcile_provider_jobs(db: Client, provider_id: str) -> int:
    """Set a provider's ``total_jobs`` to their number of COMPLETED missions.

    Derived from mission history, so repeating it never double-counts.
    """
    total = await count_completed_missions(db, provider_id)
    await update_user(db, provider_id, {"total_jobs": total})
    return total


async def attach_parties(db: Client, missions: list[dict]) -> dict[str, dict]:
    """Fetch client/provider summaries for a batch of missions."""
    ids = []
    for mission in missions:
        ids.append(mission["client_id"])
        if mission.get("provider_id"):
            ids.append(mission["provider_id"])
    return await get_user_summaries(db, ids)


# =============================================================================
# Lifecycle Engine
# =============================================================================


class MissionService:
    """Guarded mission transitions and their side effects.

    Holds no entity state between calls; every operation re-reads the
    mission from the store.
    """

    def __init__(
        self,
        db: Client,
        notifier: PushNotifier,
        gateway: StripeGateway | None = None,
        commission_rate: Decimal = Decimal("0.15"),
    ):
        self.db = db
        self.notifier = notifier
        self.gateway = gateway
        self.commission_rate = Decimal(str(commission_rate))

    async def _require_mission(self, mission_id: str) -> dict:
        mission = await get_mission(self.db, mission_id)
        if not mission:
            raise NotFoundError("Mission not found")
        return mission

    async def _notify(self, user_id: str | None, title: str, body: str, mission_id: str) -> None:
        """Best-effort push to a user's device. Never raises."""
        if not user_id:
            return
        try:
            user = await get_user(self.db, user_id)
        except Exception as e:
            logger.warning(f"Notification lookup failed | user={user_id} | {type(e).__name__}")
            return
        if not user:
            return
        await self.notifier.notify(
            user.get("device_token"), title, body, {"missionId": mission_id}
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def create(self, client_id: str, request: MissionCreate) -> dict:
        """Post a new PENDING mission with its commission fixed at creation."""
        commission = compute_commission(request.estimated_price, self.commission_rate)
        data = {
            "title": request.title,
            "description": request.description,
            "category": request.category,
            "is_urgent": request.is_urgent,
            "latitude": request.latitude,
            "longitude": request.longitude,
            "address": request.address,
            "estimated_price": float(request.estimated_price),
            "commission": float(commission),
            "status": MissionStatus.pending.value,
            "client_id": client_id,
            "provider_id": None,
        }
        result = await run_query(self.db.table(MISSIONS_TABLE).insert(data))
        if not result.data:
            raise RuntimeError("Failed to create mission")
        mission = result.data[0]
        logger.info(f"Mission created | id={mission['id']} | client={client_id} | commission={commission}")
        return mission

    async def accept(self, mission_id: str, provider_id: str) -> dict:
        """Assign the provider to a PENDING mission. Exactly one caller wins."""
        mission, error = await atomic_update_mission_status(
            self.db,
            mission_id,
            expected_status=MissionStatus.pending,
            new_status=MissionStatus.accepted,
            provider_id=provider_id,
        )
        if error == "not_found":
            raise NotFoundError("Mission not found")
        if error == "conflict":
            raise InvalidStateError("Mission is not available")

        logger.info(f"Mission accepted | id={mission_id} | provider={provider_id}")
        await self._notify(
            mission["client_id"],
            "Mission Accepted",
            f'Your mission "{mission["title"]}" has been accepted',
            mission_id,
        )
        return mission

    async def update_status(
        self, mission_id: str, actor_id: str, new_status: MissionStatus
    ) -> dict:
        """Move a mission forward along the transition table."""
        mission = await self._require_mission(mission_id)

        role = party_role(mission, actor_id)
        if role is None:
            raise NotAuthorizedError("Not authorized")

        current = MissionStatus(mission["status"])
        allowed = STATUS_TRANSITIONS.get((current, new_status))
        if allowed is None:
            raise InvalidStateError(
                f"Cannot change mission from {current.value} to {new_status.value}"
            )
        if role not in allowed:
            raise NotAuthorizedError(
                f"Only the {' or '.join(sorted(r.value.lower() for r in allowed))} "
                f"can set status {new_status.value}"
            )

        updated, error = await atomic_update_mission_status(
            self.db, mission_id, expected_status=current, new_status=new_status
        )
        if error == "not_found":
            raise NotFoundError("Mission not found")
        if error == "conflict":
            raise InvalidStateError("Mission status was modified by another request")

        if new_status == MissionStatus.completed and updated.get("provider_id"):
            total = await reconcile_provider_jobs(self.db, updated["provider_id"])
            logger.info(f"Provider jobs reconciled | provider={updated['provider_id']} | total={total}")

        logger.info(f"Mission status updated | id={mission_id} | {current.value}->{new_status.value} | by={actor_id}")
        await self._notify(
            counterparty_id(mission, actor_id),
            "Mission Status Updated",
            f'Mission "{mission["title"]}" is now {new_status.value}',
            mission_id,
        )
        return updated

    async def cancel(self, mission_id: str, actor_id: str, reason: str | None = None) -> dict:
        """Cancel a non-terminal mission and settle its payments."""
        mission = await self._require_mission(mission_id)

        role = party_role(mission, actor_id)
        if role is None:
            raise NotAuthorizedError("Not authorized")

        current = MissionStatus(mission["status"])
        if current.is_terminal:
            raise InvalidStateError(f"Mission is already {current.value}")
        allowed = CANCEL_RULES[current]
        if role not in allowed:
            raise NotAuthorizedError(f"Only the client can cancel a {current.value} mission")

        updated, error = await atomic_update_mission_status(
            self.db,
            mission_id,
            expected_status=current,
            new_status=MissionStatus.cancelled,
            cancellation_reason=reason,
        )
        if error == "not_found":
            raise NotFoundError("Mission not found")
        if error == "conflict":
            raise InvalidStateError("Mission status was modified by another request")

        logger.info(f"Mission cancelled | id={mission_id} | by={actor_id} | from={current.value}")
        await self._notify(
            counterparty_id(mission, actor_id),
            "Mission Cancelled",
            f'Mission "{mission["title"]}" has been cancelled',
            mission_id,
        )

        # Payment failures surface to the caller; the mission stays cancelled
        # and an admin can retry the refund.
        if self.gateway is not None:
            await PaymentService.settle_cancelled_mission(self.db, self.gateway, mission_id)
        return updated

    async def list_for_user(self, user_id: str, role: str | None) -> list[dict]:
        """Missions where the user is the client, the provider, or either."""
        if role == "client":
            missions, _ = await list_missions(self.db, client_id=user_id, limit=100)
            return missions
        if role == "provider":
            missions, _ = await list_missions(self.db, provider_id=user_id, limit=100)
            return missions

        as_client, _ = await list_missions(self.db, client_id=user_id, limit=100)
        as_provider, _ = await list_missions(self.db, provider_id=user_id, limit=100)
        seen = set()
        merged = []
        for mission in as_client + as_provider:
            if mission["id"] not in seen:
                seen.add(mission["id"])
                merged.append(mission)
        merged.sort(key=lambda m: m["created_at"], reverse=True)
        return merged


def is_participant(mission: dict, user_id: str) -> bool:
    return party_role(mission, user_id) is not None


__all__ = [
    "MissionService",
    "get_mission",
    "list_missions",
    "atomic_update_mission_status",
    "reconcile_provider_jobs",
    "attach_parties",
    "is_participant",
]
