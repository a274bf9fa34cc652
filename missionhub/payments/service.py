"""Payment service: intents, confirmation, webhooks and refunds.

Payment rows are keyed by the processor's payment-intent reference. Every
status change is a conditional update on that key, so duplicate or
out-of-order processor events cannot create rows or regress a terminal
status.
"""

from __future__ import annotations

from supabase import Client

from ..database import (
    MISSIONS_TABLE,
    PAYMENTS_TABLE,
    get_user,
    is_duplicate_error,
    run_query,
    update_user,
)
from ..errors import InvalidStateError, NotAuthorizedError, NotFoundError
from ..logging_config import get_logger
from ..models import MissionStatus, PaymentStatus
from ..money import from_minor_units, split_amount
from .gateway import StripeGateway

logger = get_logger("payments")

OPEN_STATUSES = (PaymentStatus.pending, PaymentStatus.processing)

# event type -> (new status, statuses it may move from)
EVENT_TRANSITIONS: dict[str, tuple[PaymentStatus, tuple[PaymentStatus, ...]]] = {
    "payment_intent.succeeded": (PaymentStatus.completed, OPEN_STATUSES),
    "payment_intent.processing": (PaymentStatus.processing, (PaymentStatus.pending,)),
    "payment_intent.payment_failed": (PaymentStatus.failed, OPEN_STATUSES),
    "payment_intent.canceled": (PaymentStatus.failed, OPEN_STATUSES),
    "charge.refunded": (PaymentStatus.refunded, (PaymentStatus.completed,)),
}


def _field(obj, key: str):
    """Optional field of a StripeObject or plain dict (StripeObject has no ``.get``)."""
    return obj[key] if key in obj else None


class PaymentService:
    """Stateless service — every method receives a Supabase `Client`."""

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @staticmethod
    async def get_payment(db: Client, payment_id: str) -> dict | None:
        result = await run_query(db.table(PAYMENTS_TABLE).select("*").eq("id", payment_id))
        return result.data[0] if result.data else None

    @staticmethod
    async def get_by_intent(db: Client, payment_intent_id: str) -> dict | None:
        result = await run_query(
            db.table(PAYMENTS_TABLE)
            .select("*")
            .eq("stripe_payment_intent", payment_intent_id)
        )
        return result.data[0] if result.data else None

    @staticmethod
    async def list_for_mission(db: Client, mission_id: str) -> list[dict]:
        result = await run_query(
            db.table(PAYMENTS_TABLE)
            .select("*")
            .eq("mission_id", mission_id)
            .order("created_at", desc=True)
        )
        return result.data or []

    @staticmethod
    async def list_for_user(db: Client, user_id: str) -> list[dict]:
        result = await run_query(
            db.table(PAYMENTS_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
        )
        return result.data or []

    @staticmethod
    async def _mission_status(db: Client, mission_id: str) -> str | None:
        result = await run_query(
            db.table(MISSIONS_TABLE).select("status").eq("id", mission_id)
        )
        return result.data[0]["status"] if result.data else None

    # ------------------------------------------------------------------
    # Status updates keyed by intent reference
    # ------------------------------------------------------------------

    @staticmethod
    async def apply_intent_status(
        db: Client,
        payment_intent_id: str,
        new_status: PaymentStatus,
        from_statuses: tuple[PaymentStatus, ...],
        **updates,
    ) -> list[dict]:
        """Move payments for an intent to ``new_status`` if currently in ``from_statuses``.

        Returns the updated rows; an empty list means nothing matched.
        """
        data = {"status": new_status.value, **{k: v for k, v in updates.items() if v is not None}}
        result = await run_query(
            db.table(PAYMENTS_TABLE)
            .update(data)
            .eq("stripe_payment_intent", payment_intent_id)
            .in_("status", [s.value for s in from_statuses])
        )
        return result.data or []

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------

    @staticmethod
    async def _ensure_customer(db: Client, gateway: StripeGateway, user: dict) -> str:
        if user.get("stripe_customer_id"):
            return user["stripe_customer_id"]
        customer_id = await gateway.create_customer(
            email=user["email"],
            name=f"{user['first_name']} {user['last_name']}",
        )
        await update_user(db, user["id"], {"stripe_customer_id": customer_id})
        logger.info(f"Stripe customer created | user={user['id']}")
        return customer_id

    @staticmethod
    def _intent_result(intent, payment: dict) -> dict:
        return {
            "client_secret": intent["client_secret"],
            "payment_intent_id": intent["id"],
            "amount": payment["amount"],
            "commission": payment["commission"],
            "provider_amount": payment["provider_amount"],
            "currency": payment["currency"],
        }

    @staticmethod
    async def create_intent(
        db: Client,
        gateway: StripeGateway,
        mission: dict,
        payer_id: str,
    ) -> dict:
        """Create (or reuse) the payment intent for a mission's price."""
        if mission["client_id"] != payer_id:
            raise NotAuthorizedError("Only the mission client can pay for it")
        if mission["status"] == MissionStatus.cancelled.value:
            raise InvalidStateError("Mission is cancelled")

        existing = await PaymentService.list_for_mission(db, mission["id"])
        active = [p for p in existing if p["status"] != PaymentStatus.failed.value]
        if active:
            payment = active[0]
            if payment["status"] not in [s.value for s in OPEN_STATUSES]:
                raise InvalidStateError("Mission has already been paid")
            intent = await gateway.retrieve_payment_intent(payment["stripe_payment_intent"])
            logger.info(f"Reusing payment intent | mission={mission['id']} | intent={intent['id']}")
            return PaymentService._intent_result(intent, payment)

        user = await get_user(db, payer_id)
        if not user:
            raise NotFoundError("User not found")
        customer_id = await PaymentService._ensure_customer(db, gateway, user)

        amount_cents, commission_cents, provider_cents = split_amount(
            mission["estimated_price"], mission["commission"]
        )
        intent = await gateway.create_payment_intent(
            amount_cents=amount_cents,
            customer_id=customer_id,
            metadata={
                "mission_id": mission["id"],
                "client_id": mission["client_id"],
                "provider_id": mission.get("provider_id") or "",
            },
            # One key per attempt; failed attempts leave rows behind
            idempotency_key=f"mission-{mission['id']}-intent-{len(existing)}",
        )

        data = {
            "amount": float(from_minor_units(amount_cents)),
            "commission": float(from_minor_units(commission_cents)),
            "provider_amount": float(from_minor_units(provider_cents)),
            "currency": gateway.currency,
            "status": PaymentStatus.pending.value,
            "stripe_payment_intent": intent["id"],
            "mission_id": mission["id"],
            "user_id": payer_id,
        }
        try:
            result = await run_query(db.table(PAYMENTS_TABLE).insert(data))
            payment = result.data[0] if result.data else data
        except Exception as e:
            if not is_duplicate_error(e):
                raise
            # A concurrent request stored the same attempt first
            payment = await PaymentService.get_by_intent(db, intent["id"]) or data
            logger.warning(f"Payment row already exists | mission={mission['id']}")

        # A cancel that ran while the intent was being created saw no row to void
        if await PaymentService._mission_status(db, mission["id"]) == MissionStatus.cancelled.value:
            logger.warning(f"Mission cancelled during intent creation | mission={mission['id']}")
            await PaymentService._void(db, gateway, payment)
            raise InvalidStateError("Mission is cancelled")

        logger.info(
            f"Payment intent created | mission={mission['id']} | intent={intent['id']} "
            f"| amount_cents={amount_cents}"
        )
        return PaymentService._intent_result(intent, payment)

    @staticmethod
    async def confirm(
        db: Client,
        gateway: StripeGateway,
        payer_id: str,
        payment_intent_id: str,
    ) -> dict:
        """Pull the intent status from the processor and record it."""
        payment = await PaymentService.get_by_intent(db, payment_intent_id)
        if not payment:
            raise NotFoundError("Payment not found")
        if payment["user_id"] != payer_id:
            raise NotAuthorizedError("Not authorized")

        intent = await gateway.retrieve_payment_intent(payment_intent_id)
        if intent["status"] == "succeeded":
            await PaymentService.apply_intent_status(
                db,
                payment_intent_id,
                PaymentStatus.completed,
                OPEN_STATUSES,
                stripe_charge_id=_field(intent, "latest_charge"),
            )
            logger.info(f"Payment confirmed | intent={payment_intent_id}")
            await PaymentService._refund_if_cancelled(db, gateway, payment_intent_id)
            return await PaymentService.get_by_intent(db, payment_intent_id)

        if intent["status"] == "processing":
            await PaymentService.apply_intent_status(
                db, payment_intent_id, PaymentStatus.processing, (PaymentStatus.pending,)
            )
        raise InvalidStateError("Payment not completed")

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    @staticmethod
    async def handle_event(db: Client, event, gateway: StripeGateway | None = None) -> int:
        """Apply a verified processor event. Returns the number of rows changed.

        With a gateway, a success for a mission that was cancelled meanwhile
        is refunded. That check runs on every delivery, so a processor retry
        also retries a failed refund.
        """
        event_type = event["type"]
        transition = EVENT_TRANSITIONS.get(event_type)
        if transition is None:
            logger.info(f"Unhandled event type {event_type}")
            return 0

        obj = event["data"]["object"]
        if event_type.startswith("charge."):
            payment_intent_id = _field(obj, "payment_intent")
        else:
            payment_intent_id = obj["id"]
        if not payment_intent_id:
            logger.info(f"Event {event_type} carries no payment intent")
            return 0

        new_status, from_statuses = transition
        extra = {}
        if new_status == PaymentStatus.completed:
            extra["stripe_charge_id"] = _field(obj, "latest_charge")

        rows = await PaymentService.apply_intent_status(
            db, payment_intent_id, new_status, from_statuses, **extra
        )
        if rows:
            logger.info(f"Webhook {event_type} | intent={payment_intent_id} | status={new_status.value}")
        else:
            logger.info(f"Webhook {event_type} | intent={payment_intent_id} | no matching payment")

        if new_status == PaymentStatus.completed and gateway is not None:
            await PaymentService._refund_if_cancelled(db, gateway, payment_intent_id)
        return len(rows)

    # ------------------------------------------------------------------
    # Refunds
    # ------------------------------------------------------------------

    @staticmethod
    async def refund_payment(db: Client, gateway: StripeGateway, payment: dict) -> dict:
        """Refund a COMPLETED payment in full."""
        if payment["status"] != PaymentStatus.completed.value:
            raise InvalidStateError(f"Cannot refund payment in status: {payment['status']}")
        await gateway.refund(
            payment["stripe_payment_intent"], idempotency_key=f"refund-{payment['id']}"
        )
        rows = await PaymentService.apply_intent_status(
            db,
            payment["stripe_payment_intent"],
            PaymentStatus.refunded,
            (PaymentStatus.completed,),
        )
        logger.info(f"Payment refunded | id={payment['id']} | mission={payment['mission_id']}")
        return rows[0] if rows else {**payment, "status": PaymentStatus.refunded.value}

    @staticmethod
    async def _void(db: Client, gateway: StripeGateway, payment: dict) -> list[dict]:
        """Cancel an open intent at the processor and mark its row FAILED."""
        await gateway.cancel_payment_intent(payment["stripe_payment_intent"])
        rows = await PaymentService.apply_intent_status(
            db, payment["stripe_payment_intent"], PaymentStatus.failed, OPEN_STATUSES
        )
        logger.info(f"Payment intent voided | id={payment.get('id')} | mission={payment['mission_id']}")
        return rows

    @staticmethod
    async def _refund_if_cancelled(
        db: Client, gateway: StripeGateway, payment_intent_id: str
    ) -> dict | None:
        """Refund a captured payment whose mission is already CANCELLED."""
        payment = await PaymentService.get_by_intent(db, payment_intent_id)
        if not payment or payment["status"] != PaymentStatus.completed.value:
            return None
        if await PaymentService._mission_status(db, payment["mission_id"]) != MissionStatus.cancelled.value:
            return None
        logger.warning(f"Payment captured for cancelled mission | mission={payment['mission_id']}")
        return await PaymentService.refund_payment(db, gateway, payment)

    @staticmethod
    async def settle_cancelled_mission(
        db: Client, gateway: StripeGateway, mission_id: str
    ) -> list[dict]:
        """Refund captured payments and void open intents of a cancelled mission."""
        settled = []
        for payment in await PaymentService.list_for_mission(db, mission_id):
            if payment["status"] == PaymentStatus.completed.value:
                settled.append(await PaymentService.refund_payment(db, gateway, payment))
            elif payment["status"] in [s.value for s in OPEN_STATUSES]:
                settled.extend(await PaymentService._void(db, gateway, payment))
        return settled
