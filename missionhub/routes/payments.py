"""Payment routes: intents, confirmation, history and the processor webhook."""

from fastapi import APIRouter, Request

from ..auth import CurrentUser
from ..database import Database
from ..errors import NotFoundError
from ..logging_config import get_logger
from ..missions import get_mission
from ..payments import Gateway, PaymentService
from ..payments.models import (
    PaymentConfirmRequest,
    PaymentHistoryResponse,
    PaymentIntentRequest,
    PaymentIntentResponse,
    PaymentResponse,
    WebhookAck,
    to_payment_response,
)
from ..rate_limit import limiter

logger = get_logger("routes.payments")
router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/create-intent", response_model=PaymentIntentResponse)
@limiter.limit("20/minute")
async def create_payment_intent(
    request: Request,
    intent_request: PaymentIntentRequest,
    auth: CurrentUser,
    db: Database,
    gateway: Gateway,
):
    """Start (or resume) paying for a mission."""
    logger.info(f"POST /payments/create-intent | user={auth.user_id} | mission={intent_request.mission_id}")
    mission = await get_mission(db, intent_request.mission_id)
    if not mission:
        raise NotFoundError("Mission not found")
    result = await PaymentService.create_intent(db, gateway, mission, auth.user_id)
    return PaymentIntentResponse(**result)


@router.post("/confirm", response_model=PaymentResponse)
async def confirm_payment(
    confirm_request: PaymentConfirmRequest,
    auth: CurrentUser,
    db: Database,
    gateway: Gateway,
):
    """Record the processor's verdict on a payment intent."""
    logger.info(f"POST /payments/confirm | user={auth.user_id} | intent={confirm_request.payment_intent_id}")
    payment = await PaymentService.confirm(
        db, gateway, auth.user_id, confirm_request.payment_intent_id
    )
    return to_payment_response(payment)


@router.get("/history", response_model=PaymentHistoryResponse)
async def payment_history(auth: CurrentUser, db: Database):
    """The caller's payments, newest first."""
    payments = await PaymentService.list_for_user(db, auth.user_id)
    return PaymentHistoryResponse(
        payments=[to_payment_response(p) for p in payments],
        total=len(payments),
    )


@router.post("/webhook", response_model=WebhookAck)
async def stripe_webhook(request: Request, db: Database, gateway: Gateway):
    """Apply a signed processor event. Safe to receive more than once."""
    payload = await request.body()
    event = gateway.construct_event(payload, request.headers.get("stripe-signature"))
    logger.info(f"POST /payments/webhook | type={event['type']} | id={event['id']}")
    await PaymentService.handle_event(db, event, gateway)
    return WebhookAck()
