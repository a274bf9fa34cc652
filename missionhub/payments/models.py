"""Pydantic models for payment requests and responses."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from ..models import PaymentStatus


class PaymentIntentRequest(BaseModel):
    """Request to start paying for a mission."""

    mission_id: str = Field(..., min_length=1)


class PaymentIntentResponse(BaseModel):
    """What the mobile client needs to complete the charge."""

    client_secret: str
    payment_intent_id: str
    amount: Decimal
    commission: Decimal
    provider_amount: Decimal
    currency: str


class PaymentConfirmRequest(BaseModel):
    payment_intent_id: str = Field(..., min_length=1)


class PaymentResponse(BaseModel):
    """Single payment record."""

    id: str
    mission_id: str
    user_id: str
    amount: Decimal
    commission: Decimal
    provider_amount: Decimal
    currency: str
    status: PaymentStatus
    stripe_payment_intent: str | None = None
    stripe_charge_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PaymentHistoryResponse(BaseModel):
    payments: list[PaymentResponse]
    total: int


class WebhookAck(BaseModel):
    received: bool = True


def to_payment_response(payment: dict) -> PaymentResponse:
    """Convert DB payment dict to response model."""
    return PaymentResponse(
        id=payment["id"],
        mission_id=payment["mission_id"],
        user_id=payment["user_id"],
        amount=Decimal(str(payment["amount"])),
        commission=Decimal(str(payment["commission"])),
        provider_amount=Decimal(str(payment["provider_amount"])),
        currency=payment["currency"],
        status=payment["status"],
        stripe_payment_intent=payment.get("stripe_payment_intent"),
        stripe_charge_id=payment.get("stripe_charge_id"),
        created_at=payment.get("created_at"),
        updated_at=payment.get("updated_at"),
    )
