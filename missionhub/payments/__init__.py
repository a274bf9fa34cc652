"""Payments for missions through Stripe."""

from .gateway import Gateway, StripeGateway, get_gateway
from .service import EVENT_TRANSITIONS, PaymentService

__all__ = [
    "StripeGateway",
    "Gateway",
    "get_gateway",
    "PaymentService",
    "EVENT_TRANSITIONS",
]
