"""Stripe gateway: the only module that talks to the payment processor.

Every call runs in a worker thread and is bounded by the configured
timeout. Processor errors and timeouts surface as ExternalCapabilityError.
"""

import asyncio
from typing import Annotated, Any

import stripe
from fastapi import Depends

from ..config import Settings, get_settings
from ..errors import ExternalCapabilityError, WebhookVerificationError
from ..logging_config import get_logger

logger = get_logger("payments.gateway")


class StripeGateway:
    """Thin async wrapper around the Stripe resources the marketplace uses."""

    def __init__(self, settings: Settings):
        self._api_key = settings.stripe_secret_key
        self._webhook_secret = settings.stripe_webhook_secret
        self._timeout = settings.external_call_timeout_seconds
        self.currency = settings.payment_currency

    async def _call(self, operation: str, fn, *args, **kwargs) -> Any:
        if not self._api_key:
            raise ExternalCapabilityError("payment", "Payments are not configured")
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(fn, *args, api_key=self._api_key, **kwargs),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"Stripe {operation} timed out after {self._timeout}s")
            raise ExternalCapabilityError(
                "payment", "Payment provider timed out", detail=operation
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe {operation} failed: {type(e).__name__}: {e.user_message or e}")
            raise ExternalCapabilityError(
                "payment", "Payment provider error", detail=str(e)
            )

    async def create_customer(self, email: str, name: str) -> str:
        """Create a customer record and return its id."""
        customer = await self._call(
            "customer.create", stripe.Customer.create, email=email, name=name
        )
        return customer["id"]

    async def create_payment_intent(
        self,
        amount_cents: int,
        customer_id: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ):
        return await self._call(
            "payment_intent.create",
            stripe.PaymentIntent.create,
            amount=amount_cents,
            currency=self.currency,
            customer=customer_id,
            metadata=metadata,
            idempotency_key=idempotency_key,
        )

    async def retrieve_payment_intent(self, payment_intent_id: str):
        return await self._call(
            "payment_intent.retrieve", stripe.PaymentIntent.retrieve, payment_intent_id
        )

    async def cancel_payment_intent(self, payment_intent_id: str):
        return await self._call(
            "payment_intent.cancel", stripe.PaymentIntent.cancel, payment_intent_id
        )

    async def refund(self, payment_intent_id: str, idempotency_key: str):
        return await self._call(
            "refund.create",
            stripe.Refund.create,
            payment_intent=payment_intent_id,
            idempotency_key=idempotency_key,
        )

    def construct_event(self, payload: bytes, signature: str | None):
        """Verify a webhook payload against the shared secret and parse it."""
        if not signature:
            raise WebhookVerificationError("No signature")
        if not self._webhook_secret:
            raise WebhookVerificationError("Webhook secret is not configured")
        try:
            return stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except ValueError as e:
            logger.error(f"Invalid webhook payload: {e}")
            raise WebhookVerificationError("Invalid payload")
        except stripe.SignatureVerificationError as e:
            logger.error(f"Invalid webhook signature: {e}")
            raise WebhookVerificationError("Invalid signature")


def get_gateway(settings: Annotated[Settings, Depends(get_settings)]) -> StripeGateway:
    """FastAPI dependency for the Stripe gateway."""
    return StripeGateway(settings)


Gateway = Annotated[StripeGateway, Depends(get_gateway)]
