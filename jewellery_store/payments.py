"""
Thin wrapper around the Stripe API.

Stripe is treated as an untrusted, possibly slow oracle: every call has a
bounded timeout, is never retried here, and any failure surfaces as
PaymentProcessorError so the caller can retry later.
"""
import json
import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional

import stripe

from . import errors
from .config import STRIPE_CURRENCY, STRIPE_SECRET_KEY, STRIPE_TIMEOUT_SECONDS, STRIPE_WEBHOOK_SECRET
from .models import PaymentStatus

logger = logging.getLogger(__name__)

stripe.max_network_retries = 0
stripe.default_http_client = stripe.RequestsClient(timeout=STRIPE_TIMEOUT_SECONDS)


@dataclass
class IntentResult:
    id: str
    status: str
    client_secret: Optional[str] = None
    amount_minor: Optional[int] = None
    currency: Optional[str] = None
    has_payment_error: bool = False

    @property
    def outcome(self) -> Optional[str]:
        """Map Stripe's intent status onto an order payment status, or None while unresolved.

        A declined attempt (``requires_payment_method`` with a payment error)
        is not final: the customer can pay the same intent with another card.
        """
        if self.status == "succeeded":
            return PaymentStatus.SUCCEEDED
        if self.status == "canceled":
            return PaymentStatus.FAILED
        return None


def _stripe_required() -> None:
    if not STRIPE_SECRET_KEY:
        raise errors.PaymentProcessorError("Stripe is not configured. Set STRIPE_SECRET_KEY.")
    stripe.api_key = STRIPE_SECRET_KEY


def to_minor_units(amount) -> int:
    # Convert decimal currency to integer minor units (e.g., cents)
    dec = Decimal(str(amount))
    minor = (dec * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(minor)


def _field(obj: Any, key: str):
    try:
        return obj[key]
    except KeyError:
        return None


def _to_result(intent: Any) -> IntentResult:
    return IntentResult(
        id=intent["id"],
        status=intent["status"],
        client_secret=_field(intent, "client_secret"),
        amount_minor=_field(intent, "amount"),
        currency=_field(intent, "currency"),
        has_payment_error=bool(_field(intent, "last_payment_error")),
    )


def create_payment_intent(*, order_id: int, user_id: Optional[int], amount: Decimal) -> IntentResult:
    _stripe_required()
    try:
        intent = stripe.PaymentIntent.create(
            amount=to_minor_units(amount),
            currency=STRIPE_CURRENCY,
            automatic_payment_methods={"enabled": True},
            metadata={
                "order_id": str(order_id),
                "user_id": str(user_id or ""),
            },
            description=f"Order #{order_id}",
            # A retried call for the same order gets the same intent back
            idempotency_key=f"order-{order_id}",
        )
    except stripe.StripeError as e:
        logger.warning("creating payment intent for order %s failed: %s", order_id, e)
        raise errors.PaymentProcessorError(f"Payment processor request failed: {e.user_message or e}") from e
    return _to_result(intent)


def retrieve_payment_intent(intent_id: str) -> IntentResult:
    _stripe_required()
    try:
        intent = stripe.PaymentIntent.retrieve(intent_id)
    except stripe.StripeError as e:
        logger.warning("retrieving payment intent %s failed: %s", intent_id, e)
        raise errors.PaymentProcessorError(f"Payment processor request failed: {e.user_message or e}") from e
    return _to_result(intent)


def parse_webhook_event(payload: bytes, sig_header: Optional[str]) -> Dict[str, Any]:
    """Verify the Stripe-Signature header and return the decoded event."""
    if not STRIPE_WEBHOOK_SECRET:
        raise errors.PaymentProcessorError("STRIPE_WEBHOOK_SECRET is not configured")
    if not sig_header:
        raise errors.WebhookSignatureError("Missing Stripe-Signature header")
    try:
        stripe.WebhookSignature.verify_header(
            payload.decode("utf-8"),
            sig_header,
            STRIPE_WEBHOOK_SECRET,
            tolerance=stripe.Webhook.DEFAULT_TOLERANCE,
        )
        event = json.loads(payload)
    except (ValueError, stripe.SignatureVerificationError) as e:
        raise errors.WebhookSignatureError(f"Webhook signature verification failed: {e}") from e
    if not isinstance(event, dict):
        raise errors.WebhookSignatureError("Webhook payload is not a JSON object")
    return event
