"""
Payment orchestration between orders and Stripe.

Confirmation can be re-entered from a polling client
(``POST /api/orders/{id}/confirm``) or from a Stripe webhook; both paths end in
``crud.confirm_payment``, which is idempotent.
"""
import logging
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from . import crud, errors, payments
from .models import Order, PaymentStatus

logger = logging.getLogger(__name__)


def create_payment_intent(db: Session, order: Order) -> payments.IntentResult:
    if order.payment_status != PaymentStatus.PENDING:
        raise errors.OrderStateError(f"Order {order.id} is already {order.payment_status}")
    if order.total_amount is None or order.total_amount <= 0:
        raise errors.NothingToPay(f"Order {order.id} has nothing to pay")

    # PaymentProcessorError propagates and the order stays pending for a retry
    intent = payments.create_payment_intent(
        order_id=order.id,
        user_id=order.user_id,
        amount=order.total_amount,
    )
    if order.payment_intent_id and order.payment_intent_id != intent.id:
        logger.warning(
            "order %s had payment intent %s, replacing with %s",
            order.id,
            order.payment_intent_id,
            intent.id,
        )
    crud.set_payment_intent(db, order, intent.id)
    logger.info("payment intent %s created for order %s", intent.id, order.id)
    return intent


def refresh_payment_status(db: Session, order: Order) -> Tuple[Order, bool]:
    """Ask Stripe how the order's intent ended and record a terminal outcome.

    An intent that is still processing leaves the order pending.
    """
    if order.payment_status in PaymentStatus.TERMINAL:
        return order, False
    if not order.payment_intent_id:
        raise errors.OrderStateError(f"Order {order.id} has no payment intent yet")

    intent = payments.retrieve_payment_intent(order.payment_intent_id)
    outcome = intent.outcome
    if outcome is None:
        if intent.has_payment_error:
            logger.info("order %s payment intent %s was declined, awaiting another attempt", order.id, intent.id)
        else:
            logger.info("order %s payment intent %s is %s", order.id, intent.id, intent.status)
        return order, False
    return crud.confirm_payment(db, order.id, outcome, external_id=intent.id)


# payment_failed is a declined attempt; the intent stays open for another card
_WEBHOOK_OUTCOMES = {
    "payment_intent.succeeded": PaymentStatus.SUCCEEDED,
    "payment_intent.payment_failed": None,
    "payment_intent.canceled": PaymentStatus.FAILED,
}


def _order_id_from_metadata(data_object: Dict[str, Any]) -> Optional[int]:
    metadata = data_object.get("metadata") or {}
    order_id = str(metadata.get("order_id") or "")
    return int(order_id) if order_id.isdigit() else None


def handle_webhook_event(db: Session, event: Dict[str, Any]) -> Optional[Order]:
    """Apply a verified Stripe event. Returns the affected order, if any."""
    event_type = event.get("type")
    if event_type not in _WEBHOOK_OUTCOMES:
        logger.debug("ignoring stripe event %s", event_type)
        return None

    data_object = (event.get("data") or {}).get("object") or {}
    intent_id = data_object.get("id")

    order = None
    order_id = _order_id_from_metadata(data_object)
    if order_id is not None:
        order = crud.get_order(db, order_id)
    if order is None and intent_id:
        order = crud.get_order_by_payment_intent(db, intent_id)
    if order is None:
        logger.warning("stripe event %s for unknown order (intent %s)", event_type, intent_id)
        return None

    outcome = _WEBHOOK_OUTCOMES[event_type]
    if outcome is None:
        logger.info("order %s payment attempt declined (intent %s), order stays pending", order.id, intent_id)
        return order

    # OrderStateError and InsufficientStock propagate as 409 so Stripe redelivers
    order, _ = crud.confirm_payment(db, order.id, outcome, external_id=intent_id)
    return order
