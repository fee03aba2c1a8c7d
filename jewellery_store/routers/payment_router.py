import logging
from decimal import Decimal

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from .. import checkout, crud, errors, payments
from ..auth import TokenClaims, get_current_claims
from ..config import STRIPE_CURRENCY
from ..database import get_db
from ..schemas import PaymentIntentRequest, PaymentIntentResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stripe", tags=["payments"])


@router.post("/create-payment-intent", response_model=PaymentIntentResponse)
def create_payment_intent(
    body: PaymentIntentRequest,
    claims: TokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    """Create (or fetch again) the Stripe PaymentIntent for one of the caller's pending orders.

    client_secret is safe to send to the client; it is required by Stripe.js
    """
    order = crud.get_order(db, body.order_id)
    if not order or order.user_id != claims.user_id:
        raise errors.NotFound(f"Order with id {body.order_id} not found")

    intent = checkout.create_payment_intent(db, order)
    amount = (
        Decimal(intent.amount_minor) / 100 if intent.amount_minor is not None else Decimal(str(order.total_amount))
    )
    return {
        "order_id": order.id,
        "payment_intent_id": intent.id,
        "client_secret": intent.client_secret,
        "amount": amount,
        "currency": intent.currency or STRIPE_CURRENCY,
        "status": intent.status,
    }


@router.post("/webhook", include_in_schema=False)
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    """Stripe webhook endpoint.

    Configure this URL in Stripe (or via stripe-cli) and set STRIPE_WEBHOOK_SECRET.
    """
    payload = await request.body()
    event = payments.parse_webhook_event(payload, request.headers.get("stripe-signature"))
    logger.info("stripe event %s received", event.get("type"))

    # row locks can block; keep the session work off the event loop
    order = await run_in_threadpool(checkout.handle_webhook_event, db, event)

    # 2xx acknowledges receipt; a 409 from confirmation makes Stripe redeliver later
    return {"received": True, "order_id": order.id if order else None}
