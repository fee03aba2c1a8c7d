from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import checkout, crud, errors
from ..auth import ADMIN_ROLE, TokenClaims, get_current_claims
from ..database import get_db
from ..schemas import OrderListResponse, OrderOut

router = APIRouter(prefix="/api/orders", tags=["orders"])


def _get_visible_order(db: Session, order_id: int, claims: TokenClaims):
    order = crud.get_order(db, order_id)
    # Other users' orders look exactly like missing ones
    if not order or (order.user_id != claims.user_id and not claims.has_role(ADMIN_ROLE)):
        raise errors.NotFound(f"Order with id {order_id} not found")
    return order


@router.post("", response_model=OrderOut, status_code=status.HTTP_201_CREATED)
def create_order(claims: TokenClaims = Depends(get_current_claims), db: Session = Depends(get_db)):
    """
    Create a pending order from the caller's cart.

    The cart is kept until the payment succeeds; stock is checked now and
    decremented on successful payment.
    """
    return crud.create_order(db, user_id=claims.user_id)


@router.get("", response_model=OrderListResponse)
def get_my_orders(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    claims: TokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    orders = crud.get_orders_by_user(db, user_id=claims.user_id, skip=skip, limit=limit)
    total = crud.get_user_order_count(db, user_id=claims.user_id)
    return {"orders": orders, "total": total, "skip": skip, "limit": limit}


@router.get("/{order_id}", response_model=OrderOut)
def get_order(order_id: int, claims: TokenClaims = Depends(get_current_claims), db: Session = Depends(get_db)):
    return _get_visible_order(db, order_id, claims)


@router.post("/{order_id}/confirm", response_model=OrderOut)
def confirm_order_payment(
    order_id: int,
    claims: TokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    """
    Poll Stripe for the order's payment intent and record the result.

    Safe to call repeatedly: an order that already succeeded or failed is
    returned unchanged, and an intent still in progress leaves it pending.
    """
    order = _get_visible_order(db, order_id, claims)
    order, _ = checkout.refresh_payment_status(db, order)
    return order
