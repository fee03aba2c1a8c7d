from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from .. import crud
from ..auth import TokenClaims, get_current_claims
from ..database import get_db
from ..schemas import CartItemAdd, CartItemOut, CartItemUpdate, CartOut, CartProduct

router = APIRouter(prefix="/api/cart", tags=["cart"])


def _item_out(item) -> CartItemOut:
    return CartItemOut(
        id=item.id,
        product_id=item.product_id,
        quantity=item.quantity,
        product=CartProduct.model_validate(item.product),
        subtotal=item.product.price * item.quantity,
        created_at=item.created_at,
    )


@router.post("", response_model=CartItemOut, status_code=status.HTTP_201_CREATED)
def add_to_cart(
    body: CartItemAdd,
    claims: TokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    """
    Add a product to the cart. Adding a product that is already there
    increases its quantity by the given amount.
    """
    item = crud.add_to_cart(db, user_id=claims.user_id, product_id=body.product_id, quantity=body.quantity)
    return _item_out(item)


@router.get("", response_model=CartOut)
def get_my_cart(claims: TokenClaims = Depends(get_current_claims), db: Session = Depends(get_db)):
    items = crud.get_cart(db, claims.user_id)
    return CartOut(items=[_item_out(i) for i in items], total_amount=crud.cart_total(items))


@router.patch("/{item_id}", response_model=CartItemOut)
def update_cart_item(
    item_id: int,
    body: CartItemUpdate,
    claims: TokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    """
    Set the quantity of a cart row, replacing the previous value.
    """
    item = crud.update_cart_item(db, user_id=claims.user_id, item_id=item_id, quantity=body.quantity)
    return _item_out(item)


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_from_cart(
    item_id: int,
    claims: TokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    crud.remove_from_cart(db, user_id=claims.user_id, item_id=item_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
