from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from .. import crud, errors
from ..auth import get_current_admin
from ..database import get_db
from ..schemas import (
    CategoryCreate,
    CategoryOut,
    CategoryUpdate,
    OrderListResponse,
    ProductCreate,
    ProductOut,
    ProductUpdate,
)

# Every route below is admin-only; the check lives on the router
router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(get_current_admin)])


@router.post("/categories", response_model=CategoryOut, status_code=status.HTTP_201_CREATED)
def create_category(body: CategoryCreate, db: Session = Depends(get_db)):
    return crud.create_category(db, body.model_dump())


@router.patch("/categories/{category_id}", response_model=CategoryOut)
def update_category(category_id: int, body: CategoryUpdate, db: Session = Depends(get_db)):
    category = crud.update_category(db, category_id, body.model_dump(exclude_unset=True))
    if not category:
        raise errors.NotFound("Category not found")
    return category


@router.delete("/categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_category(category_id: int, db: Session = Depends(get_db)):
    """
    Delete a category. Its products are kept without a category.
    """
    if not crud.delete_category(db, category_id):
        raise errors.NotFound("Category not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/products", response_model=ProductOut, status_code=status.HTTP_201_CREATED)
def create_product(body: ProductCreate, db: Session = Depends(get_db)):
    return crud.create_product(db, body.model_dump())


@router.patch("/products/{product_id}", response_model=ProductOut)
def update_product(product_id: int, body: ProductUpdate, db: Session = Depends(get_db)):
    product = crud.update_product(db, product_id, body.model_dump(exclude_unset=True))
    if not product:
        raise errors.NotFound("Product not found")
    return product


@router.delete("/products/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_product(product_id: int, db: Session = Depends(get_db)):
    if not crud.delete_product(db, product_id):
        raise errors.NotFound("Product not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/orders", response_model=OrderListResponse)
def list_all_orders(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    orders = crud.get_orders(db, skip=skip, limit=limit)
    return {"orders": orders, "total": crud.get_order_count(db), "skip": skip, "limit": limit}
