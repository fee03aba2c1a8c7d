from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import crud, errors
from ..database import get_db
from ..schemas import CategoryOut, ProductOut

router = APIRouter(prefix="/api", tags=["catalog"])


@router.get("/products", response_model=List[ProductOut])
def list_products(
    skip: int = Query(0, ge=0, description="Number of products to skip"),
    limit: int = Query(20, ge=1, le=100, description="Maximum number of products to return"),
    search: Optional[str] = Query(None, description="Search in name and description"),
    category: Optional[str] = Query(None, description="Category slug"),
    in_stock: Optional[bool] = Query(None, description="true: only products with stock, false: only sold out"),
    db: Session = Depends(get_db),
):
    """
    List products ordered by id, with offset pagination
    """
    return crud.get_products(db, skip=skip, limit=limit, search=search, category=category, in_stock=in_stock)


@router.get("/products/{product_id}", response_model=ProductOut)
def get_product(product_id: int, db: Session = Depends(get_db)):
    product = crud.get_product(db, product_id)
    if not product:
        raise errors.NotFound("Product not found")
    return product


@router.get("/categories", response_model=List[CategoryOut])
def list_categories(db: Session = Depends(get_db)):
    return crud.get_categories(db)
