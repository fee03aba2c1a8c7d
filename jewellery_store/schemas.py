from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=1, description="Password (at most 72 bytes)")


class UserOut(BaseModel):
    id: int
    name: str
    email: EmailStr
    is_admin: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime


# Catalog

class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    slug: Optional[str] = Field(None, max_length=120, description="Derived from the name when omitted")


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    slug: Optional[str] = Field(None, min_length=1, max_length=120)


class CategoryOut(BaseModel):
    id: int
    name: str
    slug: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    stock: int = Field(0, ge=0)
    image_url: Optional[str] = Field(None, max_length=500)
    category_id: Optional[int] = Field(None, gt=0)


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    stock: Optional[int] = Field(None, ge=0)
    image_url: Optional[str] = Field(None, max_length=500)
    category_id: Optional[int] = Field(None, gt=0)


class ProductOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    price: Decimal
    image_url: Optional[str] = None
    category_id: Optional[int] = None
    stock: int
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# Cart

class CartItemAdd(BaseModel):
    product_id: int = Field(..., gt=0)
    quantity: int = Field(1, gt=0, description="Added to the quantity already in the cart")


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., gt=0, description="Replaces the quantity in the cart")


class CartProduct(BaseModel):
    id: int
    name: str
    price: Decimal
    image_url: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class CartItemOut(BaseModel):
    id: int
    product_id: int
    quantity: int
    product: CartProduct
    subtotal: Decimal
    created_at: Optional[datetime] = None


class CartOut(BaseModel):
    items: List[CartItemOut] = []
    total_amount: Decimal


# Orders

class OrderItemOut(BaseModel):
    id: int
    product_id: Optional[int] = None
    product_name: str
    unit_price: Decimal
    quantity: int

    model_config = ConfigDict(from_attributes=True)


class PaymentOut(BaseModel):
    id: int
    external_id: Optional[str] = None
    amount: Decimal
    status: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    id: int
    user_id: Optional[int] = None
    total_amount: Decimal
    payment_status: str
    payment_intent_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: List[OrderItemOut] = []
    payments: List[PaymentOut] = []

    model_config = ConfigDict(from_attributes=True)


class OrderListResponse(BaseModel):
    orders: List[OrderOut]
    total: int
    skip: int
    limit: int


# Payments

class PaymentIntentRequest(BaseModel):
    order_id: int = Field(..., gt=0)


class PaymentIntentResponse(BaseModel):
    order_id: int
    payment_intent_id: str
    client_secret: Optional[str] = None
    amount: Decimal
    currency: str
    status: str
