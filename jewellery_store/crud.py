import logging
import re
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from . import errors
from .auth import create_access_token, get_password_hash, verify_password
from .models import CartItem, Category, Order, OrderItem, Payment, PaymentStatus, Product, User

logger = logging.getLogger(__name__)

# new hashes are argon2; the limit keeps passwords verifiable by the bcrypt
# scheme still accepted for older hashes, which only reads 72 bytes
MAX_PASSWORD_BYTES = 72


# -----------------------------
# Users
# -----------------------------

def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == _normalize_email(email)).first()


def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


def create_user(db: Session, name: str, email: str, password: str, is_admin: bool = False) -> User:
    name = (name or "").strip()
    if not name:
        raise errors.ValidationError("Name is required")
    if not password:
        raise errors.ValidationError("Password is required")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise errors.ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes long")

    email = _normalize_email(email)
    if get_user_by_email(db, email):
        raise errors.DuplicateEmail()

    db_user = User(name=name, email=email, hashed_password=get_password_hash(password), is_admin=is_admin)
    db.add(db_user)
    try:
        db.commit()
    except IntegrityError as e:
        # DB-level unique constraint (race conditions)
        db.rollback()
        raise errors.DuplicateEmail() from e
    db.refresh(db_user)
    logger.info("registered user %s", db_user.id)
    return db_user


def login_user(db: Session, email: str, password: str):
    """Check credentials and issue an access token.

    Returns (user, token, expires_at). Unknown email and wrong password fail
    the same way so the response does not reveal which emails exist.
    """
    user = get_user_by_email(db, email)
    if not user or not verify_password(password, user.hashed_password):
        logger.info("failed login attempt")
        raise errors.InvalidCredentials()
    token, expires_at = create_access_token(user.id, user.is_admin)
    return user, token, expires_at


# -----------------------------
# Catalog
# -----------------------------

def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (value or "").strip().lower()).strip("-")
    return slug


def get_category(db: Session, category_id: int) -> Optional[Category]:
    return db.query(Category).filter(Category.id == category_id).first()


def get_category_by_slug(db: Session, slug: str) -> Optional[Category]:
    return db.query(Category).filter(Category.slug == slug).first()


def get_categories(db: Session) -> List[Category]:
    return db.query(Category).order_by(Category.name, Category.id).all()


def _clean_slug(raw: str) -> str:
    slug = slugify(raw)
    if not slug:
        raise errors.ValidationError("Slug must contain at least one letter or digit")
    return slug


def create_category(db: Session, category_data: dict) -> Category:
    name = (category_data.get("name") or "").strip()
    if not name:
        raise errors.ValidationError("Category name is required")
    slug = _clean_slug(category_data.get("slug") or name)

    if get_category_by_slug(db, slug):
        raise errors.DuplicateSlug(f"Category slug '{slug}' already exists")

    db_category = Category(name=name, slug=slug)
    db.add(db_category)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise errors.DuplicateSlug(f"Category slug '{slug}' already exists") from e
    db.refresh(db_category)
    logger.info("created category %s (%s)", db_category.id, slug)
    return db_category


def update_category(db: Session, category_id: int, update_data: dict) -> Optional[Category]:
    db_category = get_category(db, category_id)
    if not db_category:
        return None

    if update_data.get("name") is not None:
        name = str(update_data["name"]).strip()
        if not name:
            raise errors.ValidationError("Category name is required")
        db_category.name = name

    if update_data.get("slug") is not None:
        slug = _clean_slug(update_data["slug"])
        existing = get_category_by_slug(db, slug)
        if existing and existing.id != category_id:
            raise errors.DuplicateSlug(f"Category slug '{slug}' already exists")
        db_category.slug = slug

    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise errors.DuplicateSlug() from e
    db.refresh(db_category)
    return db_category


def delete_category(db: Session, category_id: int) -> Optional[Category]:
    """Delete a category; its products stay and lose the category reference."""
    db_category = get_category(db, category_id)
    if db_category:
        db.delete(db_category)
        db.commit()
    return db_category


def _validate_product_fields(product_data: dict) -> dict:
    cleaned = dict(product_data)
    if "name" in cleaned:
        name = (cleaned.get("name") or "").strip()
        if not name:
            raise errors.ValidationError("Product name is required")
        cleaned["name"] = name
    if cleaned.get("price") is not None:
        price = Decimal(str(cleaned["price"]))
        if price < 0:
            raise errors.ValidationError("Price must be greater than or equal to 0")
        cleaned["price"] = price.quantize(Decimal("0.01"))
    if cleaned.get("stock") is not None and int(cleaned["stock"]) < 0:
        raise errors.ValidationError("Stock must be greater than or equal to 0")
    return cleaned


def _check_category_exists(db: Session, category_id: Optional[int]) -> None:
    if category_id is not None and not get_category(db, category_id):
        raise errors.NotFound(f"Category with id {category_id} not found")


def create_product(db: Session, product_data: dict) -> Product:
    if "name" not in product_data:
        raise errors.ValidationError("Product name is required")
    if product_data.get("price") is None:
        raise errors.ValidationError("Price is required")
    product_data = _validate_product_fields(product_data)
    if product_data.get("stock") is None:
        product_data["stock"] = 0
    _check_category_exists(db, product_data.get("category_id"))

    db_product = Product(**product_data)
    db.add(db_product)
    db.commit()
    db.refresh(db_product)
    logger.info("created product %s (%s)", db_product.id, db_product.name)
    return db_product


def get_product(db: Session, product_id: int) -> Optional[Product]:
    return db.query(Product).filter(Product.id == product_id).first()


def get_products(
    db: Session,
    skip: int = 0,
    limit: int = 20,
    search: Optional[str] = None,
    category: Optional[str] = None,
    in_stock: Optional[bool] = None,
) -> List[Product]:
    query = db.query(Product)
    if search:
        search_pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Product.name.ilike(search_pattern),
                Product.description.ilike(search_pattern),
            )
        )
    if category:
        query = query.join(Category, Product.category_id == Category.id).filter(Category.slug == category)
    if in_stock is True:
        query = query.filter(Product.stock > 0)
    elif in_stock is False:
        query = query.filter(Product.stock == 0)
    return query.order_by(Product.id).offset(skip).limit(limit).all()


def update_product(db: Session, product_id: int, update_data: dict) -> Optional[Product]:
    db_product = get_product(db, product_id)
    if not db_product:
        return None

    update_data = _validate_product_fields({k: v for k, v in update_data.items() if v is not None})
    _check_category_exists(db, update_data.get("category_id"))

    for key, value in update_data.items():
        setattr(db_product, key, value)
    db.commit()
    db.refresh(db_product)
    logger.info("updated product %s", product_id)
    return db_product


def delete_product(db: Session, product_id: int) -> Optional[Product]:
    db_product = get_product(db, product_id)
    if db_product:
        db.delete(db_product)
        db.commit()
        logger.info("deleted product %s", product_id)
    return db_product


def _merge_quantities(items: Iterable[Tuple[int, int]]) -> Dict[int, int]:
    merged: Dict[int, int] = {}
    for pid, qty in items:
        merged[int(pid)] = merged.get(int(pid), 0) + int(qty)
    return merged


def _lock_products(db: Session, product_ids: Iterable[int]) -> Dict[int, Product]:
    """SELECT ... FOR UPDATE the given products in a stable order to avoid deadlocks."""
    ids = sorted(set(product_ids))
    if not ids:
        return {}
    products = (
        db.query(Product)
        .filter(Product.id.in_(ids))
        .order_by(Product.id)
        .populate_existing()
        .with_for_update()
        .all()
    )
    return {p.id: p for p in products}


# -----------------------------
# Cart
# -----------------------------

def _get_cart_item(db: Session, user_id: int, product_id: int) -> Optional[CartItem]:
    return (
        db.query(CartItem)
        .filter(CartItem.user_id == user_id, CartItem.product_id == product_id)
        .first()
    )


def add_to_cart(db: Session, user_id: int, product_id: int, quantity: int = 1) -> CartItem:
    """Add ``quantity`` of a product to the user's cart.

    A product already in the cart has ``quantity`` added to its row, so the
    cart never holds two rows for the same product.
    """
    if quantity is None or int(quantity) <= 0:
        raise errors.ValidationError("Quantity must be greater than 0")
    if not get_user_by_id(db, user_id):
        raise errors.NotFound("User not found")
    if not get_product(db, product_id):
        raise errors.NotFound(f"Product with id {product_id} not found")

    item = _get_cart_item(db, user_id, product_id)
    if item is None:
        item = CartItem(user_id=user_id, product_id=product_id, quantity=quantity)
        db.add(item)
        try:
            db.commit()
        except IntegrityError:
            # a concurrent request inserted the row first; fall back to incrementing it
            db.rollback()
            item = _get_cart_item(db, user_id, product_id)
            if item is None:
                raise
            item.quantity = CartItem.quantity + quantity
            db.commit()
    else:
        item.quantity = CartItem.quantity + quantity
        db.commit()

    db.refresh(item)
    return item


def update_cart_item(db: Session, user_id: int, item_id: int, quantity: int) -> CartItem:
    if quantity is None or int(quantity) <= 0:
        raise errors.ValidationError("Quantity must be greater than 0")
    item = db.query(CartItem).filter(CartItem.id == item_id, CartItem.user_id == user_id).first()
    if item is None:
        raise errors.NotFound("This item is not in your cart")
    item.quantity = quantity
    db.commit()
    db.refresh(item)
    return item


def get_cart(db: Session, user_id: int) -> List[CartItem]:
    return (
        db.query(CartItem)
        .options(joinedload(CartItem.product))
        .filter(CartItem.user_id == user_id)
        .order_by(CartItem.created_at, CartItem.id)
        .all()
    )


def cart_total(items: Iterable[CartItem]) -> Decimal:
    return sum((Decimal(str(i.product.price)) * i.quantity for i in items), Decimal("0.00"))


def remove_from_cart(db: Session, user_id: int, item_id: int) -> None:
    deleted = (
        db.query(CartItem)
        .filter(CartItem.id == item_id, CartItem.user_id == user_id)
        .delete(synchronize_session=False)
    )
    if not deleted:
        db.rollback()
        raise errors.NotFound("This item is not in your cart")
    db.commit()


# -----------------------------
# Orders
# -----------------------------

def create_order(db: Session, user_id: int) -> Order:
    """Turn the user's cart into a pending order.

    Stock is checked under row locks but only decremented once the payment
    succeeds. The cart is left untouched.
    """
    cart = db.query(CartItem).filter(CartItem.user_id == user_id).order_by(CartItem.id).all()
    if not cart:
        raise errors.EmptyCart()

    quantities = _merge_quantities((i.product_id, i.quantity) for i in cart)

    try:
        products = _lock_products(db, quantities.keys())
        for pid in sorted(quantities):
            product = products.get(pid)
            if product is None:
                raise errors.NotFound(f"Product with id {pid} not found")
            if product.stock < quantities[pid]:
                raise errors.InsufficientStock(pid, product.stock, quantities[pid])

        total_amount = sum(
            (Decimal(str(products[pid].price)) * qty for pid, qty in quantities.items()),
            Decimal("0.00"),
        )

        db_order = Order(user_id=user_id, total_amount=total_amount, payment_status=PaymentStatus.PENDING)
        db.add(db_order)
        db.flush()  # Get order ID without committing

        for pid, qty in quantities.items():
            product = products[pid]
            db.add(
                OrderItem(
                    order_id=db_order.id,
                    product_id=pid,
                    product_name=product.name,
                    unit_price=product.price,
                    quantity=qty,
                )
            )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(db_order)
    logger.info("created order %s for user %s, total %s", db_order.id, user_id, db_order.total_amount)
    return db_order


def get_order(db: Session, order_id: int) -> Optional[Order]:
    return db.query(Order).filter(Order.id == order_id).first()


def get_order_by_payment_intent(db: Session, payment_intent_id: str) -> Optional[Order]:
    return db.query(Order).filter(Order.payment_intent_id == payment_intent_id).first()


def get_orders(db: Session, skip: int = 0, limit: int = 100) -> List[Order]:
    return db.query(Order).order_by(Order.id.desc()).offset(skip).limit(limit).all()


def get_orders_by_user(db: Session, user_id: int, skip: int = 0, limit: int = 100) -> List[Order]:
    return (
        db.query(Order)
        .filter(Order.user_id == user_id)
        .order_by(Order.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )


def get_order_count(db: Session) -> int:
    return db.query(func.count(Order.id)).scalar() or 0


def get_user_order_count(db: Session, user_id: int) -> int:
    return db.query(func.count(Order.id)).filter(Order.user_id == user_id).scalar() or 0


def set_payment_intent(db: Session, order: Order, payment_intent_id: str) -> Order:
    if order.payment_status != PaymentStatus.PENDING:
        raise errors.OrderStateError(f"Order {order.id} is already {order.payment_status}")
    order.payment_intent_id = payment_intent_id
    db.commit()
    db.refresh(order)
    return order


def confirm_payment(
    db: Session,
    order_id: int,
    outcome: str,
    external_id: Optional[str] = None,
) -> Tuple[Order, bool]:
    """Move a pending order to its terminal payment status.

    On success the ordered quantities leave stock and the matching cart rows
    are removed, all in one transaction. Returns (order, changed); replaying
    the outcome an order already has changes nothing and returns changed=False.
    """
    if outcome not in PaymentStatus.TERMINAL:
        raise errors.ValidationError(f"Unknown payment outcome: {outcome}")

    try:
        order = (
            db.query(Order)
            .filter(Order.id == order_id)
            .populate_existing()
            .with_for_update()
            .first()
        )
        if order is None:
            raise errors.NotFound(f"Order with id {order_id} not found")

        if order.payment_status == outcome:
            db.rollback()
            logger.info("order %s already %s, ignoring repeated confirmation", order_id, outcome)
            return order, False

        if order.payment_status != PaymentStatus.PENDING:
            raise errors.OrderStateError(
                f"Order {order_id} is already {order.payment_status} and cannot become {outcome}"
            )

        if outcome == PaymentStatus.SUCCEEDED:
            quantities = _merge_quantities(
                (i.product_id, i.quantity) for i in order.items if i.product_id is not None
            )
            products = _lock_products(db, quantities.keys())
            for pid in sorted(quantities):
                product = products.get(pid)
                if product is not None and product.stock < quantities[pid]:
                    raise errors.InsufficientStock(pid, product.stock, quantities[pid])
            for pid, qty in quantities.items():
                if pid in products:
                    products[pid].stock -= qty

            if order.user_id is not None and quantities:
                (
                    db.query(CartItem)
                    .filter(CartItem.user_id == order.user_id, CartItem.product_id.in_(list(quantities)))
                    .delete(synchronize_session=False)
                )

        db.add(
            Payment(
                order_id=order.id,
                external_id=external_id or order.payment_intent_id,
                amount=order.total_amount,
                status=outcome,
            )
        )
        order.payment_status = outcome
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info("order %s payment %s", order_id, outcome)
    return order, True
