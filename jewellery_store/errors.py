"""Domain errors raised by the CRUD layer and mapped to HTTP responses in ``main``."""
from typing import Any, Dict, Optional


class StoreError(Exception):
    status_code = 500
    code = "store_error"
    message = "Unexpected error"

    def __init__(self, message: Optional[str] = None, **extra: Any):
        self.message = message or self.message
        self.extra = extra
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "error": self.code, **self.extra}


class ValidationError(StoreError):
    status_code = 422
    code = "validation_error"
    message = "Invalid input"


class DuplicateEmail(StoreError):
    status_code = 409
    code = "duplicate_email"
    message = "This email is already registered"


class DuplicateSlug(StoreError):
    status_code = 409
    code = "duplicate_slug"
    message = "A category with this slug already exists"


class InvalidCredentials(StoreError):
    status_code = 401
    code = "invalid_credentials"
    message = "Incorrect email or password"


class InvalidToken(StoreError):
    status_code = 401
    code = "invalid_token"
    message = "Could not validate credentials"


class Forbidden(StoreError):
    status_code = 403
    code = "forbidden"
    message = "Not enough permissions. Admin access required."


class NotFound(StoreError):
    status_code = 404
    code = "not_found"
    message = "Not found"


class EmptyCart(StoreError):
    status_code = 400
    code = "empty_cart"
    message = "Your cart is empty"


class NothingToPay(StoreError):
    status_code = 400
    code = "nothing_to_pay"
    message = "Order total must be greater than 0"


class InsufficientStock(StoreError):
    status_code = 409
    code = "insufficient_stock"
    message = "Insufficient stock"

    def __init__(self, product_id: int, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for product {product_id}. Available: {available}, Requested: {requested}",
            product_id=product_id,
            available=available,
            requested=requested,
        )


class OrderStateError(StoreError):
    status_code = 409
    code = "invalid_order_state"
    message = "The order is not in a state that allows this operation"


class PaymentProcessorError(StoreError):
    status_code = 502
    code = "payment_processor_error"
    message = "Payment processor request failed"


class PersistenceError(StoreError):
    status_code = 503
    code = "persistence_error"
    message = "Database is unavailable"


class WebhookSignatureError(ValidationError):
    status_code = 400
    code = "invalid_webhook_signature"
    message = "Webhook signature verification failed"
