"""
Checkout Service — Errors

Raised by the pricing, reservation, ledger and workflow layers. The API
layer translates every CheckoutError into an HTTP response using
``status_code`` and ``code``; nothing here knows about FastAPI.
"""


class CheckoutError(Exception):
    status_code = 500
    code = "checkout_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = str(self.args[0])


# ── 404 ──────────────────────────────────────────


class NotFound(CheckoutError):
    """The requested resource does not exist."""

    status_code = 404
    code = "not_found"


class ProductNotFound(NotFound):
    """Product not found."""

    code = "product_not_found"


class OrderNotFound(NotFound):
    """Order not found."""

    code = "order_not_found"


class BuyerNotFound(NotFound):
    """Buyer not found."""

    code = "buyer_not_found"


class DeferredTokenNotFound(NotFound):
    """PIX code not found."""

    code = "pix_code_not_found"


# ── 400 ──────────────────────────────────────────


class ValidationError(CheckoutError):
    """Invalid request."""

    status_code = 400
    code = "validation_error"


class InvalidQuantity(ValidationError):
    """Quantity must be a positive integer."""

    code = "invalid_quantity"


class InvalidPaymentMethod(ValidationError):
    """Unsupported payment method."""

    code = "invalid_payment_method"


class InvalidCardDetails(ValidationError):
    """Invalid card details."""

    code = "invalid_card_details"


class MalformedToken(ValidationError):
    """Malformed PIX code."""

    code = "malformed_pix_code"


# ── Stock / settlement ───────────────────────────


class InsufficientStock(CheckoutError):
    """Insufficient stock."""

    status_code = 409
    code = "insufficient_stock"

    def __init__(self, available: int, requested: int) -> None:
        super().__init__(f"Insufficient stock: requested={requested}, available={available}")
        self.available = available
        self.requested = requested


class ReservationConflict(CheckoutError):
    """Stock is under heavy contention, retry the purchase."""

    status_code = 503
    code = "reservation_conflict"


class InvalidPricingInput(CheckoutError):
    """Could not compute the order total from the product data."""

    code = "invalid_pricing_input"


class InvalidTransition(CheckoutError):
    """Illegal payment status transition."""

    status_code = 409
    code = "invalid_transition"


class PaymentFailed(CheckoutError):
    """Payment could not be settled: insufficient stock at confirmation time."""

    status_code = 409
    code = "payment_failed"


class PaymentExpired(CheckoutError):
    """PIX code expired. Please generate a new one."""

    status_code = 410
    code = "payment_expired"


# ── Identity ─────────────────────────────────────


class AuthenticationRequired(CheckoutError):
    """Access token required."""

    status_code = 401
    code = "authentication_required"


class AccessDenied(CheckoutError):
    """Access denied."""

    status_code = 403
    code = "access_denied"
