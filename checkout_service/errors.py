"""Typed exceptions for the checkout service.

Every error carries an HTTP-style ``status_code`` which the API layer uses to
build the response. The message is safe to show to the customer.
"""

from typing import List, Optional, Tuple


class CheckoutError(Exception):
    """Base exception for all checkout errors."""

    status_code = 500


class EmptyCart(CheckoutError):
    """Raised when checking out or applying a coupon without cart items."""

    status_code = 400

    def __init__(self, user_id: Optional[str] = None):
        self.user_id = user_id
        super().__init__("Cart is empty")


class InvalidCartItem(CheckoutError):
    """Raised when a cart line references a product that no longer exists."""

    status_code = 400

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__("Cart contains an invalid product")


class InsufficientStock(CheckoutError):
    """Raised when a requested quantity exceeds current stock.

    ``shortages`` holds ``(product_name, requested, available)`` for every
    product found short, the first of which names the error.
    """

    status_code = 400

    def __init__(self, product_name: str, requested: int, available: int,
                 shortages: Optional[List[Tuple[str, int, int]]] = None):
        self.product_name = product_name
        self.requested = requested
        self.available = available
        self.shortages = shortages or [(product_name, requested, available)]
        super().__init__(f"Insufficient stock for {product_name}")


class CouponNotApplicable(CheckoutError):
    """Raised when a coupon cannot be applied to a cart."""

    status_code = 400

    def __init__(self, code: str, reason: str, message: str):
        self.code = code
        self.reason = reason
        if reason == "not_found":
            self.status_code = 404
        super().__init__(message)


class ProductNotFound(CheckoutError):
    status_code = 404

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__("Product not found")


class CartNotFound(CheckoutError):
    status_code = 404

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__("Cart not found")


class CartItemNotFound(CheckoutError):
    status_code = 404

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__("Item not found in cart")


class OrderNotFound(CheckoutError):
    status_code = 404

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__("Order not found")


class OrderAccessDenied(CheckoutError):
    status_code = 403

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__("Not authorized")


class DuplicateOrder(CheckoutError):
    """Raised by an order store when (user, payment reference) already has an order."""

    status_code = 409

    def __init__(self, user_id: str, payment_reference: str):
        self.user_id = user_id
        self.payment_reference = payment_reference
        super().__init__(f"Order already exists for payment {payment_reference}")


class OrderNumberConflict(CheckoutError):
    """Raised by an order store when an order number is already taken."""

    status_code = 409

    def __init__(self, order_number: str):
        self.order_number = order_number
        super().__init__(f"Order number already in use: {order_number}")


class PaymentNotCompleted(CheckoutError):
    status_code = 400

    def __init__(self, payment_status: str):
        self.payment_status = payment_status
        super().__init__(f"Payment not completed. Status: {payment_status}")


class PaymentNotConfigured(CheckoutError):
    status_code = 503

    def __init__(self, missing: str):
        self.missing = missing
        super().__init__(f"Payments are not configured on the server. Set {missing}.")


class PaymentOwnershipMismatch(CheckoutError):
    """Raised when a payment intent was created for a different user."""

    status_code = 403

    def __init__(self, payment_reference: str):
        self.payment_reference = payment_reference
        super().__init__("Payment does not belong to this user")


class PaymentAmountMismatch(CheckoutError):
    """Raised when the amount paid differs from the current cart total."""

    status_code = 400

    def __init__(self, paid_cents: int, expected_cents: int):
        self.paid_cents = paid_cents
        self.expected_cents = expected_cents
        super().__init__(
            f"Payment amount {paid_cents / 100:.2f} does not match cart total {expected_cents / 100:.2f}"
        )
