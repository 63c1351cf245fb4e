"""
pricing.py — Coupon Evaluation and Cart Totals

Two pieces of pricing logic live here:
    1. `evaluate_coupon` decides whether a coupon applies to a subtotal and how
       large the discount is.
    2. `recalc_cart_totals` recomputes a cart's subtotal, discount and total and
       detaches a coupon that is no longer applicable.

Coupon validity is always checked live against the coupon store, since a coupon
may expire, be deactivated or run out of uses while it sits in a cart.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .models import Cart, Coupon, CouponType, normalize_coupon_code, utcnow
from .store import CouponStore

log = logging.getLogger(__name__)

# Reasons a coupon is not applicable
NOT_FOUND = "not_found"
EXPIRED = "expired"
LIMIT_REACHED = "limit_reached"
BELOW_MINIMUM = "below_minimum"


@dataclass(frozen=True)
class CouponEvaluation:
    applicable: bool
    discount: float = 0
    reason: Optional[str] = None
    coupon: Optional[Coupon] = None

    @property
    def message(self) -> str:
        if self.reason == NOT_FOUND:
            return "Invalid coupon code"
        if self.reason == EXPIRED:
            return "Coupon has expired"
        if self.reason == LIMIT_REACHED:
            return "Coupon usage limit reached"
        if self.reason == BELOW_MINIMUM:
            return f"Minimum subtotal is {self.coupon.minSubtotal:g}"
        return "Coupon applied"


def compute_discount(coupon: Coupon, subtotal: float) -> float:
    """
    Computes the discount a coupon grants on a subtotal.

    The result is clamped to [0, subtotal], so a total can never turn negative.
    """
    if coupon.type == CouponType.PERCENTAGE:
        discount = subtotal * coupon.value / 100
    else:
        discount = coupon.value
    return max(0.0, min(subtotal, discount))


def evaluate_coupon(coupons: CouponStore, code: str, subtotal: float,
                    now: Optional[datetime] = None) -> CouponEvaluation:
    """
    Decides whether a coupon applies to the given subtotal.

    Args:
        coupons (CouponStore): Store used to look the coupon up by normalized code.
        code (str): Coupon code as entered, any case.
        subtotal (float): Cart subtotal to evaluate against.
        now (datetime, optional): Reference time for the expiry check. Defaults to UTC now.

    Returns:
        CouponEvaluation: `applicable=True` with the discount, or `applicable=False`
        with one of NOT_FOUND, EXPIRED, LIMIT_REACHED or BELOW_MINIMUM.
    """
    now = now or utcnow()
    coupon = coupons.find_coupon(normalize_coupon_code(code))

    # Inaktive Coupons werden wie nicht vorhandene behandelt
    if coupon is None or not coupon.isActive:
        return CouponEvaluation(False, reason=NOT_FOUND)
    if coupon.is_expired(now):
        return CouponEvaluation(False, reason=EXPIRED, coupon=coupon)
    if coupon.limit_reached:
        return CouponEvaluation(False, reason=LIMIT_REACHED, coupon=coupon)
    if subtotal < coupon.minSubtotal:
        return CouponEvaluation(False, reason=BELOW_MINIMUM, coupon=coupon)

    return CouponEvaluation(True, discount=compute_discount(coupon, subtotal), coupon=coupon)


def recalc_cart_totals(cart: Cart, coupons: CouponStore, now: Optional[datetime] = None) -> Cart:
    """
    Recomputes subtotal, discount and total of a cart in place.

    Must run after every change to items or coupon and on every cart read. If the
    attached coupon is no longer applicable for any reason it is detached and the
    discount drops to 0. The cart is returned for convenience; persisting it is up
    to the caller.
    """
    cart.subtotal = sum(item.price * item.quantity for item in cart.items)
    cart.discount = 0

    if cart.couponCode:
        evaluation = evaluate_coupon(coupons, cart.couponCode, cart.subtotal, now)
        if evaluation.applicable:
            cart.discount = evaluation.discount
        else:
            log.info(f"[Cart: {cart.user}] Coupon {cart.couponCode} entfernt ({evaluation.reason}).")
            cart.couponCode = None

    cart.total = max(0.0, cart.subtotal - cart.discount)
    return cart
