"""
workflow.py — Core Orchestration Logic for Order Assembly

This module contains the pipeline that turns a user's cart into an order.
It coordinates the cart, coupon, product and order stores in a fixed sequence.

Workflow Overview:
1. Idempotency check on the payment reference
2. Reload and re-price the cart
3. Validate stock for every line (no writes yet)
4. Snapshot cart lines into order items
5. In one transaction: create the order, consume the coupon, decrement stock, reset the cart
"""

import logging
import os
import random
import string
import time
from dataclasses import dataclass
from typing import Optional

from .clients import to_cents
from .errors import EmptyCart, InsufficientStock, OrderNotFound, OrderNumberConflict, PaymentAmountMismatch
from .inventory import validate_cart_stock
from .models import (
    Cart,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    ShippingAddress,
)
from .pricing import recalc_cart_totals
from .store import CheckoutStore

ORDER_NUMBER_PREFIX = os.environ.get("ORDER_NUMBER_PREFIX", "ORD")
ORDER_NUMBER_ATTEMPTS = 3

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderResult:
    order: Order
    reused: bool


def generate_order_number(now_ms: Optional[int] = None) -> str:
    """
    Generates a human-readable order number such as ``ORD-1718000000000-X7K2P9Q``.

    Prefix, millisecond timestamp and a 7 character upper-case alphanumeric
    suffix. Numbers sort by creation time; uniqueness is enforced by the store.
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=7))
    return f"{ORDER_NUMBER_PREFIX}-{now_ms}-{suffix}"


def snapshot_items(cart: Cart, products: dict) -> list:
    """Copies cart lines into order items, detached from the live product documents."""
    return [
        OrderItem(
            product=item.product,
            name=products[item.product].name,
            price=item.price,
            quantity=item.quantity,
            image=products[item.product].primary_image,
        )
        for item in cart.items
    ]


def create_order_from_cart(
        store: CheckoutStore,
        user_id: str,
        shipping_address: ShippingAddress,
        payment_method: PaymentMethod = PaymentMethod.STRIPE,
        payment_status: PaymentStatus = PaymentStatus.PENDING,
        order_status: OrderStatus = OrderStatus.PENDING,
        payment_reference: Optional[str] = None,
        paid_amount_cents: Optional[int] = None,
) -> OrderResult:
    """
    Converts the user's cart into an order.

    This function is called by the API for cash-on-delivery checkouts and after a
    card payment has been confirmed by the payment provider.

    Args:
        store (CheckoutStore): Product, cart, coupon and order storage.
        user_id (str): Owner of the cart.
        shipping_address (ShippingAddress): Delivery address copied into the order.
        payment_method (PaymentMethod): How the order is paid.
        payment_status (PaymentStatus): Initial payment status of the order.
        order_status (OrderStatus): Initial order status.
        payment_reference (str, optional): External payment ID (e.g. a payment intent).
            At most one order is created per (user, payment_reference).
        paid_amount_cents (int, optional): Amount captured by the payment provider.
            When given, it must equal the re-priced cart total in cents.

    Returns:
        OrderResult: The order and whether it already existed (`reused=True`).

    Raises:
        EmptyCart: If the user has no cart or it has no items.
        PaymentAmountMismatch: If `paid_amount_cents` differs from the re-priced total.
        InvalidCartItem: If a cart line references a deleted product.
        InsufficientStock: If stock cannot cover a line, checked before any write
            and again atomically while decrementing.

    Workflow Steps:
        Step 1 – Idempotency:
            - Returns the existing order for the payment reference, without any write.

        Step 2 to 4 – Validation (read only):
            - Reloads the cart, re-prices it and persists the fresh totals.
            - Checks stock for all lines before anything else is written.

        Step 5 – Snapshot:
            - Captures name, price, quantity and primary image per line.

        Step 6 to 9 – Commit (one transaction):
            - Creates the order, increments coupon usage once, decrements stock
              and resets the cart. Any failure rolls all four back.
    """
    if not user_id:
        raise ValueError("user_id is required")

    log_prefix = f"[Order: {payment_reference or user_id}]"
    log.info(f"{log_prefix} Starte Bestellerstellung aus Warenkorb.")

    # --- 1. Idempotency ---
    if payment_reference:
        existing = store.find_order_by_payment_reference(user_id, payment_reference)
        if existing:
            log.info(f"{log_prefix} Bestellung {existing.orderNumber} existiert bereits. Keine Änderung.")
            return OrderResult(existing, reused=True)

    # --- 2. Reload cart ---
    cart = store.find_cart(user_id)
    if cart is None or not cart.items:
        log.warning(f"{log_prefix} Abgebrochen: Warenkorb ist leer.")
        raise EmptyCart(user_id)

    # --- 3. Re-price ---
    recalc_cart_totals(cart, store)
    store.save_cart(cart)
    applied_coupon = cart.couponCode

    if paid_amount_cents is not None:
        expected_cents = to_cents(cart.total)
        if expected_cents != paid_amount_cents:
            log.warning(f"{log_prefix} Abgebrochen: bezahlt {paid_amount_cents} Cent, Warenkorb {expected_cents} Cent.")
            raise PaymentAmountMismatch(paid_amount_cents, expected_cents)

    # --- 4. Stock validation ---
    products = validate_cart_stock(store, cart.items)
    log.info(f"{log_prefix} Lagerbestand für {len(cart.items)} Position(en) geprüft.")

    # --- 5. Snapshot ---
    order_items = snapshot_items(cart, products)

    # --- 6. to 9. Commit ---
    with store.transaction():
        if payment_reference:
            # A concurrent confirmation may have won the race since step 1
            existing = store.find_order_by_payment_reference(user_id, payment_reference)
            if existing:
                log.info(f"{log_prefix} Bestellung {existing.orderNumber} parallel erstellt. Keine Änderung.")
                return OrderResult(existing, reused=True)

        order = _persist_order(
            store,
            Order(
                orderNumber=generate_order_number(),
                user=user_id,
                items=order_items,
                shippingAddress=shipping_address,
                paymentMethod=payment_method,
                paymentStatus=payment_status,
                orderStatus=order_status,
                subtotal=cart.subtotal,
                discount=cart.discount,
                shippingCost=0,
                total=cart.total,
                couponCode=applied_coupon,
                paymentIntentId=payment_reference,
            ),
        )
        log_prefix = f"[Order: {order.orderNumber}]"

        if applied_coupon and not store.increment_coupon_usage(applied_coupon):
            log.warning(f"{log_prefix} Coupon {applied_coupon} konnte nicht verbucht werden.")

        for item in cart.items:
            if not store.decrement_stock(item.product, item.quantity):
                # Bestand wurde zwischen Prüfung und Buchung verbraucht
                current = store.find_product(item.product)
                available = current.stock if current else 0
                log.error(f"{log_prefix} Lagerbuchung für {products[item.product].name} fehlgeschlagen. Rollback.")
                raise InsufficientStock(products[item.product].name, item.quantity, available)

        cart.reset()
        store.save_cart(cart)

    log.info(f"{log_prefix} Bestellung erstellt. Summe: {order.total:.2f}, Positionen: {len(order.items)}.")
    return OrderResult(order, reused=False)


def _persist_order(store: CheckoutStore, order: Order) -> Order:
    """Inserts the order, drawing a fresh order number if the generated one is taken."""
    for _ in range(ORDER_NUMBER_ATTEMPTS - 1):
        try:
            return store.create_order(order)
        except OrderNumberConflict:
            log.warning(f"[Order: {order.orderNumber}] Bestellnummer vergeben, erzeuge neue.")
            order = order.model_copy(update={"orderNumber": generate_order_number()})
    return store.create_order(order)


def update_order_status(
        store: CheckoutStore,
        order_id: str,
        order_status: Optional[OrderStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
) -> Order:
    """
    Transitions the status fields of an order. Items and amounts never change.

    Raises:
        OrderNotFound: If no order has the given ID.
    """
    order = store.update_order_status(order_id, order_status=order_status, payment_status=payment_status)
    if order is None:
        raise OrderNotFound(order_id)
    log.info(f"[Order: {order.orderNumber}] Status: {order.orderStatus.value}, Zahlung: {order.paymentStatus.value}.")
    return order
