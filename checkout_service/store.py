"""
store.py — Storage Ports and In-Memory Document Store

The checkout core never talks to a database driver directly. It depends on the
four ports below (products, carts, coupons, orders) plus a `transaction()` unit
of work, and receives an implementation by injection.

`InMemoryStore` implements every port against plain dictionaries of documents.
It is used by the API process for local runs and by the test suite.

Guarantees of `InMemoryStore`:
    • Every read returns a deep copy; callers persist changes through `save_*`.
    • `decrement_stock` and `increment_coupon_usage` are atomic.
    • `decrement_stock` refuses to take stock below zero.
    • `create_order` enforces unique order numbers and at most one order per
      (user, payment reference).
    • Writes inside `transaction()` are rolled back together on any exception.
"""

import copy
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Protocol

from .errors import DuplicateOrder, OrderNumberConflict
from .models import Cart, Coupon, Order, OrderStatus, PaymentStatus, Product, normalize_coupon_code, utcnow

log = logging.getLogger(__name__)


class ProductStore(Protocol):
    def find_product(self, product_id: str) -> Optional[Product]: ...

    def save_product(self, product: Product) -> Product: ...

    def decrement_stock(self, product_id: str, amount: int) -> bool: ...


class CartStore(Protocol):
    def find_cart(self, user_id: str) -> Optional[Cart]: ...

    def save_cart(self, cart: Cart) -> Cart: ...


class CouponStore(Protocol):
    def find_coupon(self, code: str) -> Optional[Coupon]: ...

    def save_coupon(self, coupon: Coupon) -> Coupon: ...

    def increment_coupon_usage(self, code: str) -> bool: ...


class OrderStore(Protocol):
    def find_order(self, order_id: str) -> Optional[Order]: ...

    def find_order_by_payment_reference(self, user_id: str, payment_reference: str) -> Optional[Order]: ...

    def list_orders_for_user(self, user_id: str) -> List[Order]: ...

    def create_order(self, order: Order) -> Order: ...

    def update_order_status(self, order_id: str, order_status: Optional[OrderStatus] = None,
                            payment_status: Optional[PaymentStatus] = None) -> Optional[Order]: ...


class CheckoutStore(ProductStore, CartStore, CouponStore, OrderStore, Protocol):
    """Everything the order assembly pipeline needs, plus a unit of work."""

    def transaction(self) -> Iterator[None]: ...


class InMemoryStore:
    """
    Thread-safe in-memory document store implementing all checkout ports.

    Collections are keyed dictionaries of Pydantic documents. A single re-entrant
    lock serializes writers; a transaction holds it for its whole duration.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._depth = 0
        self.products: Dict[str, Product] = {}
        self.carts: Dict[str, Cart] = {}
        self.coupons: Dict[str, Coupon] = {}
        self.orders: Dict[str, Order] = {}

    # --- Unit of work ---

    @contextmanager
    def transaction(self):
        """
        Runs the enclosed block as one atomic unit of work.

        Nested calls join the outermost transaction. If the block raises, every
        collection is restored to its state at entry and the exception propagates.
        """
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return

            snapshot = self._snapshot()
            self._depth = 1
            try:
                yield
            except BaseException:
                log.warning("Transaktion fehlgeschlagen, Rollback aller Schreibvorgänge.")
                self._restore(snapshot)
                raise
            finally:
                self._depth = 0

    def _snapshot(self):
        return copy.deepcopy((self.products, self.carts, self.coupons, self.orders))

    def _restore(self, snapshot):
        self.products, self.carts, self.coupons, self.orders = snapshot

    # --- Products ---

    def find_product(self, product_id: str) -> Optional[Product]:
        with self._lock:
            product = self.products.get(product_id)
            return product.model_copy(deep=True) if product else None

    def save_product(self, product: Product) -> Product:
        with self._lock:
            self.products[product.id] = product.model_copy(deep=True)
            return product

    def decrement_stock(self, product_id: str, amount: int) -> bool:
        """Atomically takes `amount` units. Returns False if that would go below zero."""
        with self._lock:
            product = self.products.get(product_id)
            if product is None or product.stock < amount:
                return False
            self.products[product_id] = product.model_copy(update={"stock": product.stock - amount})
            return True

    # --- Carts ---

    def find_cart(self, user_id: str) -> Optional[Cart]:
        with self._lock:
            cart = self.carts.get(user_id)
            return cart.model_copy(deep=True) if cart else None

    def save_cart(self, cart: Cart) -> Cart:
        # Last writer wins; carts carry no version.
        with self._lock:
            cart.updatedAt = utcnow()
            self.carts[cart.user] = cart.model_copy(deep=True)
            return cart

    # --- Coupons ---

    def find_coupon(self, code: str) -> Optional[Coupon]:
        with self._lock:
            coupon = self.coupons.get(normalize_coupon_code(code))
            return coupon.model_copy(deep=True) if coupon else None

    def save_coupon(self, coupon: Coupon) -> Coupon:
        with self._lock:
            self.coupons[coupon.code] = coupon.model_copy(deep=True)
            return coupon

    def increment_coupon_usage(self, code: str) -> bool:
        """Atomically adds one use to an active coupon. Returns False if none matched."""
        with self._lock:
            coupon = self.coupons.get(normalize_coupon_code(code))
            if coupon is None or not coupon.isActive:
                return False
            self.coupons[coupon.code] = coupon.model_copy(update={"usedCount": coupon.usedCount + 1})
            return True

    # --- Orders ---

    def find_order(self, order_id: str) -> Optional[Order]:
        with self._lock:
            order = self.orders.get(order_id)
            return order.model_copy(deep=True) if order else None

    def find_order_by_payment_reference(self, user_id: str, payment_reference: str) -> Optional[Order]:
        with self._lock:
            for order in self.orders.values():
                if order.user == user_id and order.paymentIntentId == payment_reference:
                    return order.model_copy(deep=True)
            return None

    def list_orders_for_user(self, user_id: str) -> List[Order]:
        with self._lock:
            orders = [o.model_copy(deep=True) for o in self.orders.values() if o.user == user_id]
        return sorted(orders, key=lambda o: o.createdAt, reverse=True)

    def create_order(self, order: Order) -> Order:
        with self._lock:
            if any(o.orderNumber == order.orderNumber for o in self.orders.values()):
                raise OrderNumberConflict(order.orderNumber)
            if order.paymentIntentId and self.find_order_by_payment_reference(order.user, order.paymentIntentId):
                raise DuplicateOrder(order.user, order.paymentIntentId)
            self.orders[order.id] = order.model_copy(deep=True)
            return order

    def update_order_status(self, order_id: str, order_status: Optional[OrderStatus] = None,
                            payment_status: Optional[PaymentStatus] = None) -> Optional[Order]:
        with self._lock:
            order = self.orders.get(order_id)
            if order is None:
                return None
            update = {}
            if order_status is not None:
                update["orderStatus"] = order_status
            if payment_status is not None:
                update["paymentStatus"] = payment_status
            order = order.model_copy(update=update)
            self.orders[order_id] = order
            return order.model_copy(deep=True)
