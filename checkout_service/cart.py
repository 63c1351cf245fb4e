"""
cart.py — Cart Operations

Every operation loads the user's cart, applies the change, re-prices the cart
via `recalc_cart_totals` and persists it. Prices are captured per line when the
line is added or updated; coupon validity is revalidated on every call.
"""

import logging

from .errors import CartItemNotFound, CartNotFound, CouponNotApplicable, EmptyCart
from .inventory import check_availability
from .models import Cart, CartItem, normalize_coupon_code
from .pricing import evaluate_coupon, recalc_cart_totals
from .store import CheckoutStore

log = logging.getLogger(__name__)


def _load_cart(store: CheckoutStore, user_id: str) -> Cart:
    cart = store.find_cart(user_id)
    if cart is None:
        raise CartNotFound(user_id)
    return cart


def _reprice_and_save(store: CheckoutStore, cart: Cart) -> Cart:
    recalc_cart_totals(cart, store)
    return store.save_cart(cart)


def get_cart(store: CheckoutStore, user_id: str) -> Cart:
    """Returns the user's cart, creating an empty one on first access."""
    cart = store.find_cart(user_id)
    if cart is None:
        log.info(f"[Cart: {user_id}] Neuer Warenkorb angelegt.")
        return store.save_cart(Cart(user=user_id))
    return _reprice_and_save(store, cart)


def add_item(store: CheckoutStore, user_id: str, product_id: str, quantity: int = 1) -> Cart:
    """
    Adds a product to the cart, merging with an existing line for the same product.

    Stock is checked for the combined quantity. The line's price is refreshed
    to the product's current price.

    Raises:
        ProductNotFound: If the product does not exist.
        InsufficientStock: If stock cannot cover the existing plus requested quantity.
    """
    cart = store.find_cart(user_id) or Cart(user=user_id)
    existing = cart.find_item(product_id)
    already_in_cart = existing.quantity if existing else 0

    product = check_availability(store, product_id, quantity, already_in_cart)

    if existing:
        existing.quantity += quantity
        existing.price = product.price
    else:
        cart.items.append(CartItem(product=product_id, quantity=quantity, price=product.price))

    log.info(f"[Cart: {user_id}] {quantity}x {product.name} hinzugefügt.")
    return _reprice_and_save(store, cart)


def update_item(store: CheckoutStore, user_id: str, product_id: str, quantity: int) -> Cart:
    """
    Sets the absolute quantity of a cart line. A quantity of 0 or less removes it.

    Raises:
        CartNotFound / CartItemNotFound: If there is nothing to update.
        ProductNotFound / InsufficientStock: From the stock check on the new quantity.
    """
    cart = _load_cart(store, user_id)
    item = cart.find_item(product_id)
    if item is None:
        raise CartItemNotFound(product_id)

    if quantity <= 0:
        cart.items = [i for i in cart.items if i.product != product_id]
    else:
        product = check_availability(store, product_id, quantity)
        item.quantity = quantity
        item.price = product.price

    return _reprice_and_save(store, cart)


def remove_item(store: CheckoutStore, user_id: str, product_id: str) -> Cart:
    cart = _load_cart(store, user_id)
    cart.items = [i for i in cart.items if i.product != product_id]
    return _reprice_and_save(store, cart)


def clear_cart(store: CheckoutStore, user_id: str) -> Cart:
    cart = _load_cart(store, user_id)
    cart.reset()
    return store.save_cart(cart)


def apply_coupon(store: CheckoutStore, user_id: str, code: str) -> Cart:
    """
    Attaches a coupon to the cart.

    Applying a coupon never consumes a use; usage is counted when an order is
    created. If the coupon is not applicable the cart is saved without any
    coupon and CouponNotApplicable is raised.

    Raises:
        EmptyCart: If the cart has no items.
        CouponNotApplicable: Not found, inactive, expired, exhausted or below the minimum subtotal.
    """
    code = normalize_coupon_code(code)
    cart = store.find_cart(user_id)
    if cart is None or not cart.items:
        raise EmptyCart(user_id)

    recalc_cart_totals(cart, store)
    evaluation = evaluate_coupon(store, code, cart.subtotal)
    if not evaluation.applicable:
        log.info(f"[Cart: {user_id}] Coupon {code} abgelehnt ({evaluation.reason}).")
        cart.couponCode = None
        _reprice_and_save(store, cart)
        raise CouponNotApplicable(code, evaluation.reason, evaluation.message)

    cart.couponCode = code
    log.info(f"[Cart: {user_id}] Coupon {code} angewendet.")
    return _reprice_and_save(store, cart)


def remove_coupon(store: CheckoutStore, user_id: str) -> Cart:
    cart = _load_cart(store, user_id)
    cart.couponCode = None
    return _reprice_and_save(store, cart)
