"""
inventory.py — Inventory Guard

Validates requested quantities against current product stock. Applied when an
item is added to the cart, when a cart line is updated and, across the whole
cart, right before an order is committed.
"""

import logging
from typing import Dict, Iterable

from .errors import InsufficientStock, InvalidCartItem, ProductNotFound
from .models import CartItem, Product
from .store import ProductStore

log = logging.getLogger(__name__)


def check_availability(products: ProductStore, product_id: str, requested_quantity: int,
                       already_in_cart: int = 0) -> Product:
    """
    Checks that a product can cover the requested quantity.

    Args:
        products (ProductStore): Source of current stock.
        product_id (str): Product to check.
        requested_quantity (int): Units being requested now.
        already_in_cart (int): Units of the same product already in the cart,
            added on top of `requested_quantity`.

    Returns:
        Product: The current product document.

    Raises:
        ProductNotFound: If the product does not exist.
        InsufficientStock: If stock is lower than the total quantity.
    """
    product = products.find_product(product_id)
    if product is None:
        raise ProductNotFound(product_id)

    needed = requested_quantity + already_in_cart
    if product.stock < needed:
        log.warning(f"Lagerbestand zu gering für {product.name}: angefragt {needed}, verfügbar {product.stock}.")
        raise InsufficientStock(product.name, needed, product.stock)
    return product


def validate_cart_stock(products: ProductStore, items: Iterable[CartItem]) -> Dict[str, Product]:
    """
    Checks every cart line against current stock before anything is written.

    All lines are checked. A missing product fails immediately with
    InvalidCartItem; otherwise every shortage found is reported in a single
    InsufficientStock naming the first short product.

    Returns:
        Dict[str, Product]: Current product documents keyed by product ID.
    """
    resolved: Dict[str, Product] = {}
    shortages = []

    for item in items:
        product = products.find_product(item.product)
        if product is None:
            raise InvalidCartItem(item.product)
        resolved[product.id] = product
        if product.stock < item.quantity:
            shortages.append((product.name, item.quantity, product.stock))

    if shortages:
        name, requested, available = shortages[0]
        raise InsufficientStock(name, requested, available, shortages=shortages)
    return resolved
