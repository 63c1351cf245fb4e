"""
main.py — FastAPI Entry Point for the Checkout Service

This module provides the REST API for cart management, order creation and card
payment confirmation. Route handlers stay thin: they resolve the current user,
call into `cart` / `workflow` and translate typed errors into responses.

Responsibilities:
    • Cart read and mutation endpoints, including coupons
    • Order creation for non-card payments and order lookup
    • Payment intent creation and payment confirmation (idempotent per intent)
    • Provide system health information

Authentication is handled upstream; the authenticated user arrives in the
`X-User-Id` header and admins additionally carry `X-User-Role: admin`.
"""

from typing import Optional

import httpx
from fastapi import Depends, FastAPI, Header, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from . import cart as carts
from .clients import PAYMENT_CURRENCY, PaymentClient, to_cents
from .errors import (
    CheckoutError,
    EmptyCart,
    OrderAccessDenied,
    OrderNotFound,
    PaymentNotCompleted,
    PaymentOwnershipMismatch,
)
from .logging_config import get_logger, setup_logging
from .models import (
    AddCartItemRequest,
    ApplyCouponRequest,
    ConfirmPaymentRequest,
    CreateOrderRequest,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    UpdateCartItemRequest,
    UpdateOrderStatusRequest,
)
from .store import InMemoryStore
from .workflow import create_order_from_cart, update_order_status

# Initialization
# Configure logging and initialize FastAPI app
setup_logging()
log = get_logger(__name__)
app = FastAPI(title="Checkout Service")
app.state.store = InMemoryStore()


# --- Dependencies ---

def get_store(request: Request):
    return request.app.state.store


def get_payment_client():
    client = PaymentClient()
    try:
        yield client
    finally:
        client.close()


def get_current_user(x_user_id: str = Header(..., alias="X-User-Id")) -> str:
    return x_user_id


def is_admin(x_user_role: Optional[str] = Header(None, alias="X-User-Role")) -> bool:
    return x_user_role == "admin"


# --- Error translation ---

@app.exception_handler(CheckoutError)
async def checkout_error_handler(request: Request, exc: CheckoutError):
    return JSONResponse(status_code=exc.status_code, content={"message": str(exc)})


@app.exception_handler(httpx.TimeoutException)
async def payment_timeout_handler(request: Request, exc: httpx.TimeoutException):
    return JSONResponse(status_code=504, content={"message": "Payment provider timed out"})


@app.exception_handler(httpx.HTTPStatusError)
async def payment_error_handler(request: Request, exc: httpx.HTTPStatusError):
    if exc.response.status_code == 404 and exc.request.method == "GET":
        return JSONResponse(status_code=404, content={"message": "Payment intent not found"})
    return JSONResponse(status_code=502, content={"message": "Payment provider error"})


@app.on_event("startup")
def on_startup():
    log.info("Checkout-Service startet...")


# --- Cart ---

@app.get("/api/cart")
def get_cart(user_id: str = Depends(get_current_user), store=Depends(get_store)):
    return carts.get_cart(store, user_id)


@app.post("/api/cart")
def add_to_cart(body: AddCartItemRequest, user_id: str = Depends(get_current_user), store=Depends(get_store)):
    return carts.add_item(store, user_id, body.productId, body.quantity)


@app.put("/api/cart")
def update_cart_item(body: UpdateCartItemRequest, user_id: str = Depends(get_current_user),
                     store=Depends(get_store)):
    return carts.update_item(store, user_id, body.productId, body.quantity)


@app.post("/api/cart/coupon")
def apply_coupon(body: ApplyCouponRequest, user_id: str = Depends(get_current_user), store=Depends(get_store)):
    return carts.apply_coupon(store, user_id, body.code)


@app.delete("/api/cart/coupon")
def remove_coupon(user_id: str = Depends(get_current_user), store=Depends(get_store)):
    return carts.remove_coupon(store, user_id)


@app.delete("/api/cart/{product_id}")
def remove_from_cart(product_id: str, user_id: str = Depends(get_current_user), store=Depends(get_store)):
    return carts.remove_item(store, user_id, product_id)


@app.delete("/api/cart")
def clear_cart(user_id: str = Depends(get_current_user), store=Depends(get_store)):
    return carts.clear_cart(store, user_id)


# --- Orders ---

@app.post("/api/orders", status_code=201)
def create_order(body: CreateOrderRequest, user_id: str = Depends(get_current_user), store=Depends(get_store)):
    """
    Creates an order for payment methods settled outside the card flow (e.g. cash on delivery).

    Card payments must go through `/api/payments/stripe/confirm`, which only creates
    the order once the provider reports the payment as succeeded.
    """
    if body.paymentMethod is None or body.paymentMethod == PaymentMethod.STRIPE:
        raise HTTPException(status_code=400, detail="Use /api/payments/stripe/confirm to create card-paid orders")

    result = create_order_from_cart(
        store,
        user_id,
        body.shippingAddress,
        payment_method=body.paymentMethod,
        payment_status=PaymentStatus.COMPLETED,
        order_status=OrderStatus.CONFIRMED,
    )
    return result.order


@app.get("/api/orders/my")
def get_my_orders(user_id: str = Depends(get_current_user), store=Depends(get_store)):
    return store.list_orders_for_user(user_id)


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, user_id: str = Depends(get_current_user), admin: bool = Depends(is_admin),
              store=Depends(get_store)):
    order = store.find_order(order_id)
    if order is None:
        raise OrderNotFound(order_id)
    if order.user != user_id and not admin:
        raise OrderAccessDenied(order_id)
    return order


@app.put("/api/orders/{order_id}/status")
def set_order_status(order_id: str, body: UpdateOrderStatusRequest, admin: bool = Depends(is_admin),
                     store=Depends(get_store)):
    if not admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return update_order_status(store, order_id, order_status=body.orderStatus, payment_status=body.paymentStatus)


# --- Payments ---

@app.post("/api/payments/stripe/payment-intent")
def create_payment_intent(user_id: str = Depends(get_current_user), store=Depends(get_store),
                          payments: PaymentClient = Depends(get_payment_client)):
    """
    Creates a payment intent for the current cart total.

    Returns:
        dict: `clientSecret` for the storefront and `paymentIntentId` to confirm with later.
    """
    cart = store.find_cart(user_id)
    if cart is None or not cart.items:
        raise EmptyCart(user_id)

    cart = carts.get_cart(store, user_id)
    amount = to_cents(cart.total)
    if amount <= 0:
        raise HTTPException(status_code=400, detail="Cart total is invalid")

    intent = payments.create_payment_intent(
        amount, PAYMENT_CURRENCY, metadata={"userId": user_id, "cartId": cart.id}
    )
    log.info(f"[Payment: {intent['id']}] Payment Intent über {amount} Cent erstellt.")
    return {"clientSecret": intent["client_secret"], "paymentIntentId": intent["id"]}


@app.post("/api/payments/stripe/confirm")
def confirm_payment(body: ConfirmPaymentRequest, response: Response, user_id: str = Depends(get_current_user),
                    store=Depends(get_store), payments: PaymentClient = Depends(get_payment_client)):
    """
    Creates the order for a succeeded card payment.

    Safe to retry: repeated calls with the same payment intent return the same
    order with `reused=True` and status 200 instead of 201.

    The intent must have been created for the calling user, and a new order is
    only created if the amount paid equals the current cart total.
    """
    intent = payments.retrieve_payment_intent(body.paymentIntentId)
    if intent.get("status") != "succeeded":
        raise PaymentNotCompleted(intent.get("status", "unknown"))
    if intent.get("metadata", {}).get("userId") != user_id:
        log.warning(f"[Payment: {body.paymentIntentId}] Intent gehört nicht zu Benutzer {user_id}.")
        raise PaymentOwnershipMismatch(body.paymentIntentId)

    result = create_order_from_cart(
        store,
        user_id,
        body.shippingAddress,
        payment_method=PaymentMethod.STRIPE,
        payment_status=PaymentStatus.COMPLETED,
        order_status=OrderStatus.CONFIRMED,
        payment_reference=body.paymentIntentId,
        paid_amount_cents=intent.get("amount", 0),
    )
    response.status_code = 200 if result.reused else 201
    return {"order": result.order, "reused": result.reused}


# Health Check Endpoint
@app.get("/health")
def health_check():
    """
    Simple health check endpoint.

    Returns:
        dict: A basic JSON object indicating service availability.
    """
    return {"status": "ok"}
