"""
models.py — Data Models for Cart Pricing and Order Assembly

This module defines the documents stored by the checkout service and the request
payloads accepted by its API. It uses Pydantic models to ensure type safety and
automatic validation of incoming data.

Models:
    - Product: Catalog entry, the source of truth for price and stock.
    - Coupon: Named discount rule with eligibility constraints and usage accounting.
    - CartItem / Cart: Per-user mutable pre-checkout state.
    - OrderItem / Order: Immutable purchase snapshot created once per checkout.
    - *Request: Payloads received by the REST API.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_coupon_code(code: str) -> str:
    """Coupon codes are case-insensitive and stored trimmed and upper-case."""
    return code.strip().upper()


class CouponType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class PaymentMethod(str, Enum):
    STRIPE = "stripe"
    COD = "cod"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class ProductImage(BaseModel):
    url: str
    publicId: Optional[str] = None


class Product(BaseModel):
    """
    Represents a catalog product as seen by the checkout core.

    Attributes:
        id (str): Unique product identifier.
        name (str): Display name, captured into order snapshots.
        price (float): Current unit price.
        stock (int): Units available. Never negative.
        images (List[ProductImage]): Product images; the first one is the primary image.
    """
    id: str = Field(default_factory=new_id)
    name: str
    price: float = Field(..., ge=0)
    stock: int = Field(0, ge=0)
    images: List[ProductImage] = Field(default_factory=list)

    @property
    def primary_image(self) -> str:
        return self.images[0].url if self.images else ""


class Coupon(BaseModel):
    """
    Represents a discount coupon.

    Attributes:
        code (str): Unique code, normalized to upper-case.
        type (CouponType): Percentage off the subtotal or a fixed amount off.
        value (float): Percentage (0-100) or fixed amount depending on `type`.
        minSubtotal (float): Minimum qualifying cart subtotal.
        usageLimit (int): Maximum number of orders that may use the coupon. 0 means unlimited.
        usedCount (int): Number of orders that have used the coupon so far.
        expiresAt (datetime, optional): Expiry timestamp.
        isActive (bool): Inactive coupons are never applicable.
    """
    code: str
    type: CouponType
    value: float = Field(..., ge=0)
    minSubtotal: float = Field(0, ge=0)
    usageLimit: int = Field(0, ge=0)
    usedCount: int = Field(0, ge=0)
    expiresAt: Optional[datetime] = None
    isActive: bool = True

    @field_validator("code")
    @classmethod
    def _normalize_code(cls, value: str) -> str:
        return normalize_coupon_code(value)

    @field_validator("expiresAt")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def is_expired(self, now: datetime) -> bool:
        return self.expiresAt is not None and self.expiresAt < now

    @property
    def limit_reached(self) -> bool:
        return self.usageLimit > 0 and self.usedCount >= self.usageLimit


class CartItem(BaseModel):
    """
    A single cart line.

    Attributes:
        product (str): Referenced product ID.
        quantity (int): Units requested. Must be at least 1.
        price (float): Unit price captured when the item was added or last updated.
    """
    product: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0)


class Cart(BaseModel):
    """
    Per-user shopping cart. One cart per user, created lazily and never deleted.

    Totals are derived state; see `pricing.recalc_cart_totals`.
    """
    id: str = Field(default_factory=new_id)
    user: str
    items: List[CartItem] = Field(default_factory=list)
    subtotal: float = 0
    discount: float = 0
    couponCode: Optional[str] = None
    total: float = 0
    updatedAt: datetime = Field(default_factory=utcnow)

    def find_item(self, product_id: str) -> Optional[CartItem]:
        return next((item for item in self.items if item.product == product_id), None)

    def reset(self) -> None:
        """Empties the cart after checkout or on explicit clear."""
        self.items = []
        self.subtotal = 0
        self.discount = 0
        self.total = 0
        self.couponCode = None


class ShippingAddress(BaseModel):
    fullName: str
    street: str
    city: str
    postalCode: str
    country: str
    state: Optional[str] = None
    phone: Optional[str] = None


class OrderItem(BaseModel):
    """
    Snapshot of a purchased line. Decoupled from later product edits.

    Attributes:
        product (str): Product ID at the time of purchase.
        name (str): Product name at the time of purchase.
        price (float): Unit price charged.
        quantity (int): Units purchased.
        image (str): Primary image URL at the time of purchase, or an empty string.
    """
    model_config = ConfigDict(frozen=True)

    product: str
    name: str
    price: float
    quantity: int = Field(..., gt=0)
    image: str = ""


class Order(BaseModel):
    """
    An order created by the order assembly pipeline.

    Items and money fields never change after creation. Only `paymentStatus`
    and `orderStatus` transition afterwards.
    """
    id: str = Field(default_factory=new_id)
    orderNumber: str
    user: str
    items: List[OrderItem]
    shippingAddress: ShippingAddress
    paymentMethod: PaymentMethod
    paymentStatus: PaymentStatus = PaymentStatus.PENDING
    orderStatus: OrderStatus = OrderStatus.PENDING
    subtotal: float
    discount: float = 0
    shippingCost: float = 0
    total: float
    couponCode: Optional[str] = None
    paymentIntentId: Optional[str] = None
    createdAt: datetime = Field(default_factory=utcnow)


# --- API request payloads ---

class AddCartItemRequest(BaseModel):
    productId: str
    quantity: int = Field(1, ge=1)


class UpdateCartItemRequest(BaseModel):
    productId: str
    quantity: int  # <= 0 removes the line


class ApplyCouponRequest(BaseModel):
    code: str = Field(..., min_length=1)


class CreateOrderRequest(BaseModel):
    shippingAddress: ShippingAddress
    paymentMethod: Optional[PaymentMethod] = None


class ConfirmPaymentRequest(BaseModel):
    paymentIntentId: str = Field(..., min_length=1)
    shippingAddress: ShippingAddress


class UpdateOrderStatusRequest(BaseModel):
    orderStatus: Optional[OrderStatus] = None
    paymentStatus: Optional[PaymentStatus] = None
