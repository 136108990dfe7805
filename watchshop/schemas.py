"""
schemas.py: request payloads of the storefront API.

Address fields are all optional here; a missing field is reported by
the checkout service as INVALID_ADDRESS naming the field, not as a generic
validation error.
"""

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from watchshop import config
from watchshop.utils.enums import OrderStatus, PaymentStatus, ShippingMethod


class CartItemIn(BaseModel):
    """One cart line as the client last saw it (price is the snapshotted one)."""
    id: int
    name: str = ""
    brand: str = ""
    price: Decimal = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    image_url: Optional[str] = None


class AddressIn(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company: Optional[str] = None
    address_line_1: Optional[str] = None
    address_line_2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None


class CheckoutRequest(BaseModel):
    items: List[CartItemIn] = Field(default_factory=list)
    shipping_address: Optional[AddressIn] = None
    billing_address: Optional[AddressIn] = None
    payment_method: str = "card"
    shipping_method: ShippingMethod = ShippingMethod.STANDARD
    notes: Optional[str] = None
    currency: str = Field(config.DEFAULT_CURRENCY, min_length=3, max_length=3)


class CancelRequest(BaseModel):
    orderId: Optional[int] = None


class StatusChangeRequest(BaseModel):
    status: OrderStatus
    note: Optional[str] = Field(None, max_length=255)


class OrderUpdateRequest(BaseModel):
    payment_status: Optional[PaymentStatus] = None
    tracking_number: Optional[str] = None
    shipping_method: Optional[ShippingMethod] = None
    shipping_amount: Optional[Decimal] = None
    notes: Optional[str] = None
