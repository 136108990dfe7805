"""
checkout.py: order creation and customer cancellation.

The only place where the order ledger and the catalog stock are written
together. Both workflows run in one database transaction with the touched
product rows locked (see services.stock); any failure rolls the whole
transaction back before the error reaches the caller.

Workflow of place_order():
    1. validate the request shape (no I/O)
    2. lock the products and re-read their stock inside the transaction
    3. reject the whole order if any line cannot be served
    4. price the cart
    5. write order, shipping + billing address, items, stock decrements
    6. commit
"""

import logging
import time
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from watchshop import config
from watchshop.db import apply_statement_timeout
from watchshop.errors import CancellationError, CheckoutError, ErrorKind
from watchshop.models.catalog import Product
from watchshop.models.order import Order, OrderAddress, OrderItem
from watchshop.models.order_status_log import OrderStatusLog
from watchshop.schemas import AddressIn, CartItemIn
from watchshop.services.pricing import calculate_totals, to_money
from watchshop.services.stock import decrement_stock, lock_products, restore_stock
from watchshop.utils.enums import (
    CANCELLABLE_STATUSES,
    AddressType,
    OrderStatus,
    PaymentStatus,
    ShippingMethod,
)
from watchshop.utils.tokens import make_order_number

log = logging.getLogger(__name__)

REQUIRED_ADDRESS_FIELDS = (
    "first_name",
    "last_name",
    "address_line_1",
    "city",
    "state",
    "postal_code",
    "country",
)
OPTIONAL_ADDRESS_FIELDS = ("company", "address_line_2", "phone")

AddressLike = Union[AddressIn, Mapping[str, Any]]
CartItemLike = Union[CartItemIn, Mapping[str, Any]]


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OrderConfirmation:
    id: int
    order_number: str
    total_amount: Decimal
    status: OrderStatus
    payment_status: PaymentStatus
    currency: str
    items_count: int

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "total_amount": float(self.total_amount),
            "status": self.status.value,
            "payment_status": self.payment_status.value,
            "currency": self.currency,
            "items_count": self.items_count,
        }


@dataclass(frozen=True)
class CancellationResult:
    order_id: int
    order_number: str
    restored_items: int


@dataclass(frozen=True)
class ProductSnapshot:
    """What an order item remembers about the product, whatever the catalog does later."""
    product_id: int
    name: str
    brand: Optional[str]
    reference: Optional[str]
    image: Optional[str]
    unit_price: Decimal

    @classmethod
    def capture(cls, line: CartItemIn, product: Product) -> "ProductSnapshot":
        brand = line.brand or (product.brand.name if product.brand else None)
        return cls(
            product_id=product.id,
            name=line.name or product.name,
            brand=brand or None,
            reference=product.reference_number,
            image=line.image_url or product.image_url,
            unit_price=to_money(line.price),
        )

    def to_order_item(self, order_id: int, quantity: int) -> OrderItem:
        return OrderItem(
            order_id=order_id,
            product_id=self.product_id,
            product_name=self.name,
            product_brand=self.brand,
            product_reference=self.reference,
            product_image=self.image,
            quantity=quantity,
            unit_price=self.unit_price,
            total_price=self.unit_price * quantity,
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TransactionTimeout(Exception):
    pass


class _Deadline:
    def __init__(self, seconds: float):
        self.seconds = seconds
        self.expires_at = time.monotonic() + seconds

    def check(self, step: str) -> None:
        if time.monotonic() > self.expires_at:
            raise TransactionTimeout("transaction exceeded {0}s at {1}".format(self.seconds, step))


def _field(obj: AddressLike, name: str) -> Optional[str]:
    value = obj.get(name) if isinstance(obj, Mapping) else getattr(obj, name, None)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def validate_address(address: Optional[AddressLike], label: str) -> Dict[str, Optional[str]]:
    """Returns the cleaned address fields or raises INVALID_ADDRESS naming the first gap."""
    if address is None:
        raise CheckoutError(
            ErrorKind.INVALID_ADDRESS,
            "{0} address is required".format(label),
            address=label.lower(),
            field=None,
        )
    data = {f: _field(address, f) for f in REQUIRED_ADDRESS_FIELDS + OPTIONAL_ADDRESS_FIELDS}
    for f in REQUIRED_ADDRESS_FIELDS:
        if not data[f]:
            raise CheckoutError(
                ErrorKind.INVALID_ADDRESS,
                "{0} {1} is required".format(label, f.replace("_", " ")),
                address=label.lower(),
                field=f,
            )
    return data


def _coerce_items(items: Optional[Iterable[CartItemLike]]) -> List[CartItemIn]:
    lines: List[CartItemIn] = []
    for raw in items or []:
        if isinstance(raw, CartItemIn):
            line = raw
        else:
            try:
                line = CartItemIn.model_validate(raw)
            except ValidationError as e:
                raise CheckoutError(ErrorKind.INVALID_ITEM, "Invalid cart item: {0}".format(e.errors()[0]["msg"]))
        if line.quantity < 1:
            raise CheckoutError(ErrorKind.INVALID_ITEM, "Quantity must be at least 1", product_id=line.id)
        if line.price < 0:
            raise CheckoutError(ErrorKind.INVALID_ITEM, "Price must not be negative", product_id=line.id)
        lines.append(line)
    return lines


def _out_of_stock(lines: List[CartItemIn], products: Dict[int, Product]) -> List[str]:
    # repeated lines of one product compete for the same stock
    requested: Dict[int, int] = defaultdict(int)
    for line in lines:
        requested[line.id] += line.quantity

    problems: List[str] = []
    seen = set()
    for line in lines:
        if line.id in seen:
            continue
        seen.add(line.id)
        p = products.get(line.id)
        if p is None:
            problems.append("{0} (not found)".format(line.name or "Product #{0}".format(line.id)))
        elif not p.is_active:
            problems.append("{0} (no longer available)".format(p.name))
        elif int(p.stock_quantity) < requested[line.id]:
            problems.append("{0} (only {1} available)".format(p.name, p.stock_quantity))
    return problems


def restore_order_stock(db: Session, order: Order, note: str) -> int:
    """Puts every item of the order back on stock; returns how many items were restored."""
    products = lock_products(db, [it.product_id for it in order.items])
    restored = 0
    for it in order.items:
        p = products.get(it.product_id)
        if p is None:
            log.warning(f"[Order: {order.order_number}] product {it.product_id} is gone, stock not restored")
            continue
        restore_stock(db, p, it.quantity, order_id=order.id, note=note)
        restored += 1
    return restored


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------

def place_order(
    db: Session,
    user_id: Optional[int],
    items: Optional[Iterable[CartItemLike]],
    shipping_address: Optional[AddressLike],
    billing_address: Optional[AddressLike] = None,
    payment_method: str = "card",
    shipping_method: Union[ShippingMethod, str] = ShippingMethod.STANDARD,
    notes: Optional[str] = None,
    currency: str = config.DEFAULT_CURRENCY,
    discount_rate: Union[Decimal, int, str] = 0,
    timeout: Optional[float] = None,
) -> OrderConfirmation:
    """
    Creates an order from a cart, atomically.

    Raises:
        CheckoutError: NOT_AUTHENTICATED, EMPTY_CART, INVALID_ITEM, INVALID_ADDRESS,
            INVALID_SHIPPING_METHOD (before any I/O), OUT_OF_STOCK (transaction
            aborted, nothing written) or ORDER_CREATION_FAILED (rolled back).
    """
    if not user_id:
        raise CheckoutError(ErrorKind.NOT_AUTHENTICATED, "Not authenticated")

    lines = _coerce_items(items)
    if not lines:
        raise CheckoutError(ErrorKind.EMPTY_CART, "No items in cart")

    shipping = validate_address(shipping_address, "Shipping")
    billing = validate_address(billing_address, "Billing") if billing_address is not None else dict(shipping)

    try:
        method = ShippingMethod(shipping_method)
    except ValueError:
        raise CheckoutError(
            ErrorKind.INVALID_SHIPPING_METHOD,
            "Unknown shipping method: {0}".format(shipping_method),
        )

    deadline = _Deadline(timeout if timeout is not None else config.CHECKOUT_TIMEOUT_SECONDS)
    log_prefix = f"[User: {user_id}]"
    log.info(f"{log_prefix} Checkout started: {len(lines)} line(s), shipping={method.value}")

    try:
        apply_statement_timeout(db, deadline.seconds)

        # --- 1. stock, re-read under lock ---
        products = lock_products(db, [line.id for line in lines])
        problems = _out_of_stock(lines, products)
        if problems:
            log.warning(f"{log_prefix} Checkout rejected, out of stock: {problems}")
            raise CheckoutError(
                ErrorKind.OUT_OF_STOCK,
                "Some items are out of stock",
                out_of_stock_items=problems,
            )
        deadline.check("stock validation")

        # --- 2. totals ---
        totals = calculate_totals(
            ((line.price, line.quantity) for line in lines),
            shipping_method=method,
            discount_rate=discount_rate,
        )

        # --- 3. order header ---
        order_number = make_order_number()
        log_prefix = f"[Order: {order_number}]"
        order = Order(
            order_number=order_number,
            user_id=int(user_id),
            status=OrderStatus.PENDING,
            subtotal=totals.subtotal,
            tax_amount=totals.tax_amount,
            shipping_amount=totals.shipping_amount,
            discount_amount=totals.discount_amount,
            total_amount=totals.total_amount,
            currency=currency.upper(),
            payment_status=PaymentStatus.PENDING,
            payment_method=payment_method or "card",
            shipping_method=method.value,
            notes=(notes or "").strip() or None,
        )
        db.add(order)
        db.flush()

        # --- 4. addresses ---
        db.add(OrderAddress(order_id=order.id, type=AddressType.SHIPPING, **shipping))
        db.add(OrderAddress(order_id=order.id, type=AddressType.BILLING, **billing))

        # --- 5. items + stock ---
        for line in lines:
            product = products[line.id]
            snapshot = ProductSnapshot.capture(line, product)
            db.add(snapshot.to_order_item(order.id, line.quantity))
            db.flush()
            decrement_stock(db, product, line.quantity, order_id=order.id)
        db.flush()
        deadline.check("ledger writes")

        confirmation = OrderConfirmation(
            id=order.id,
            order_number=order_number,
            total_amount=totals.total_amount,
            status=OrderStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            currency=order.currency,
            items_count=len(lines),
        )
        db.commit()
    except CheckoutError:
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        log.error(f"{log_prefix} Order creation failed, transaction rolled back: {e}", exc_info=True)
        raise CheckoutError(
            ErrorKind.ORDER_CREATION_FAILED,
            "Failed to create order. Please try again.",
        ) from e

    log.info(f"{log_prefix} Order created: total={confirmation.total_amount} {confirmation.currency}")
    return confirmation


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------

def cancel_order(
    db: Session,
    order_id: int,
    requesting_user_id: Optional[int],
    timeout: Optional[float] = None,
) -> CancellationResult:
    """Customer cancellation while the order is pending or processing; restores stock."""
    if not requesting_user_id:
        raise CancellationError(ErrorKind.NOT_AUTHENTICATED, "Not authenticated")

    deadline = _Deadline(timeout if timeout is not None else config.CHECKOUT_TIMEOUT_SECONDS)
    log_prefix = f"[Order id: {order_id}]"

    try:
        apply_statement_timeout(db, deadline.seconds)

        order = db.scalars(
            select(Order)
            .where(Order.id == order_id, Order.user_id == requesting_user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).first()
        if order is None:
            raise CancellationError(ErrorKind.NOT_FOUND, "Order not found")

        log_prefix = f"[Order: {order.order_number}]"
        if order.status not in CANCELLABLE_STATUSES:
            raise CancellationError(
                ErrorKind.INVALID_STATE,
                "Order cannot be cancelled. Only pending or processing orders can be cancelled.",
                status=order.status.value,
            )

        restored = restore_order_stock(db, order, note="cancelled by customer")

        old_status = order.status
        order.status = OrderStatus.CANCELLED
        order.updated_at = datetime.utcnow()
        db.add(OrderStatusLog(
            order_id=order.id,
            old_status=old_status.value,
            new_status=OrderStatus.CANCELLED.value,
            user="customer:{0}".format(requesting_user_id),
            note="cancelled by customer",
        ))
        db.flush()
        deadline.check("cancellation writes")

        result = CancellationResult(order_id=order.id, order_number=order.order_number, restored_items=restored)
        db.commit()
    except CancellationError:
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        log.error(f"{log_prefix} Cancellation failed, transaction rolled back: {e}", exc_info=True)
        raise CancellationError(
            ErrorKind.ORDER_CANCELLATION_FAILED,
            "Failed to cancel order. Please try again.",
        ) from e

    log.info(f"{log_prefix} Cancelled by customer {requesting_user_id}, {restored} item(s) back on stock")
    return result
