"""Order queries for customers and the admin back-office, admin status changes and edits."""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, selectinload

from watchshop.errors import ErrorKind, OrderUpdateError
from watchshop.models.order import Order
from watchshop.models.order_status_log import OrderStatusLog
from watchshop.models.user import User
from watchshop.services.checkout import restore_order_stock
from watchshop.services.pricing import to_money
from watchshop.utils.enums import OrderStatus, PaymentStatus, ShippingMethod

log = logging.getLogger(__name__)

# Allowed admin transitions
VALID_NEXT = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: {OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: set(),
    OrderStatus.REFUNDED: set(),
}

PER_PAGE = 20


def _money(value) -> float:
    return float(value or 0)


def _dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def item_dict(it) -> Dict[str, Any]:
    return {
        "id": it.id,
        "product_id": it.product_id,
        "product_name": it.product_name,
        "product_brand": it.product_brand,
        "product_reference": it.product_reference,
        "product_image": it.product_image,
        "unit_price": _money(it.unit_price),
        "quantity": it.quantity,
        "total_price": _money(it.total_price),
    }


def order_summary_dict(o: Order) -> Dict[str, Any]:
    return {
        "id": o.id,
        "order_number": o.order_number,
        "status": o.status.value,
        "payment_status": o.payment_status.value,
        "total_amount": _money(o.total_amount),
        "currency": o.currency,
        "created_at": _dt(o.created_at),
        "shipped_at": _dt(o.shipped_at),
        "delivered_at": _dt(o.delivered_at),
        "tracking_number": o.tracking_number,
    }


def order_detail_dict(o: Order) -> Dict[str, Any]:
    data = order_summary_dict(o)
    data.update({
        "user_id": o.user_id,
        "customer_name": o.user.full_name if o.user else None,
        "customer_email": o.user.email if o.user else None,
        "subtotal": _money(o.subtotal),
        "tax_amount": _money(o.tax_amount),
        "shipping_amount": _money(o.shipping_amount),
        "discount_amount": _money(o.discount_amount),
        "payment_method": o.payment_method,
        "shipping_method": o.shipping_method,
        "notes": o.notes,
        "updated_at": _dt(o.updated_at),
        "items": [item_dict(it) for it in o.items],
        "shipping_address": o.shipping_address.to_dict() if o.shipping_address else None,
        "billing_address": o.billing_address.to_dict() if o.billing_address else None,
        "flags": o.consistency_flags(),
    })
    return data


# ---------- customer side ----------

def list_customer_orders(db: Session, user_id: int) -> List[Dict[str, Any]]:
    orders = db.scalars(
        select(Order)
        .options(selectinload(Order.items))
        .where(Order.user_id == user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
    ).all()
    result = []
    for o in orders:
        data = order_summary_dict(o)
        data["items"] = [item_dict(it) for it in o.items]
        result.append(data)
    return result


def get_customer_order(db: Session, user_id: int, order_id: int) -> Dict[str, Any]:
    o = db.scalars(
        select(Order).where(Order.id == order_id, Order.user_id == user_id)
    ).first()
    if o is None:
        raise OrderUpdateError(ErrorKind.NOT_FOUND, "Order not found")
    return order_detail_dict(o)


# ---------- admin side ----------

def _escape_like(term: str) -> str:
    # % and _ typed by an admin are literal characters
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def list_orders(
    db: Session,
    search: str = "",
    status: str = "all",
    page: int = 1,
    per_page: int = PER_PAGE,
) -> Dict[str, Any]:
    page = max(1, int(page))
    stmt = select(Order).join(User, User.id == Order.user_id, isouter=True)

    search = (search or "").strip()
    if search:
        like = "%%%s%%" % _escape_like(search)
        stmt = stmt.where(
            or_(
                Order.order_number.ilike(like, escape="\\"),
                (func.coalesce(User.first_name, "") + " " + func.coalesce(User.last_name, "")).ilike(like, escape="\\"),
                User.email.ilike(like, escape="\\"),
            )
        )
    if status and status != "all":
        stmt = stmt.where(Order.status == OrderStatus(status))

    total = db.scalar(select(func.count()).select_from(stmt.order_by(None).subquery()))
    rows = db.scalars(
        stmt.options(selectinload(Order.user))
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(per_page)
        .offset((page - 1) * per_page)
    ).all()

    orders = []
    for o in rows:
        data = order_summary_dict(o)
        data["customer_name"] = o.user.full_name if o.user else None
        data["customer_email"] = o.user.email if o.user else None
        orders.append(data)

    return {
        "orders": orders,
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total or 0,
            "pages": ((total or 0) + per_page - 1) // per_page,
        },
    }


def get_order_detail(db: Session, order_id: int) -> Dict[str, Any]:
    o = db.get(Order, order_id)
    if o is None:
        raise OrderUpdateError(ErrorKind.NOT_FOUND, "Order not found")
    return order_detail_dict(o)


def _locked_order(db: Session, order_id: int) -> Order:
    o = db.scalars(
        select(Order)
        .where(Order.id == order_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).first()
    if o is None:
        raise OrderUpdateError(ErrorKind.NOT_FOUND, "Order not found")
    return o


def change_status(
    db: Session,
    order_id: int,
    new_status: Union[OrderStatus, str],
    actor: str = "admin",
    note: Optional[str] = None,
) -> Dict[str, Any]:
    """Moves an order along the transition table, stamping timestamps and logging the change."""
    new_status = OrderStatus(new_status)
    try:
        order = _locked_order(db, order_id)
        cur = order.status
        if new_status == cur:
            db.rollback()
            return order_detail_dict(db.get(Order, order_id))

        if new_status not in VALID_NEXT.get(cur, set()):
            raise OrderUpdateError(
                ErrorKind.INVALID_TRANSITION,
                "Cannot change status from {0} to {1}".format(cur.value, new_status.value),
                status=cur.value,
            )

        now = datetime.utcnow()
        if new_status == OrderStatus.SHIPPED:
            order.shipped_at = now
        elif new_status == OrderStatus.DELIVERED:
            order.delivered_at = now
        elif new_status == OrderStatus.REFUNDED:
            order.payment_status = PaymentStatus.REFUNDED
        elif new_status == OrderStatus.CANCELLED:
            restore_order_stock(db, order, note="cancelled by {0}".format(actor))

        order.status = new_status
        order.updated_at = now
        db.add(OrderStatusLog(
            order_id=order.id,
            old_status=cur.value,
            new_status=new_status.value,
            user=actor,
            note=note,
        ))
        db.commit()
    except Exception:
        db.rollback()
        raise

    log.info(f"[Order: {order.order_number}] status {cur.value} -> {new_status.value} by {actor}")
    return order_detail_dict(db.get(Order, order_id))


def update_order_details(
    db: Session,
    order_id: int,
    payment_status: Optional[Union[PaymentStatus, str]] = None,
    tracking_number: Optional[str] = None,
    shipping_method: Optional[Union[ShippingMethod, str]] = None,
    shipping_amount: Optional[Union[Decimal, int, str]] = None,
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    """Admin edit of an order; a new shipping amount recomputes the total."""
    changes = {
        "payment_status": payment_status,
        "tracking_number": tracking_number,
        "shipping_method": shipping_method,
        "shipping_amount": shipping_amount,
        "notes": notes,
    }
    changes = {k: v for k, v in changes.items() if v is not None}
    if not changes:
        raise OrderUpdateError(ErrorKind.ORDER_UPDATE_FAILED, "No fields to update")

    try:
        order = _locked_order(db, order_id)

        if "payment_status" in changes:
            order.payment_status = PaymentStatus(changes["payment_status"])
        if "tracking_number" in changes:
            order.tracking_number = changes["tracking_number"].strip() or None
        if "shipping_method" in changes:
            order.shipping_method = ShippingMethod(changes["shipping_method"]).value
        if "notes" in changes:
            order.notes = changes["notes"]
        if "shipping_amount" in changes:
            amount = to_money(changes["shipping_amount"])
            if amount < 0:
                raise OrderUpdateError(ErrorKind.ORDER_UPDATE_FAILED, "Shipping amount must not be negative")
            order.shipping_amount = amount
            order.total_amount = (
                to_money(order.subtotal)
                + to_money(order.tax_amount)
                + amount
                - to_money(order.discount_amount)
            )

        order.updated_at = datetime.utcnow()
        db.commit()
    except Exception:
        db.rollback()
        raise

    log.info(f"[Order: {order.order_number}] updated fields: {sorted(changes)}")
    return order_detail_dict(db.get(Order, order_id))
