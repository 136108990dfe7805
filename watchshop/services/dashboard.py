"""Read-only figures over the order ledger for the admin dashboard."""
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, case, func, select
from sqlalchemy.orm import Session, selectinload

from watchshop.models.catalog import Product
from watchshop.models.order import Order, OrderItem
from watchshop.models.user import User
from watchshop.services.order_admin import order_summary_dict
from watchshop.services.pricing import to_money
from watchshop.utils.enums import PaymentStatus, UserRole

DASHBOARD_LIMIT = 5


def month_bounds(now: datetime) -> Tuple[datetime, datetime, datetime]:
    """(start of last month, start of this month, start of next month)."""
    this_month = datetime(now.year, now.month, 1)
    if now.month == 1:
        last_month = datetime(now.year - 1, 12, 1)
    else:
        last_month = datetime(now.year, now.month - 1, 1)
    if now.month == 12:
        next_month = datetime(now.year + 1, 1, 1)
    else:
        next_month = datetime(now.year, now.month + 1, 1)
    return last_month, this_month, next_month


def growth(current, previous) -> int:
    """Month-over-month change in whole percent; 100 when there was nothing before."""
    current, previous = Decimal(str(current or 0)), Decimal(str(previous or 0))
    if previous == 0:
        return 100 if current > 0 else 0
    pct = (current - previous) / previous * 100
    return int(pct.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _monthly(db: Session, model, value, bounds, *where) -> Tuple[Any, Any, Any]:
    # (total, this month, last month) of `value` over the rows of `model` matching `where`
    last, this, nxt = bounds
    created = model.created_at
    stmt = select(
        func.coalesce(func.sum(value), 0),
        func.coalesce(func.sum(case((and_(created >= this, created < nxt), value), else_=0)), 0),
        func.coalesce(func.sum(case((and_(created >= last, created < this), value), else_=0)), 0),
    ).select_from(model)
    return db.execute(stmt.where(*where)).one()


def dashboard_stats(db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Totals and month-over-month growth: paid revenue, orders, customers, active products."""
    bounds = month_bounds(now or datetime.utcnow())

    revenue = _monthly(db, Order, Order.total_amount, bounds, Order.payment_status == PaymentStatus.PAID)
    orders = _monthly(db, Order, 1, bounds)
    customers = _monthly(
        db, User, 1, bounds, User.is_active.is_(True), User.role == UserRole.CUSTOMER.value
    )
    products = _monthly(db, Product, 1, bounds, Product.is_active.is_(True))

    return {
        "total_revenue": float(to_money(revenue[0])),
        "total_orders": int(orders[0]),
        "total_customers": int(customers[0]),
        "total_products": int(products[0]),
        "revenue_growth": growth(to_money(revenue[1]), to_money(revenue[2])),
        "orders_growth": growth(orders[1], orders[2]),
        "customers_growth": growth(customers[1], customers[2]),
        "products_growth": growth(products[1], products[2]),
    }


def recent_orders(db: Session, limit: int = DASHBOARD_LIMIT) -> List[Dict[str, Any]]:
    rows = db.scalars(
        select(Order)
        .options(selectinload(Order.user))
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(limit)
    ).all()
    result = []
    for o in rows:
        data = order_summary_dict(o)
        data["customer_name"] = o.user.full_name if o.user else None
        result.append(data)
    return result


def top_products(db: Session, limit: int = DASHBOARD_LIMIT) -> List[Dict[str, Any]]:
    """Best sellers by revenue over paid orders, from the item snapshots."""
    revenue = func.sum(OrderItem.total_price)
    sales_count = func.count(OrderItem.id)
    stmt = (
        select(
            OrderItem.product_id,
            func.max(OrderItem.product_name),
            func.max(OrderItem.product_brand),
            sales_count,
            func.sum(OrderItem.quantity),
            revenue,
        )
        .join(Order, Order.id == OrderItem.order_id)
        .where(Order.payment_status == PaymentStatus.PAID)
        .group_by(OrderItem.product_id)
        .order_by(revenue.desc(), sales_count.desc(), OrderItem.product_id)
        .limit(limit)
    )
    return [
        {
            "id": product_id,
            "name": name,
            "brand": brand,
            "sales_count": int(count),
            "units_sold": int(units or 0),
            "revenue": float(to_money(total or 0)),
        }
        for product_id, name, brand, count, units, total in db.execute(stmt)
    ]
