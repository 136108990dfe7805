"""Locked access path to Product.stock_quantity.

Checkout decrements and cancellation restores stock only through these
functions, inside the caller's transaction.
"""
import logging
from typing import Dict, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from watchshop.models.catalog import Product
from watchshop.models.stock_audit import StockAudit
from watchshop.utils.enums import StockChangeType

log = logging.getLogger(__name__)


class InsufficientStock(Exception):
    pass


def lock_products(db: Session, product_ids: Iterable[int]) -> Dict[int, Product]:
    """SELECT ... FOR UPDATE on the given products, always in id order."""
    ids = sorted({int(pid) for pid in product_ids})
    if not ids:
        return {}
    stmt = (
        select(Product)
        .where(Product.id.in_(ids))
        .order_by(Product.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return {p.id: p for p in db.scalars(stmt)}


def decrement_stock(db: Session, product: Product, quantity: int, order_id: Optional[int] = None) -> int:
    old = int(product.stock_quantity)
    new = old - int(quantity)
    if new < 0:
        raise InsufficientStock("product {0}: need {1}, have {2}".format(product.id, quantity, old))
    product.stock_quantity = new
    db.add(StockAudit(
        product_id=product.id,
        order_id=order_id,
        change_type=StockChangeType.DECREASE.value,
        delta_units=int(quantity),
        old_stock=old,
        new_stock=new,
        note="checkout",
    ))
    log.debug(f"[Product: {product.id}] stock {old} -> {new}")
    return new


def restore_stock(
    db: Session, product: Product, quantity: int, order_id: Optional[int] = None, note: str = "cancellation"
) -> int:
    old = int(product.stock_quantity)
    new = old + int(quantity)
    product.stock_quantity = new
    db.add(StockAudit(
        product_id=product.id,
        order_id=order_id,
        change_type=StockChangeType.INCREASE.value,
        delta_units=int(quantity),
        old_stock=old,
        new_stock=new,
        note=note,
    ))
    log.debug(f"[Product: {product.id}] stock {old} -> {new}")
    return new
