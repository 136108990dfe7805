from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from watchshop.db import get_db
from watchshop.identity import session_actor
from watchshop.schemas import OrderUpdateRequest, StatusChangeRequest
from watchshop.services import order_admin
from watchshop.utils.enums import OrderStatus

router = APIRouter(prefix="/api/admin/orders", tags=["admin-orders"])


# --------- LIST ----------
STATUS_FILTER = "^(all|" + "|".join(s.value for s in OrderStatus) + ")$"


@router.get("")
def list_orders(
    search: str = Query("", description="order number / customer name / email"),
    status: str = Query("all", pattern=STATUS_FILTER),
    page: int = Query(1, ge=1),
    db: Session = Depends(get_db),
):
    return order_admin.list_orders(db, search=search, status=status, page=page)


# ---------- DETAIL ----------
@router.get("/{order_id}")
def order_detail(order_id: int, db: Session = Depends(get_db)):
    return {"order": order_admin.get_order_detail(db, order_id)}


# ---------- STATUS CHANGE ----------
@router.patch("/{order_id}/status")
def change_status(
    order_id: int,
    payload: StatusChangeRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    order = order_admin.change_status(
        db, order_id, payload.status, actor=session_actor(request), note=payload.note
    )
    return {"message": "Order status updated successfully", "order": order}


# ---------- EDIT ----------
@router.patch("/{order_id}")
def update_order(
    order_id: int,
    payload: OrderUpdateRequest,
    db: Session = Depends(get_db),
):
    order = order_admin.update_order_details(
        db,
        order_id,
        payment_status=payload.payment_status,
        tracking_number=payload.tracking_number,
        shipping_method=payload.shipping_method,
        shipping_amount=payload.shipping_amount,
        notes=payload.notes,
    )
    return {"message": "Order updated successfully", "order": order}
