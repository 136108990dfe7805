from typing import Optional

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from watchshop.db import get_db
from watchshop.errors import CancellationError, ErrorKind
from watchshop.identity import get_current_user_id
from watchshop.schemas import CancelRequest, CheckoutRequest
from watchshop.services.checkout import cancel_order, place_order
from watchshop.services.order_admin import get_customer_order, list_customer_orders

router = APIRouter(prefix="/api/orders", tags=["orders"])


# ----------------------- CHECKOUT -----------------------
@router.post("/create")
def create_order(
    payload: CheckoutRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    confirmation = place_order(
        db,
        user_id=user_id,
        items=payload.items,
        shipping_address=payload.shipping_address,
        billing_address=payload.billing_address,
        payment_method=payload.payment_method,
        shipping_method=payload.shipping_method,
        notes=payload.notes,
        currency=payload.currency,
    )
    # clearing the client-side cart is up to the caller
    return {"success": True, "order": confirmation.as_dict()}


# ----------------------- MY ORDERS -----------------------
@router.get("")
def my_orders(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return {"orders": list_customer_orders(db, user_id)}


@router.get("/{order_id}")
def my_order_detail(
    order_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return {"order": get_customer_order(db, user_id, order_id)}


# ----------------------- CANCEL -----------------------
@router.patch("/{order_id}/cancel")
def cancel(
    order_id: int,
    payload: Optional[CancelRequest] = Body(None),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    # orderId in the body is accepted for older clients, it must name the same order
    if payload is not None and payload.orderId is not None and payload.orderId != order_id:
        raise CancellationError(
            ErrorKind.INVALID_REQUEST,
            "orderId in the body does not match the order in the URL",
            field="orderId",
        )
    result = cancel_order(db, order_id, user_id)
    return {
        "success": True,
        "message": "Order cancelled successfully",
        "restoredItems": result.restored_items,
        "order_number": result.order_number,
    }
