from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from watchshop.db import get_db
from watchshop.services import dashboard

router = APIRouter(prefix="/api/admin/dashboard", tags=["admin-dashboard"])


@router.get("/stats")
def stats(db: Session = Depends(get_db)):
    return {"stats": dashboard.dashboard_stats(db)}


@router.get("/recent-orders")
def recent_orders(
    limit: int = Query(dashboard.DASHBOARD_LIMIT, ge=1, le=50),
    db: Session = Depends(get_db),
):
    return {"orders": dashboard.recent_orders(db, limit=limit)}


@router.get("/top-products")
def top_products(
    limit: int = Query(dashboard.DASHBOARD_LIMIT, ge=1, le=50),
    db: Session = Depends(get_db),
):
    return {"products": dashboard.top_products(db, limit=limit)}
