# watchshop/models/stock_audit.py
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from watchshop.db import Base


class StockAudit(Base):
    __tablename__ = "stock_audit"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True, index=True)

    # INCREASE | DECREASE
    change_type = Column(String(16), nullable=False)

    delta_units = Column(Integer, nullable=False)
    old_stock   = Column(Integer, nullable=False)
    new_stock   = Column(Integer, nullable=False)
    note        = Column(String(500), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    product = relationship("Product")
