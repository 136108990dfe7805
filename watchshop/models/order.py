# watchshop/models/order.py
from typing import List, Optional
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from watchshop.db import Base
from watchshop.utils.enums import AddressType, OrderStatus, PaymentStatus


def _str_enum(enum_cls, length: int = 24) -> Enum:
    # stored as plain strings ("pending", ...), read back as enum members
    return Enum(
        enum_cls,
        native_enum=False,
        length=length,
        validate_strings=True,
        values_callable=lambda e: [m.value for m in e],
    )


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_number: Mapped[str] = mapped_column(String(40), unique=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)

    # === ORDER STATUS ===
    # pending -> processing -> shipped -> delivered, cancelled / refunded as side exits
    status: Mapped[OrderStatus] = mapped_column(_str_enum(OrderStatus), default=OrderStatus.PENDING, index=True)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    shipping_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    currency: Mapped[str] = mapped_column(String(3), default="USD")

    payment_status: Mapped[PaymentStatus] = mapped_column(_str_enum(PaymentStatus), default=PaymentStatus.PENDING)
    payment_method: Mapped[str] = mapped_column(String(32), default="card")
    shipping_method: Mapped[str] = mapped_column(String(32), default="standard")
    tracking_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    shipped_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    user = relationship("User")

    items: Mapped[List["OrderItem"]] = relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id"
    )
    addresses: Mapped[List["OrderAddress"]] = relationship(
        "OrderAddress", back_populates="order", cascade="all, delete-orphan"
    )

    def _address(self, kind: AddressType) -> Optional["OrderAddress"]:
        for a in self.addresses:
            if a.type == kind:
                return a
        return None

    @property
    def shipping_address(self) -> Optional["OrderAddress"]:
        return self._address(AddressType.SHIPPING)

    @property
    def billing_address(self) -> Optional["OrderAddress"]:
        return self._address(AddressType.BILLING)

    def consistency_flags(self) -> List[str]:
        """Combinations the ledger accepts but an operator should look at."""
        flags = []
        if self.status in (OrderStatus.SHIPPED, OrderStatus.DELIVERED) and self.payment_status != PaymentStatus.PAID:
            flags.append("{0} while payment is {1}".format(self.status.value, self.payment_status.value))
        if self.status == OrderStatus.REFUNDED and self.payment_status != PaymentStatus.REFUNDED:
            flags.append("refunded order with payment {0}".format(self.payment_status.value))
        if self.status == OrderStatus.SHIPPED and not self.tracking_number:
            flags.append("shipped without tracking number")
        expected = self.subtotal + self.tax_amount + self.shipping_amount - self.discount_amount
        if expected != self.total_amount:
            flags.append("total {0} does not match components {1}".format(self.total_amount, expected))
        return flags


class OrderItem(Base):
    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), index=True)

    # plain id, no FK: the snapshot below must outlive catalog edits
    product_id: Mapped[int] = mapped_column(Integer, index=True)

    # snapshot of the product at purchase time
    product_name: Mapped[str] = mapped_column(String(255))
    product_brand: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    product_reference: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    product_image: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    quantity: Mapped[int] = mapped_column(Integer, default=1)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    order: Mapped["Order"] = relationship("Order", back_populates="items")


class OrderAddress(Base):
    __tablename__ = "order_addresses"
    __table_args__ = (UniqueConstraint("order_id", "type", name="uq_order_addresses_order_type"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), index=True)
    type: Mapped[AddressType] = mapped_column(_str_enum(AddressType, length=16))

    first_name: Mapped[str] = mapped_column(String(100))
    last_name: Mapped[str] = mapped_column(String(100))
    company: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    address_line_1: Mapped[str] = mapped_column(String(255))
    address_line_2: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    city: Mapped[str] = mapped_column(String(100))
    state: Mapped[str] = mapped_column(String(100))
    postal_code: Mapped[str] = mapped_column(String(20))
    country: Mapped[str] = mapped_column(String(64))
    phone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    order: Mapped["Order"] = relationship("Order", back_populates="addresses")

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "company": self.company,
            "address_line_1": self.address_line_1,
            "address_line_2": self.address_line_2,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "country": self.country,
            "phone": self.phone,
        }
