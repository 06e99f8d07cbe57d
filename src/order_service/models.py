import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Uuid
from sqlalchemy.orm import relationship

from order_service.db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSED = "PROCESSED"
    SHIPPED = "SHIPPED"
    MANUAL_CHECK = "MANUAL_CHECK"


class PaymentStatus(str, enum.Enum):
    UNPAID = "UNPAID"
    PAID = "PAID"


class Order(Base):
    __tablename__ = "orders"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.UNPAID.value)
    total_amount = Column(Numeric(18, 2), nullable=False)
    shipping_address = Column(String, nullable=False)
    shipping_method = Column(String(50), nullable=False)
    shipping_cost = Column(Numeric(18, 2), nullable=False)
    destination_city = Column(String(50), nullable=False)
    total_weight = Column(Integer, nullable=False)
    payment_reference = Column(String(100), nullable=False, unique=True, index=True)
    shipping_receipt = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=utcnow)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Uuid(as_uuid=True), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(String(50), nullable=False)
    product_name = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    price_at_purchase = Column(Numeric(18, 2), nullable=False)
    weight_per_item = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="items")


PLACEHOLDER_PREFIX = "MANUAL_CHECK-"


def placeholder_receipt(order_id) -> str:
    return f"{PLACEHOLDER_PREFIX}{order_id}"


def is_placeholder(receipt: str | None) -> bool:
    """Missing and MANUAL_CHECK- receipts may be replaced; real ones never."""
    return receipt is None or receipt.startswith(PLACEHOLDER_PREFIX)
