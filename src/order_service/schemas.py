from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- API ---

class OrderCreateRequest(CamelModel):
    product_id: str = Field(..., min_length=1, description="Product to buy")
    quantity: int = Field(..., gt=0, description="Number of units (positive)")
    shipping_address: str = Field(..., min_length=1)
    destination_city: str = Field(..., min_length=1, description="Destination city id known to logistics")
    shipping_method: str = Field(..., min_length=1, description="Method name as quoted by logistics, e.g. REGULER")


class OrderItemRead(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    product_id: str
    product_name: str
    quantity: int
    price_at_purchase: float
    weight_per_item: int


class OrderRead(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: UUID
    product_id: str
    quantity: int
    total_amount: float
    status: str
    payment_status: str
    shipping_address: str
    shipping_method: str
    shipping_cost: float
    destination_city: str
    total_weight: int
    payment_reference: str
    shipping_receipt: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime]
    items: List[OrderItemRead]

    @classmethod
    def from_order(cls, order) -> "OrderRead":
        first = order.items[0] if order.items else None
        return cls(
            id=order.id,
            product_id=first.product_id if first else "",
            quantity=first.quantity if first else 0,
            total_amount=order.total_amount,
            status=order.status,
            payment_status=order.payment_status,
            shipping_address=order.shipping_address,
            shipping_method=order.shipping_method,
            shipping_cost=order.shipping_cost,
            destination_city=order.destination_city,
            total_weight=order.total_weight,
            payment_reference=order.payment_reference,
            shipping_receipt=order.shipping_receipt,
            created_at=order.created_at,
            updated_at=order.updated_at,
            items=[OrderItemRead.model_validate(item) for item in order.items],
        )


class ShippingOptionRead(CamelModel):
    method: str
    cost: float
    eta_days: Optional[str]


class PaymentStatusUpdate(CamelModel):
    payment_reference: str = Field(..., min_length=1)
    status: str = Field(..., min_length=1)


class PaymentStatusResult(BaseModel):
    success: bool


# --- Gateway value types ---

class Product(BaseModel):
    id: str
    name: str
    price: Decimal
    weight: int
    stock: int


class ShippingOption(BaseModel):
    method: str
    cost: Decimal
    eta_days: Optional[str] = None

    @field_validator("eta_days", mode="before")
    @classmethod
    def _eta_as_text(cls, value):
        return None if value is None else str(value)


class PaymentTicket(BaseModel):
    payment_reference: str
    transaction_id: Optional[str] = None
    status: Optional[str] = None


class ShipmentRequest(BaseModel):
    order_id: UUID
    address: str
    weight: int
    origin: str
    destination: str
    method: str
    pickup_address: str


class ShipmentReceipt(BaseModel):
    receipt: Optional[str] = None
    status: Optional[str] = None
