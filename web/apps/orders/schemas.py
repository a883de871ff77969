"""Pydantic schemas for orders.

Request schemas validate incoming payloads before they reach the domain
service; read schemas shape domain objects into API responses.
"""

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .domain import AdminOrderRow, Order, OrderStatus

CODE_RE = re.compile(r"^[A-Za-z0-9_-]{1,32}$")


class OrderItemIn(BaseModel):
    """Input schema for a single requested line.

    Attributes:
        book_code: Catalog code of the book (1-32 chars: letters, digits,
            '_' and '-').
        quantity: Positive number of copies.
    """

    book_code: str = Field(min_length=1, max_length=32)
    quantity: int = Field(gt=0)

    @field_validator("book_code")
    @classmethod
    def validate_book_code(cls, v: str) -> str:
        v2 = v.strip()
        if not CODE_RE.match(v2):
            raise ValueError("Invalid book code format")
        return v2


class CreateOrderDTO(BaseModel):
    """Schema for creating an order.

    The payment method stays a free string here; the domain normalizes it
    ("Tiền mặt", "tien mat" and "CASH" are all accepted).
    """

    customer_code: str = Field(min_length=1, max_length=32)
    items: list[OrderItemIn]
    payment_method: str = Field(min_length=1, max_length=64)


class CancelOrderDTO(BaseModel):
    reason: str = Field(min_length=1, max_length=500)

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Reason must not be blank")
        return v.strip()


class UpdateOrderStatusDTO(BaseModel):
    status: str = Field(min_length=1)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        try:
            return OrderStatus.parse(v).value
        except ValueError:
            raise ValueError("Unknown order status") from None


class OrderLineOut(BaseModel):
    book_code: str
    book_name: str
    quantity: int
    unit_price: int
    line_total: int


class OrderReadDTO(BaseModel):
    """Read model of an order returned by the API."""

    code: str
    created_at: datetime
    total: int
    status: str
    payment_method: str
    items: list[OrderLineOut]
    cancel_reason: Optional[str] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, order: Order) -> "OrderReadDTO":
        return cls(
            code=order.code,
            created_at=order.created_at,
            total=order.total,
            status=order.status.value,
            payment_method=order.payment_method.value,
            items=[
                OrderLineOut(
                    book_code=line.book_code,
                    book_name=line.book_name,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    line_total=line.line_total,
                )
                for line in order.items
            ],
            cancel_reason=order.cancel_reason,
            completed_at=order.completed_at,
        )


class AdminOrderListItemDTO(BaseModel):
    order_code: str
    customer_code: str
    customer_name: str
    created_at: datetime
    total: int
    status: str
    payment_method: str

    @classmethod
    def from_domain(cls, row: AdminOrderRow) -> "AdminOrderListItemDTO":
        return cls(
            order_code=row.order_code,
            customer_code=row.customer_code,
            customer_name=row.customer_name,
            created_at=row.created_at,
            total=row.total,
            status=row.status.value,
            payment_method=row.payment_method.value,
        )
