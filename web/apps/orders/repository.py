"""Repository layer for customer documents and their embedded orders.

Orders are stored inside the owning customer's row as a JSON array, the
same shape a document database would hold. The repository maps between
that document shape and the domain dataclasses so the domain layer is not
coupled to Django ORM details.
"""

from datetime import datetime
from typing import Iterator, List, Optional

from django.utils import timezone

from .domain import (
    Active,
    Cancelled,
    Completed,
    Customer,
    Order,
    OrderLine,
    OrderStatus,
    PaymentMethod,
)
from .models import CustomerModel


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def order_to_document(order: Order) -> dict:
    """Serialize an order to its embedded sub-document.

    ``cancel_reason`` and ``completed_at`` are omitted when empty.
    ``completed_at`` is shared by completion and cancellation.
    """
    doc = {
        "code": order.code,
        "created_at": _iso(order.created_at),
        "total": order.total,
        "status": order.status.value,
        "payment_method": order.payment_method.value,
        "items": [
            {
                "book_code": line.book_code,
                "book_name": line.book_name,
                "quantity": line.quantity,
                "unit_price": line.unit_price,
                "line_total": line.line_total,
            }
            for line in order.items
        ],
    }
    if order.cancel_reason is not None:
        doc["cancel_reason"] = order.cancel_reason
    if order.completed_at is not None:
        doc["completed_at"] = _iso(order.completed_at)
    return doc


def order_from_document(doc: dict) -> Order:
    """Rebuild an order from its embedded sub-document."""
    status = OrderStatus(doc.get("status", OrderStatus.PLACED.value))
    at = _parse_dt(doc.get("completed_at"))
    if status == OrderStatus.COMPLETED:
        state = Completed(at=at)
    elif status == OrderStatus.CANCELLED:
        state = Cancelled(at=at, reason=doc.get("cancel_reason"))
    else:
        state = Active(status)

    return Order(
        code=doc["code"],
        created_at=_parse_dt(doc["created_at"]),
        payment_method=PaymentMethod(doc["payment_method"]),
        items=tuple(
            OrderLine(
                book_code=i["book_code"],
                book_name=i["book_name"],
                quantity=i["quantity"],
                unit_price=i["unit_price"],
            )
            for i in doc.get("items", [])
        ),
        total=doc["total"],
        state=state,
    )


def _to_domain(obj: CustomerModel) -> Customer:
    return Customer(
        code=obj.code,
        full_name=obj.full_name,
        email=obj.email,
        phone=obj.phone,
        address=obj.address,
        orders=[order_from_document(d) for d in (obj.orders or [])],
    )


class CustomerRepository:
    """Customer store backed by the Django ORM.

    Implements ``CustomerStorePort``. Order lists are always written back
    whole; concurrent writers to the same customer overwrite each other.
    """

    def get_by_code(self, code: str) -> Optional[Customer]:
        obj = CustomerModel.objects.filter(code=code).first()
        return _to_domain(obj) if obj else None

    def replace_order_list(self, code: str, orders: List[Order]) -> bool:
        """Replace the embedded order list of customer ``code``.

        Returns:
            bool: True when exactly one customer row was updated.
        """
        updated = CustomerModel.objects.filter(code=code).update(
            orders=[order_to_document(o) for o in orders],
            updated_at=timezone.now(),
        )
        return updated == 1

    def iter_customers(self) -> Iterator[Customer]:
        for obj in CustomerModel.objects.order_by("code").iterator():
            yield _to_domain(obj)
