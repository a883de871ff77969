"""Domain models, ports and service for bookstore orders.

Orders live embedded in their customer's document; there is no orders
table. The service below validates and places orders, keeps book stock in
step through the catalog port, and drives the order status machine:

    PLACED --cancel--> CANCELLED
    PLACED --admin override--> SHIPPING
    SHIPPING --confirm received--> COMPLETED

Stock is reserved line by line with the catalog's atomic conditional
adjustment. There is no cross-document transaction: a failure on a later
line leaves the earlier lines decremented, and the customer's order list is
written back as a whole with no version check.
"""

import logging
import unicodedata
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, ClassVar, Iterable, List, Optional, Protocol, Sequence, Union

from .errors import (
    InsufficientStock,
    InvalidTransition,
    OrderNotFound,
    OrderValidationError,
    PersistenceError,
)

logger = logging.getLogger("bookstore.orders")


# ---- Enums ----
class OrderStatus(str, Enum):
    """Lifecycle statuses of an order."""

    PLACED = "PLACED"
    SHIPPING = "SHIPPING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @classmethod
    def parse(cls, raw) -> "OrderStatus":
        """Return the status matching ``raw`` (case-insensitive).

        Raises:
            ValueError: When ``raw`` is not one of the four statuses.
        """
        if isinstance(raw, cls):
            return raw
        try:
            return cls(str(raw).strip().upper())
        except ValueError:
            raise ValueError("INVALID_STATUS") from None


class PaymentMethod(str, Enum):
    """Canonical payment tokens stored on orders."""

    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"


_PAYMENT_ALIASES = {
    "cash": PaymentMethod.CASH,
    "tienmat": PaymentMethod.CASH,
    "banktransfer": PaymentMethod.BANK_TRANSFER,
    "transfer": PaymentMethod.BANK_TRANSFER,
    "chuyenkhoan": PaymentMethod.BANK_TRANSFER,
}


def _fold(text: str) -> str:
    # "Tiền mặt", "tien mat" and "TienMat" all fold to "tienmat"
    text = text.replace("đ", "d").replace("Đ", "D")
    decomposed = unicodedata.normalize("NFKD", text)
    plain = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return "".join(ch for ch in plain.lower() if ch.isalnum())


def normalize_payment_method(raw: Optional[str]) -> PaymentMethod:
    """Map a user-supplied payment method onto its canonical token.

    Matching ignores case, Vietnamese diacritics, spaces and punctuation.

    Args:
        raw: Payment method as typed by the customer.

    Returns:
        PaymentMethod: The canonical token.

    Raises:
        OrderValidationError: ``INVALID_PAYMENT_METHOD`` when unrecognized.
    """
    method = _PAYMENT_ALIASES.get(_fold(raw)) if raw else None
    if method is None:
        raise OrderValidationError(
            "INVALID_PAYMENT_METHOD",
            "Invalid payment method. Use 'CASH' or 'BANK_TRANSFER'",
        )
    return method


def new_order_code(now: datetime) -> str:
    """Order codes are derived from the UTC creation time."""
    return f"HD{now:%Y%m%d%H%M%S%f}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---- Entities / DTOs ----
@dataclass(frozen=True)
class Book:
    """Catalog view of a book, as returned by ``CatalogPort``."""

    code: str
    name: str
    price: int
    in_stock: int = 0
    sold: int = 0


@dataclass(frozen=True)
class OrderItemRequest:
    """A line as requested by the customer: which book and how many."""

    book_code: str
    quantity: int


@dataclass(frozen=True)
class OrderLine:
    """A placed order line.

    Name and unit price are snapshots taken when the order was placed, so
    later catalog edits never change an existing order.
    """

    book_code: str
    book_name: str
    quantity: int
    unit_price: int

    @property
    def line_total(self) -> int:
        return self.quantity * self.unit_price


@dataclass(frozen=True)
class Active:
    """Non-terminal state: ``PLACED`` or ``SHIPPING``."""

    status: OrderStatus = OrderStatus.PLACED


@dataclass(frozen=True)
class Completed:
    """Terminal state reached when the customer confirms receipt."""

    status: ClassVar[OrderStatus] = OrderStatus.COMPLETED
    at: Optional[datetime] = None


@dataclass(frozen=True)
class Cancelled:
    """Terminal state; ``reason`` is absent only for admin-forced cancels."""

    status: ClassVar[OrderStatus] = OrderStatus.CANCELLED
    at: Optional[datetime] = None
    reason: Optional[str] = None


OrderState = Union[Active, Completed, Cancelled]

# Transitions the customer-facing operations may perform. The admin
# override in OrderService.update_order_status does not consult this table.
GUARDED_TRANSITIONS = frozenset({
    (OrderStatus.PLACED, OrderStatus.CANCELLED),
    (OrderStatus.SHIPPING, OrderStatus.COMPLETED),
})

_CANCEL_REJECTIONS = {
    OrderStatus.SHIPPING: ("ORDER_SHIPPING", "Cannot cancel an order that is being delivered"),
    OrderStatus.COMPLETED: ("ORDER_COMPLETED", "Cannot cancel an order that has been completed"),
    OrderStatus.CANCELLED: ("ORDER_ALREADY_CANCELLED", "Order has already been cancelled"),
}


@dataclass
class Order:
    """An order embedded in a customer document.

    Attributes:
        code: Unique, timestamp-derived order code.
        created_at: UTC creation time.
        payment_method: Canonical payment token.
        items: Snapshotted order lines.
        total: Sum of line totals, fixed at creation.
        state: Current state; terminal states carry their timestamp and,
            for cancellations, the reason.
    """

    code: str
    created_at: datetime
    payment_method: PaymentMethod
    items: tuple
    total: int
    state: OrderState = field(default_factory=Active)

    @classmethod
    def place(cls, code: str, created_at: datetime, payment_method: PaymentMethod,
              items: Sequence[OrderLine]) -> "Order":
        lines = tuple(items)
        return cls(
            code=code,
            created_at=created_at,
            payment_method=payment_method,
            items=lines,
            total=sum(line.line_total for line in lines),
        )

    @property
    def status(self) -> OrderStatus:
        return self.state.status

    @property
    def completed_at(self) -> Optional[datetime]:
        """Time of the terminal transition (completion or cancellation)."""
        return getattr(self.state, "at", None)

    @property
    def cancel_reason(self) -> Optional[str]:
        return getattr(self.state, "reason", None)

    def can_transition(self, target: OrderStatus) -> bool:
        return (self.status, target) in GUARDED_TRANSITIONS

    def confirm_received(self, now: datetime) -> None:
        if not self.can_transition(OrderStatus.COMPLETED):
            raise InvalidTransition("ORDER_NOT_SHIPPING", "Only orders being delivered can be confirmed")
        self.state = Completed(at=now)

    def cancel(self, reason: str, now: datetime) -> None:
        if not self.can_transition(OrderStatus.CANCELLED):
            code, message = _CANCEL_REJECTIONS.get(
                self.status,
                ("ORDER_NOT_CANCELLABLE", f"Cannot cancel an order with status '{self.status.value}'"),
            )
            raise InvalidTransition(code, message)
        self.state = Cancelled(at=now, reason=reason)

    def force_status(self, status: OrderStatus, now: datetime) -> None:
        """Set ``status`` with no transition check (admin override).

        Forcing a terminal status stamps the terminal time unless the order
        already sits in that state. Forcing ``CANCELLED`` records no reason.
        """
        if status == self.status:
            return
        if status == OrderStatus.COMPLETED:
            self.state = Completed(at=now)
        elif status == OrderStatus.CANCELLED:
            self.state = Cancelled(at=now)
        else:
            self.state = Active(status)


@dataclass
class Customer:
    """Customer document with its embedded order list."""

    code: str
    full_name: str
    email: str = ""
    phone: str = ""
    address: str = ""
    orders: List[Order] = field(default_factory=list)

    def find_order(self, order_code: str) -> Optional[Order]:
        return next((o for o in self.orders if o.code == order_code), None)


@dataclass(frozen=True)
class AdminOrderRow:
    """One row of the admin order listing."""

    order_code: str
    customer_code: str
    customer_name: str
    created_at: datetime
    total: int
    status: OrderStatus
    payment_method: PaymentMethod


# ---- Ports (DIP) ----
class CatalogPort(Protocol):
    """Port describing the catalog operations the engine relies on."""

    def get_by_code(self, code: str) -> Optional[Book]:
        """Return the book with ``code`` or None."""
        raise NotImplementedError()

    def adjust_stock_and_sold(self, code: str, delta: int) -> bool:
        """Atomically move ``delta`` units from stock to sold.

        The update only applies while ``in_stock >= delta``; a negative
        ``delta`` returns units to stock.

        Returns:
            True when exactly one book was updated.
        """
        raise NotImplementedError()


class CustomerStorePort(Protocol):
    """Port over customer documents and their embedded orders."""

    def get_by_code(self, code: str) -> Optional[Customer]:
        raise NotImplementedError()

    def replace_order_list(self, code: str, orders: List[Order]) -> bool:
        """Overwrite the customer's whole order list.

        Returns:
            True when the write matched the customer document.
        """
        raise NotImplementedError()

    def iter_customers(self) -> Iterable[Customer]:
        raise NotImplementedError()


class NotificationPort(Protocol):
    """Port for transactional messages sent to customers."""

    def send_order_confirmation(self, to_address: str, to_name: str, order: Order) -> None:
        raise NotImplementedError()


# ---- Domain service ----
class OrderService:
    """Domain service for the order lifecycle.

    Orchestrates the catalog (book lookup and stock adjustments), the
    customer store (embedded order lists) and the notifier. It performs no
    HTTP or ORM work of its own.
    """

    def __init__(self, catalog: CatalogPort, customers: CustomerStorePort,
                 notifier: Optional[NotificationPort] = None,
                 clock: Callable[[], datetime] = _utcnow):
        """Initialize the service with its ports.

        Args:
            catalog: Book lookup and stock adjustment.
            customers: Customer document store.
            notifier: Optional confirmation sender; None disables emails.
            clock: Returns the current UTC time.
        """
        self.catalog = catalog
        self.customers = customers
        self.notifier = notifier
        self._clock = clock

    def create_order(self, customer_code: str, items: Sequence[OrderItemRequest],
                     payment_method: Optional[str]) -> str:
        """Validate, reserve stock for and persist a new order.

        Every line is validated before any stock moves. Stock is then taken
        line by line; when a line cannot be reserved the earlier lines are
        not given back.

        Args:
            customer_code: Owning customer.
            items: Requested lines.
            payment_method: Raw payment method string.

        Returns:
            str: The new order code.

        Raises:
            OrderValidationError: ``CUSTOMER_NOT_FOUND``, ``EMPTY_ORDER``,
                ``INVALID_PAYMENT_METHOD``, ``BOOK_NOT_FOUND`` or
                ``INVALID_QUANTITY``; nothing has been changed.
            InsufficientStock: A line could not be reserved.
            PersistenceError: The customer document was not updated.
        """
        customer = self.customers.get_by_code(customer_code)
        if customer is None:
            raise OrderValidationError("CUSTOMER_NOT_FOUND", "Customer not found")
        if not items:
            raise OrderValidationError("EMPTY_ORDER", "Order has no items")
        method = normalize_payment_method(payment_method)

        lines = []
        for req in items:
            book = self.catalog.get_by_code(req.book_code)
            if book is None:
                raise OrderValidationError("BOOK_NOT_FOUND", f"Book not found: {req.book_code}")
            if req.quantity <= 0:
                raise OrderValidationError("INVALID_QUANTITY", f"Invalid quantity for {req.book_code}")
            lines.append(OrderLine(book.code, book.name, req.quantity, book.price))

        reserved = []
        for line in lines:
            try:
                ok = self.catalog.adjust_stock_and_sold(line.book_code, line.quantity)
            except Exception:
                self._warn_partial_reservation(customer.code, reserved, line.book_code)
                raise
            if not ok:
                self._warn_partial_reservation(customer.code, reserved, line.book_code)
                raise InsufficientStock("INSUFFICIENT_STOCK", f"Insufficient stock for {line.book_code}")
            reserved.append(line.book_code)

        now = self._clock()
        order = Order.place(new_order_code(now), now, method, lines)
        if not self.customers.replace_order_list(customer.code, customer.orders + [order]):
            logger.error("order not persisted after stock reservation",
                         extra={"customer_code": customer.code, "order_code": order.code})
            raise PersistenceError("PERSISTENCE_FAILED", "Could not save the order")

        logger.info("order placed", extra={"customer_code": customer.code,
                                           "order_code": order.code, "total": order.total})
        self._notify_confirmation(customer, order)
        return order.code

    @staticmethod
    def _warn_partial_reservation(customer_code: str, reserved: List[str], failed: str) -> None:
        if reserved:
            logger.warning(
                "partial stock reservation left in place",
                extra={"customer_code": customer_code, "reserved": reserved, "failed": failed},
            )

    def _notify_confirmation(self, customer: Customer, order: Order) -> None:
        # fire-and-forget: the order is already placed
        if self.notifier is None or not customer.email:
            return
        try:
            self.notifier.send_order_confirmation(customer.email, customer.full_name, order)
        except Exception:
            logger.exception("order confirmation not sent", extra={"order_code": order.code})

    def get_orders_by_customer(self, customer_code: str) -> List[Order]:
        """Return the customer's orders, newest first ([] if unknown)."""
        customer = self.customers.get_by_code(customer_code)
        if customer is None:
            return []
        return sorted(customer.orders, key=lambda o: o.created_at, reverse=True)

    def get_order_by_code(self, order_code: str) -> Optional[Order]:
        """Find an order by code. Scans every customer document."""
        for customer in self.customers.iter_customers():
            found = customer.find_order(order_code)
            if found is not None:
                return found
        return None

    def list_all_orders(self, page: int, page_size: int) -> tuple[List[AdminOrderRow], int]:
        """Flatten all orders, newest first, and return one page plus the total."""
        rows = [
            AdminOrderRow(
                order_code=o.code,
                customer_code=c.code,
                customer_name=c.full_name,
                created_at=o.created_at,
                total=o.total,
                status=o.status,
                payment_method=o.payment_method,
            )
            for c in self.customers.iter_customers()
            for o in c.orders
        ]
        rows.sort(key=lambda r: r.created_at, reverse=True)
        start = (page - 1) * page_size
        return rows[start:start + page_size], len(rows)

    def update_order_status(self, customer_code: str, order_code: str, new_status) -> bool:
        """Set an order's status without transition checks (admin only).

        Stock is never touched here, even when forcing ``CANCELLED``.

        Returns:
            bool: False for an unknown status, customer or order, or when
            the write fails.
        """
        try:
            status = OrderStatus.parse(new_status)
        except ValueError:
            return False
        customer = self.customers.get_by_code(customer_code)
        if customer is None:
            return False
        order = customer.find_order(order_code)
        if order is None:
            return False

        previous = order.status
        order.force_status(status, self._clock())
        ok = self.customers.replace_order_list(customer.code, customer.orders)
        if ok:
            logger.info("order status overridden", extra={
                "order_code": order.code, "from": previous.value, "to": status.value})
        return ok

    def confirm_received(self, customer_code: str, order_code: str) -> bool:
        """Mark a ``SHIPPING`` order ``COMPLETED``; any other status is refused."""
        customer = self.customers.get_by_code(customer_code)
        if customer is None:
            return False
        order = customer.find_order(order_code)
        if order is None or not order.can_transition(OrderStatus.COMPLETED):
            return False
        order.confirm_received(self._clock())
        return self.customers.replace_order_list(customer.code, customer.orders)

    def cancel_order(self, customer_code: str, order_code: str, reason: str) -> None:
        """Cancel a ``PLACED`` order and give its stock back.

        Args:
            customer_code: Owning customer.
            order_code: Order to cancel.
            reason: Why the customer cancels; required.

        Raises:
            OrderValidationError: ``CANCEL_REASON_REQUIRED``.
            OrderNotFound: ``CUSTOMER_NOT_FOUND`` or ``ORDER_NOT_FOUND``.
            InvalidTransition: ``ORDER_SHIPPING``, ``ORDER_COMPLETED`` or
                ``ORDER_ALREADY_CANCELLED``.
            PersistenceError: ``ORDER_UPDATE_FAILED``; stock has already
                been returned and needs manual reconciliation.

        Catalog errors while returning stock propagate unchanged; lines
        returned before the failure are logged for reconciliation.
        """
        if not reason or not reason.strip():
            raise OrderValidationError("CANCEL_REASON_REQUIRED", "A cancellation reason is required")
        customer = self.customers.get_by_code(customer_code)
        if customer is None:
            raise OrderNotFound("CUSTOMER_NOT_FOUND", "Customer not found")
        order = customer.find_order(order_code)
        if order is None:
            raise OrderNotFound("ORDER_NOT_FOUND", "Order not found")

        now = self._clock()
        order.cancel(reason, now)

        returned = []
        for line in order.items:
            try:
                ok = self.catalog.adjust_stock_and_sold(line.book_code, -line.quantity)
            except Exception:
                if returned:
                    logger.error("stock partly returned but order not cancelled; reconcile manually",
                                 extra={"customer_code": customer.code, "order_code": order.code,
                                        "returned": returned, "failed": line.book_code})
                raise
            if ok:
                returned.append(line.book_code)
            else:
                logger.warning("stock not returned for cancelled line",
                               extra={"order_code": order.code, "book_code": line.book_code})

        if not self.customers.replace_order_list(customer.code, customer.orders):
            logger.error("stock returned but cancellation not saved; reconcile manually",
                         extra={"customer_code": customer.code, "order_code": order.code})
            raise PersistenceError("ORDER_UPDATE_FAILED", "Could not update the order status")
        logger.info("order cancelled", extra={"order_code": order.code})
