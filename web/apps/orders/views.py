"""HTTP views for the orders app.

Views are kept intentionally small: they validate requests (via Pydantic),
delegate to the domain service and map the outcome to an HTTP response.

The service comes from ``providers.get_order_service()``, which wires the
catalog port to the HTTP catalog client or to the in-process stub
depending on runtime settings, so tests and local development can swap
implementations without changing view logic.

Error mapping for ``OrderError`` subclasses:
    OrderValidationError → 400, OrderNotFound → 404,
    InvalidTransition → 409, InsufficientStock → 422,
    PersistenceError → 500. Catalog transport failures → 503.
"""

import logging

import httpx
from pydantic import ValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from . import providers
from .domain import OrderItemRequest
from .errors import (
    InsufficientStock,
    InvalidTransition,
    OrderError,
    OrderNotFound,
    PersistenceError,
)
from .http_adapters import CircuitOpenError
from .permissions import HasAdminToken
from .schemas import (
    AdminOrderListItemDTO,
    CancelOrderDTO,
    CreateOrderDTO,
    OrderReadDTO,
    UpdateOrderStatusDTO,
)

logger = logging.getLogger("bookstore.orders")

MAX_PAGE_SIZE = 200

_ERROR_STATUS = (
    (OrderNotFound, status.HTTP_404_NOT_FOUND),
    (InvalidTransition, status.HTTP_409_CONFLICT),
    (InsufficientStock, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (PersistenceError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)

UPSTREAM_ERRORS = (httpx.HTTPError, CircuitOpenError)


def _error_response(exc: OrderError) -> Response:
    code = next((s for cls, s in _ERROR_STATUS if isinstance(exc, cls)), status.HTTP_400_BAD_REQUEST)
    return Response({"detail": exc.code, "message": exc.message}, status=code)


def _validation_response(exc: ValidationError) -> Response:
    return Response(
        {"detail": "VALIDATION_ERROR", "message": str(exc)},
        status=status.HTTP_400_BAD_REQUEST,
    )


def _upstream_unavailable() -> Response:
    logger.exception("catalog unavailable")
    return Response({"detail": "UPSTREAM_UNAVAILABLE"}, status=status.HTTP_503_SERVICE_UNAVAILABLE)


def _int_param(request, name: str, default: int) -> int:
    try:
        return int(request.GET.get(name, default))
    except (TypeError, ValueError):
        return default


class OrdersPingView(APIView):
    """Liveness endpoint for the orders module."""

    def get(self, request):
        return Response({"ok": True})


class OrdersCollectionView(APIView):
    """Create an order for a customer.

    Validates the payload with ``CreateOrderDTO`` and lets the domain
    service reserve stock, persist the order in the customer document and
    send the confirmation email.
    """

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_create"

    def post(self, request):
        """Create a new order.

        Returns:
            Response: One of the following responses.
            - 201 with {order_code} when the order is placed.
            - 400 for payload or domain validation errors.
            - 422 with {detail: "INSUFFICIENT_STOCK"} when a book runs out.
            - 503 with {detail: "UPSTREAM_UNAVAILABLE"} when the catalog
              cannot be reached.
        """
        try:
            dto = CreateOrderDTO.model_validate(request.data)
        except ValidationError as e:
            return _validation_response(e)

        items = [OrderItemRequest(book_code=i.book_code, quantity=i.quantity) for i in dto.items]
        service = providers.get_order_service()
        try:
            code = service.create_order(dto.customer_code, items, dto.payment_method)
        except OrderError as e:
            return _error_response(e)
        except UPSTREAM_ERRORS:
            return _upstream_unavailable()

        return Response({"order_code": code}, status=status.HTTP_201_CREATED)


class CustomerOrdersView(APIView):
    """List one customer's orders, newest first."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_read"

    def get(self, request, customer_code: str):
        orders = providers.get_order_service().get_orders_by_customer(customer_code)
        return Response([OrderReadDTO.from_domain(o).model_dump(mode="json") for o in orders])


class RetrieveOrderView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_read"

    def get(self, request, order_code: str):
        order = providers.get_order_service().get_order_by_code(order_code)
        if order is None:
            return Response({"detail": "NOT_FOUND"}, status=status.HTTP_404_NOT_FOUND)
        return Response(OrderReadDTO.from_domain(order).model_dump(mode="json"))


class ConfirmReceivedView(APIView):
    """Customer confirms a delivered order (SHIPPING → COMPLETED)."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_update"

    def put(self, request, customer_code: str, order_code: str):
        ok = providers.get_order_service().confirm_received(customer_code, order_code)
        if not ok:
            return Response(
                {
                    "detail": "CANNOT_CONFIRM",
                    "message": "Cannot confirm order. Either not found, already completed, "
                               "or not in delivery status.",
                },
                status=status.HTTP_400_BAD_REQUEST,
            )
        return Response(status=status.HTTP_204_NO_CONTENT)


class CancelOrderView(APIView):
    """Customer cancels a placed order; stock is returned to the catalog."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_update"

    def put(self, request, customer_code: str, order_code: str):
        try:
            dto = CancelOrderDTO.model_validate(request.data)
        except ValidationError:
            return Response(
                {"detail": "CANCEL_REASON_REQUIRED", "message": "A cancellation reason is required"},
                status=status.HTTP_400_BAD_REQUEST,
            )
        try:
            providers.get_order_service().cancel_order(customer_code, order_code, dto.reason)
        except OrderError as e:
            return _error_response(e)
        except UPSTREAM_ERRORS:
            return _upstream_unavailable()
        return Response(status=status.HTTP_204_NO_CONTENT)


class AdminOrdersView(APIView):
    """Paginated listing of every customer's orders (admin)."""

    permission_classes = [HasAdminToken]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "admin"

    def get(self, request):
        page = max(1, _int_param(request, "page", 1))
        page_size = min(max(1, _int_param(request, "page_size", 20)), MAX_PAGE_SIZE)
        rows, total = providers.get_order_service().list_all_orders(page, page_size)
        return Response(
            {
                "total": total,
                "page": page,
                "page_size": page_size,
                "items": [AdminOrderListItemDTO.from_domain(r).model_dump(mode="json") for r in rows],
            }
        )


class AdminOrderStatusView(APIView):
    """Force an order's status (admin override, no transition checks)."""

    permission_classes = [HasAdminToken]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "admin"

    def put(self, request, customer_code: str, order_code: str):
        try:
            dto = UpdateOrderStatusDTO.model_validate(request.data)
        except ValidationError as e:
            return _validation_response(e)

        ok = providers.get_order_service().update_order_status(customer_code, order_code, dto.status)
        if not ok:
            return Response(
                {
                    "detail": "STATUS_UPDATE_FAILED",
                    "message": "Failed to update order status. Check customer code, "
                               "order code, and valid status.",
                },
                status=status.HTTP_400_BAD_REQUEST,
            )
        return Response(status=status.HTTP_204_NO_CONTENT)
