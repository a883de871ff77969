"""Order confirmation emails sent through Django's mail framework."""

import logging

from django.conf import settings
from django.core.mail import send_mail
from django.template.loader import render_to_string

from .domain import NotificationPort, Order

logger = logging.getLogger("bookstore.notifications")


class EmailOrderNotifier(NotificationPort):
    """Render and send the order confirmation email.

    Errors propagate to the caller; ``OrderService`` treats sending as
    fire-and-forget and logs them.
    """

    def __init__(self, from_address: str | None = None):
        self.from_address = from_address or settings.ORDER_EMAIL_FROM

    def send_order_confirmation(self, to_address: str, to_name: str, order: Order) -> None:
        context = {
            "customer_name": to_name,
            "order_code": order.code,
            "order_date": order.created_at.strftime("%d/%m/%Y %H:%M"),
            "items": [
                {
                    "name": line.book_name,
                    "quantity": line.quantity,
                    "price": line.unit_price,
                    "subtotal": line.line_total,
                }
                for line in order.items
            ],
            "subtotal": order.total,
            "shipping_fee": 0,
            "tax": 0,
            "total": order.total,
            "status": order.status.value,
            "payment_method": order.payment_method.value,
        }
        send_mail(
            subject=f"Order confirmation {order.code}",
            message=render_to_string("orders/order_confirmation.txt", context),
            from_email=self.from_address,
            recipient_list=[to_address],
            html_message=render_to_string("orders/order_confirmation.html", context),
        )
        logger.info("order confirmation sent", extra={"order_code": order.code})
