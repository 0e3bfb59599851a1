"""Order-status e-mails sent to customers."""

from __future__ import annotations

from dataclasses import dataclass

from django.conf import settings
from django.core.mail import send_mail

from modules.orders.constants import OrderStatus

STATUS_MESSAGES = {
    OrderStatus.PAID: "We received your payment. Your order is confirmed.",
    OrderStatus.PREPARING: "We are preparing your order.",
    OrderStatus.READY: "Your order is ready.",
    OrderStatus.IN_TRANSIT: "Your order is on its way.",
}


@dataclass(frozen=True)
class StatusEmail:
    subject: str
    body: str
    recipient: str


def render_status_email(
    order_number: str,
    new_status: str,
    customer_name: str,
    customer_email: str,
) -> StatusEmail:
    """Build the message for *new_status*.

    Raises ``KeyError`` for statuses that do not notify the customer.
    """
    store = settings.STORE_NAME
    headline = STATUS_MESSAGES[OrderStatus(new_status)]
    greeting = f"Hi {customer_name}," if customer_name else "Hi,"
    body = "\n\n".join(
        [
            greeting,
            headline,
            f"Order number: {order_number}",
            f"Thank you for shopping at {store}.",
        ]
    )
    return StatusEmail(
        subject=f"[{store}] Order {order_number}: {OrderStatus(new_status).label}",
        body=body,
        recipient=customer_email,
    )


def deliver(email: StatusEmail) -> int:
    return send_mail(
        email.subject,
        email.body,
        settings.DEFAULT_FROM_EMAIL,
        [email.recipient],
        fail_silently=False,
    )
