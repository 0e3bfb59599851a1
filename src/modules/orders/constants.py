"""Order domain constants.

Closed status vocabulary and the order state machine.  The transition
table is keyed by ``(current, requested, shipping)`` and enumerates every
combination explicitly; ``is_transition_allowed`` never falls back to a
default for an unknown key.
"""

from __future__ import annotations

from itertools import product
from typing import Dict, FrozenSet, Tuple

from django.db import models


class OrderStatus(models.TextChoices):
    CREATED = "CREATED", "Created"
    PROCESSING = "PROCESSING", "Processing payment"
    PAID = "PAID", "Paid"
    PAYMENT_FAILED = "PAYMENT_FAILED", "Payment failed"
    FAILED = "FAILED", "Failed"
    PREPARING = "PREPARING", "Preparing"
    READY = "READY", "Ready"
    IN_TRANSIT = "IN_TRANSIT", "In transit"
    DELIVERED = "DELIVERED", "Delivered"
    CANCELLED = "CANCELLED", "Cancelled"


class StatusSource(models.TextChoices):
    CHECKOUT = "checkout", "Checkout"
    WEBHOOK = "webhook", "Payment webhook"
    ADMIN = "admin", "Admin"
    SYSTEM = "system", "System"


def _allowed_next(shipping: bool) -> Dict[str, FrozenSet[str]]:
    s = OrderStatus
    after_ready = s.IN_TRANSIT if shipping else s.DELIVERED
    return {
        s.CREATED: frozenset(
            {s.PROCESSING, s.PAID, s.PAYMENT_FAILED, s.FAILED, s.CANCELLED}
        ),
        s.PROCESSING: frozenset({s.PAID, s.PAYMENT_FAILED, s.FAILED, s.CANCELLED}),
        s.PAYMENT_FAILED: frozenset({s.PAID, s.CANCELLED}),
        s.FAILED: frozenset({s.CANCELLED}),
        s.PAID: frozenset({s.PREPARING, s.CANCELLED}),
        s.PREPARING: frozenset({s.READY, s.CANCELLED}),
        s.READY: frozenset({after_ready, s.CANCELLED}),
        s.IN_TRANSIT: frozenset({s.DELIVERED, s.CANCELLED} if shipping else set()),
        s.DELIVERED: frozenset(),
        s.CANCELLED: frozenset(),
    }


TRANSITION_TABLE: Dict[Tuple[str, str, bool], bool] = {
    (current, requested, shipping): requested in _allowed_next(shipping)[current]
    for current, requested, shipping in product(
        OrderStatus.values, OrderStatus.values, (False, True)
    )
}

TERMINAL_STATES: FrozenSet[str] = frozenset(
    {OrderStatus.DELIVERED, OrderStatus.CANCELLED}
)

# Payment captured: webhooks for these orders are redeliveries.
SETTLED_STATES: FrozenSet[str] = frozenset(
    {
        OrderStatus.PAID,
        OrderStatus.PREPARING,
        OrderStatus.READY,
        OrderStatus.IN_TRANSIT,
        OrderStatus.DELIVERED,
    }
)

EDITABLE_STATES: FrozenSet[str] = frozenset(
    {
        OrderStatus.CREATED,
        OrderStatus.PROCESSING,
        OrderStatus.PAYMENT_FAILED,
        OrderStatus.PAID,
    }
)

NOTIFY_STATES: FrozenSet[str] = frozenset(
    {
        OrderStatus.PAID,
        OrderStatus.PREPARING,
        OrderStatus.READY,
        OrderStatus.IN_TRANSIT,
    }
)


def is_transition_allowed(current: str, requested: str, shipping: bool) -> bool:
    """Look up ``(current, requested, shipping)`` in ``TRANSITION_TABLE``.

    Raises ``KeyError`` for a status outside ``OrderStatus``.
    """
    return TRANSITION_TABLE[(str(current), str(requested), bool(shipping))]


def allowed_transitions(current: str, shipping: bool) -> list[str]:
    return [
        requested
        for requested in OrderStatus.values
        if TRANSITION_TABLE[(str(current), requested, bool(shipping))]
    ]
