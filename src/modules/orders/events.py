"""Domain events for the Orders bounded context.

Events are written to the transactional outbox together with the order
update that produced them, and carry everything a consumer needs so the
notification worker never has to re-read the order.
"""

from __future__ import annotations

from dataclasses import dataclass

from shared.domain.events import DomainEvent


@dataclass(frozen=True, kw_only=True)
class OrderStatusChanged(DomainEvent):
    """Raised when an order moves to a customer-visible status."""

    order_number: str
    old_status: str
    new_status: str
    customer_name: str = ""
    customer_email: str = ""
    total_amount: str = "0.00"


@dataclass(frozen=True, kw_only=True)
class OrderCancelled(DomainEvent):
    """Raised when an order is cancelled."""

    order_number: str
    old_status: str
    stock_released: bool = False
