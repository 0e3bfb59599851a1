"""Order, OrderItem, and OrderStatusHistory models.

Rules implemented here:
- Items are immutable snapshots ``{product_id, name, unit_price, quantity,
  image}``; the order never references a ``Product`` row.
- ``total_amount`` is always recomputed server-side from the persisted
  items (``recalculate_total``), never taken from the client.
- ``stock_updated`` is the idempotency fence for the one-time inventory
  commit; it only ever moves ``False -> True``.
- ``order_number`` is display-only: ``ORD-<unixMillis>-<seq>``, where the
  sequence comes from a plain count and can repeat under concurrent
  creation.  ``id`` is the correlation key sent to the payment gateway.
- Timestamps are written explicitly via ``touch()``.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable

import structlog
from django.core.validators import MinValueValidator
from django.db import models

from modules.core.models import BaseModel
from modules.orders.constants import (
    TERMINAL_STATES,
    OrderStatus,
    StatusSource,
    allowed_transitions,
    is_transition_allowed,
)
from shared.domain.events import DomainEventMixin

logger = structlog.get_logger(__name__)


class Order(DomainEventMixin, BaseModel):
    """Order aggregate root."""

    order_number = models.CharField(max_length=40, db_index=True, editable=False)
    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.CREATED,
    )
    payment_status = models.CharField(max_length=32, blank=True, default="")
    total_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    stock_updated = models.BooleanField(default=False)

    customer_name = models.CharField(max_length=255)
    customer_phone = models.CharField(max_length=40)
    customer_email = models.EmailField(blank=True, default="")
    customer_address = models.TextField(blank=True, default="")
    shipping = models.BooleanField(default=False)
    notes = models.TextField(blank=True, default="")

    gateway_intention_id = models.CharField(max_length=255, blank=True, default="")
    qr_payload = models.TextField(blank=True, default="")
    deep_link = models.TextField(blank=True, default="")
    checkout_url = models.TextField(blank=True, default="")
    payment_reference = models.CharField(max_length=255, blank=True, default="")

    idempotency_key = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
    )

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="orders_status_idx"),
            models.Index(fields=["-created_at"], name="orders_created_idx"),
            models.Index(fields=["customer_phone"], name="orders_phone_idx"),
        ]

    # ------------------------------------------------------------------
    # State Machine helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    def can_transition_to(self, new_status: str) -> bool:
        return is_transition_allowed(self.status, new_status, self.shipping)

    @property
    def next_statuses(self) -> list[str]:
        return allowed_transitions(self.status, self.shipping)

    # ------------------------------------------------------------------
    # Totals
    # ------------------------------------------------------------------

    def recalculate_total(self, items: Iterable[OrderItem] | None = None) -> Decimal:
        """Recompute ``total_amount`` from *items* (default: persisted items)."""
        if items is None:
            items = OrderItem.objects.filter(order_id=self.pk)
        total = sum(
            (item.unit_price * item.quantity for item in items),
            Decimal("0.00"),
        )
        self.total_amount = total
        return total

    # ------------------------------------------------------------------
    # Order number generation
    # ------------------------------------------------------------------

    @staticmethod
    def generate_order_number(now_millis: int, existing_count: int) -> str:
        """``ORD-<unixMillis>-<count + 1, zero-padded to 5>``."""
        return f"ORD-{now_millis}-{existing_count + 1:05d}"

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def __str__(self) -> str:
        return f"{self.order_number} ({self.status})"


class OrderItem(BaseModel):
    """Immutable line-item snapshot captured when the line is added.

    ``subtotal`` is always ``quantity * unit_price``, recalculated on save.
    """

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="items",
    )
    product_id = models.UUIDField()
    name = models.CharField(max_length=255)
    image = models.CharField(max_length=500, blank=True, default="")
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    quantity = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
    )
    subtotal = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        editable=False,
    )

    class Meta:
        db_table = "order_items"
        ordering = ["created_at", "id"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="order_items_quantity_positive",
            ),
        ]

    def save(self, *args: Any, **kwargs: Any) -> None:
        self.subtotal = self.quantity * self.unit_price
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.name} x{self.quantity} (${self.subtotal})"


class OrderStatusHistory(BaseModel):
    """Append-only audit trail for order status transitions.

    ``source`` records who drove the change (checkout, webhook, admin or
    system).  Records are never edited.
    """

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="status_history",
    )
    old_status = models.CharField(  # noqa: DJ01
        max_length=20,
        choices=OrderStatus.choices,
        null=True,
        blank=True,
    )
    new_status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
    )
    source = models.CharField(
        max_length=20,
        choices=StatusSource.choices,
        default=StatusSource.SYSTEM,
    )
    notes = models.TextField(blank=True, default="")

    class Meta:
        db_table = "order_status_history"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(
                fields=["order", "created_at"],
                name="osh_order_created_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.order} : {self.old_status} -> {self.new_status}"
