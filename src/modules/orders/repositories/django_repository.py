"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API.
All write operations are wrapped in ``transaction.atomic()`` so the
Order aggregate (Order + OrderItems + outbox rows) is persisted atomically.

Concurrency control on status updates uses ``select_for_update()``:
the locked row is the per-order serialisation point for webhooks and
admin transitions.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import QuerySet

from modules.core.clock import local_now
from modules.core.models import OutboxEvent
from modules.orders.models import Order, OrderItem, OrderStatusHistory
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)

ORDER_FIELDS = (
    "customer_name",
    "customer_phone",
    "customer_email",
    "customer_address",
    "shipping",
    "notes",
    "status",
    "stock_updated",
    "idempotency_key",
)


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    @transaction.atomic
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order with its items atomically."""
        now = local_now()
        order = Order(
            order_number=Order.generate_order_number(
                int(now.timestamp() * 1000), self.count()
            ),
            created_at=now,
            updated_at=now,
            **{field: data[field] for field in ORDER_FIELDS if data.get(field) is not None},
        )
        order.save()
        items = self._create_items(order, data.get("items", []))
        order.recalculate_total(items)
        order.save(update_fields=["total_amount"])

        logger.info(
            "order.persisted",
            order_id=str(order.id),
            order_number=order.order_number,
            item_count=len(items),
        )
        return order

    @transaction.atomic
    def replace_items(self, order: Order, items: Sequence[Dict[str, Any]]) -> List[OrderItem]:
        OrderItem.objects.filter(order_id=order.id).delete()
        created = self._create_items(order, items)
        order.recalculate_total(created)
        return created

    def _create_items(self, order: Order, items: Sequence[Dict[str, Any]]) -> List[OrderItem]:
        created = []
        for item_data in items:
            item = OrderItem(
                order=order,
                product_id=item_data["product_id"],
                name=item_data["name"],
                image=item_data.get("image") or "",
                unit_price=item_data["unit_price"],
                quantity=item_data["quantity"],
            )
            item.save()
            created.append(item)
        return created

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def queryset(self) -> QuerySet[Order]:
        return Order.objects.prefetch_related("items", "status_history")

    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order with prefetched items and history.

        Returns ``None`` for non-existent or invalid IDs.
        """
        try:
            return self.queryset().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Order]:
        """List orders with optional Django ORM look-ups.

        Examples of valid filters::

            {"status": "PAID"}
            {"customer_phone__icontains": "11"}
            {"created_at__date__gte": date(2025, 1, 1)}
        """
        queryset = self.queryset()
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    def get_for_update(self, id: str) -> Optional[Order]:
        """Retrieve an order with a row-level lock (SELECT FOR UPDATE).

        Must be called inside ``transaction.atomic``.  Returns ``None``
        for non-existent or invalid IDs.
        """
        try:
            return Order.objects.select_for_update().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        return self.queryset().filter(idempotency_key=key).first()

    def find_by_order_number(self, order_number: str) -> List[Order]:
        return list(Order.objects.filter(order_number=order_number.strip()))

    def count(self) -> int:
        return Order.objects.count()

    # ------------------------------------------------------------------
    # Save (IRepository contract)
    # ------------------------------------------------------------------

    @transaction.atomic
    def save(self, entity: Order) -> Order:
        """Persist an order and flush its domain events into the outbox."""
        entity.touch()
        entity.save()

        events = entity.domain_events
        for event in events:
            OutboxEvent.objects.create(
                event_type=event.event_name,
                aggregate_id=str(event.aggregate_id),
                payload=_serialize_event_payload(event),
                topic="orders",
            )
        entity.clear_domain_events()

        logger.debug("order.saved", order_id=str(entity.id), event_count=len(events))
        return entity

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def add_history(
        self,
        order_id: Any,
        status: str,
        old_status: Optional[str] = None,
        source: str = "system",
        notes: str = "",
    ) -> OrderStatusHistory:
        """Record a status change in the order's audit trail."""
        history = OrderStatusHistory.objects.create(
            order_id=order_id,
            old_status=old_status,
            new_status=status,
            source=source,
            notes=notes,
        )
        logger.info(
            "order.history_added",
            order_id=str(order_id),
            old_status=old_status,
            new_status=status,
            source=source,
        )
        return history


def _serialize_event_payload(event: Any) -> Dict[str, Any]:
    data = asdict(event)
    normalized = _normalize_for_json(data)
    return json.loads(json.dumps(normalized))


def _normalize_for_json(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, list):
        return [_normalize_for_json(item) for item in value]
    if isinstance(value, dict):
        return {key: _normalize_for_json(val) for key, val in value.items()}
    return value
