"""Event handlers for Orders domain events."""

from __future__ import annotations

import structlog

from modules.orders.events import OrderCancelled, OrderStatusChanged
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class OrderStatusChangedHandler(IEventHandler[OrderStatusChanged]):
    """Queues the customer e-mail for a customer-visible transition."""

    def handle(self, event: OrderStatusChanged) -> None:
        if not event.customer_email:
            logger.info(
                "notification.skipped",
                order_id=str(event.aggregate_id),
                reason="no_email",
            )
            return
        from modules.orders.tasks import send_order_status_email

        send_order_status_email.delay(
            order_id=str(event.aggregate_id),
            order_number=event.order_number,
            new_status=event.new_status,
            customer_name=event.customer_name,
            customer_email=event.customer_email,
        )
        logger.info(
            "notification.queued",
            order_id=str(event.aggregate_id),
            new_status=event.new_status,
        )


class OrderCancelledHandler(IEventHandler[OrderCancelled]):
    def handle(self, event: OrderCancelled) -> None:
        logger.info(
            "order.cancelled",
            order_id=str(event.aggregate_id),
            order_number=event.order_number,
            previous_status=event.old_status,
            stock_released=event.stock_released,
        )


order_status_changed_handler = OrderStatusChangedHandler()
order_cancelled_handler = OrderCancelledHandler()
