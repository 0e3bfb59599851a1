"""Asynchronous order tasks.

``dispatch_outbox_events`` drains the transactional outbox onto the
in-process event bus; ``send_order_status_email`` is the notification
worker.  Neither runs inside the request that changed the order.
"""

from __future__ import annotations

import structlog
from celery import shared_task
from django.db import transaction

from modules.core.models import OutboxEvent
from modules.orders.notifications import deliver, render_status_email
from shared.domain.events import DomainEvent
from shared.infrastructure.bus import event_bus

logger = structlog.get_logger(__name__)

OUTBOX_TOPIC = "orders"
OUTBOX_MAX_RETRIES = 5


@shared_task(name="orders.dispatch_outbox_events")
def dispatch_outbox_events(batch_size: int = 100) -> dict:
    """Publish pending outbox rows; failed rows are retried on the next run."""
    published = failed = 0
    with transaction.atomic():
        rows = list(
            OutboxEvent.objects.select_for_update(skip_locked=True)
            .deliverable(OUTBOX_TOPIC, OUTBOX_MAX_RETRIES)[:batch_size]
        )
        for row in rows:
            log = logger.bind(
                outbox_id=str(row.id),
                event_type=row.event_type,
                aggregate_id=row.aggregate_id,
            )
            try:
                event_bus.publish(DomainEvent.from_payload(row.event_type, row.payload))
            except Exception as exc:
                log.exception("outbox.publish_failed", retry_count=row.retry_count)
                row.mark_as_failed(str(exc))
                failed += 1
                continue
            row.mark_as_published()
            published += 1
    if rows:
        logger.info("outbox.dispatched", published=published, failed=failed)
    return {"published": published, "failed": failed}


@shared_task(
    name="orders.send_order_status_email",
    autoretry_for=(OSError,),
    retry_backoff=True,
    max_retries=3,
)
def send_order_status_email(
    order_id: str,
    order_number: str,
    new_status: str,
    customer_name: str,
    customer_email: str,
) -> bool:
    email = render_status_email(order_number, new_status, customer_name, customer_email)
    deliver(email)
    logger.info(
        "notification.email_sent",
        order_id=order_id,
        order_number=order_number,
        new_status=new_status,
    )
    return True
