"""Payment webhook reconciliation.

Turns an unauthenticated, at-least-once, possibly reordered gateway
notification into one monotonic order transition and, on acceptance,
exactly one stock commit.

Order of checks:
1. Signature over the raw body; nothing is looked up before it passes.
2. ``external_intention_id`` present, ``status`` a known gateway token.
3. Order row locked (``SELECT FOR UPDATE``), so two deliveries for the
   same order serialise on the database.
4. Settled or cancelled orders short-circuit: a redelivery is a no-op.
5. A status that would move the order backwards only records the raw
   gateway status.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from django.db import transaction

from modules.orders.constants import SETTLED_STATES, OrderStatus, StatusSource
from modules.orders.exceptions import OrderNotFound
from modules.payments.constants import map_gateway_status
from modules.payments.dtos import WebhookResult
from modules.payments.exceptions import MissingIntentionId

if TYPE_CHECKING:
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.orders.services import OrderService
    from modules.payments.signature import SignatureVerifier

logger = structlog.get_logger(__name__)


class WebhookReconciler:
    def __init__(
        self,
        verifier: SignatureVerifier,
        order_service: OrderService,
        order_repository: IOrderRepository,
    ) -> None:
        self._verifier = verifier
        self._service = order_service
        self._orders = order_repository

    def reconcile(self, raw_body: bytes) -> WebhookResult:
        """Apply one notification.

        Raises:
            InvalidSignature: verification failed (no order lookup done).
            MissingIntentionId: no correlation id in the notification.
            UnrecognizedPaymentStatus: unknown gateway status token.
            OrderNotFound: no order carries that id.
        """
        claims = self._verifier.verify(raw_body)

        intention_id = claims.get("external_intention_id")
        if not isinstance(intention_id, str) or not intention_id.strip():
            logger.warning("webhook.missing_intention_id")
            raise MissingIntentionId()
        gateway_status, target = map_gateway_status(claims.get("status"))

        log = logger.bind(
            order_id=intention_id,
            gateway_status=gateway_status.value,
            target_status=target.value,
        )
        with transaction.atomic():
            order = self._orders.get_for_update(intention_id.strip())
            if order is None:
                log.warning("webhook.order_not_found")
                raise OrderNotFound()
            log = log.bind(current_status=order.status)

            if order.status in SETTLED_STATES or order.status == OrderStatus.CANCELLED:
                log.info("webhook.duplicate_ignored")
                return WebhookResult(
                    order_id=str(order.id),
                    status=order.status,
                    payment_status=order.payment_status,
                    duplicate=True,
                )

            reference = claims.get("payment_id") or claims.get("id")
            if isinstance(reference, (str, int)) and reference != "":
                order.payment_reference = str(reference)

            if order.status == target or not order.can_transition_to(target):
                if order.status != target:
                    log.info("webhook.stale_status_ignored")
                self._service.record_payment_status(order, gateway_status.value)
                return WebhookResult(
                    order_id=str(order.id),
                    status=order.status,
                    payment_status=order.payment_status,
                )

            stock_was_committed = order.stock_updated
            order.payment_status = gateway_status.value
            order = self._service.apply_locked_transition(
                order,
                target,
                source=StatusSource.WEBHOOK,
                notes=f"Gateway status {gateway_status.value}",
            )
            stock_committed = order.stock_updated and not stock_was_committed

        log.info("webhook.processed", new_status=order.status, stock_committed=stock_committed)
        return WebhookResult(
            order_id=str(order.id),
            status=order.status,
            payment_status=order.payment_status,
            stock_committed=stock_committed,
        )
