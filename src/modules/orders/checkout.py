"""Storefront checkout: cart to order to payment intention.

Stages, each logged with the order id once it exists:

1. ``validate``: every line checked against the catalog, all shortfalls
   reported together; nothing is written on failure.
2. ``create``: a ``CREATED`` order with price snapshots, committed before
   the gateway is contacted.
3. ``intention``: one bounded call to the gateway.  On any gateway error
   the order is moved to ``FAILED`` before the error propagates.
4. ``attach``: gateway artifacts stored, order moved to ``PROCESSING``.

Stock is not touched here; it is committed when the payment is accepted.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from django.db import IntegrityError

from modules.orders.dtos import CheckoutResultDTO
from modules.orders.exceptions import IdempotencyConflict
from modules.payments.exceptions import GatewayError

if TYPE_CHECKING:
    from modules.orders.dtos import OrderInputDTO
    from modules.orders.models import Order
    from modules.orders.services import OrderService
    from modules.payments.gateway import PaymentGatewayClient

logger = structlog.get_logger(__name__)


class CheckoutOrchestrator:
    def __init__(self, order_service: OrderService, gateway_client: PaymentGatewayClient) -> None:
        self._orders = order_service
        self._gateway = gateway_client

    def checkout(self, dto: OrderInputDTO) -> CheckoutResultDTO:
        """Run a checkout.

        Raises:
            InsufficientStock: one or more lines cannot be served.
            GatewayError: the gateway failed; the order is already ``FAILED``.
            IdempotencyConflict: the key belongs to a checkout that never
                obtained a payment session.
        """
        log = logger.bind(item_count=len(dto.items))
        log.info("checkout.started", stage="validate")

        if dto.idempotency_key:
            existing = self._orders.find_by_idempotency_key(dto.idempotency_key)
            if existing is not None:
                return self._replay(existing)

        try:
            order = self._orders.create_pending_order(dto)
        except IntegrityError:
            # Lost a race with a concurrent request carrying the same key.
            existing = (
                self._orders.find_by_idempotency_key(dto.idempotency_key)
                if dto.idempotency_key
                else None
            )
            if existing is None:
                raise
            return self._replay(existing)

        log = log.bind(order_id=str(order.id), order_number=order.order_number)
        log.info("checkout.order_created", stage="create", total_amount=str(order.total_amount))

        try:
            intention = self._gateway.create_intention(order)
        except GatewayError as exc:
            log.error("checkout.gateway_failed", stage="intention", code=exc.code)
            self._orders.mark_failed(order.id, reason=f"Payment intention failed ({exc.code})")
            raise

        order = self._orders.attach_intention(order.id, intention)
        log.info(
            "checkout.completed",
            stage="attach",
            intention_id=intention.intention_id,
        )
        return _result(order)

    def _replay(self, order: Order) -> CheckoutResultDTO:
        if not order.gateway_intention_id:
            logger.warning(
                "checkout.idempotency_conflict",
                order_id=str(order.id),
                status=order.status,
            )
            raise IdempotencyConflict()
        logger.info("checkout.idempotent_replay", order_id=str(order.id))
        return _result(order).model_copy(update={"replayed": True})


def _result(order: Order) -> CheckoutResultDTO:
    return CheckoutResultDTO(
        order_id=order.id,
        order_number=order.order_number,
        intention_id=order.gateway_intention_id,
        qr=order.qr_payload,
        deep_link=order.deep_link,
        checkout_url=order.checkout_url,
        amount=order.total_amount,
    )
