"""Order service layer (Use Cases).

``OrderService`` is the order store: it owns the authoritative state
machine and every write to an order.  All write operations are atomic;
the service defines the unit-of-work boundary.

Rules enforced:
- Transitions are validated against ``TRANSITION_TABLE`` on a row locked
  with ``SELECT FOR UPDATE``; anything outside the table is rejected.
- Every transition stamps ``updated_at`` and appends a history record.
- Any path into ``PAID`` commits stock exactly once (``stock_updated``).
- Cancelling an order whose stock was committed releases it.
- Customer-visible transitions emit ``OrderStatusChanged`` into the
  outbox; the notification worker picks it up after commit.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

import structlog
from django.db import transaction

from modules.orders.constants import (
    EDITABLE_STATES,
    NOTIFY_STATES,
    OrderStatus,
    StatusSource,
)
from modules.orders.events import OrderCancelled, OrderStatusChanged
from modules.orders.exceptions import (
    AmbiguousOrderNumber,
    InvalidOrderStatus,
    OrderNotEditable,
    OrderNotFound,
)
from modules.products.ledger import StockLedger, StockLine

if TYPE_CHECKING:
    from modules.orders.dtos import OrderInputDTO, StatusTransitionDTO
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.products.models import Product
    from modules.products.repositories.interfaces import IProductRepository
    from modules.payments.dtos import PaymentIntention

logger = structlog.get_logger(__name__)


class OrderService:
    """Application service for Order use-cases.

    Receives repositories via constructor injection (DIP).
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        product_repository: IProductRepository,
        ledger: Optional[StockLedger] = None,
    ) -> None:
        self._order_repo = order_repository
        self._product_repo = product_repository
        self._ledger = ledger or StockLedger(product_repository)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    @transaction.atomic
    def create_pending_order(self, dto: OrderInputDTO) -> Order:
        """Create a ``CREATED`` order for the storefront checkout.

        Every line is validated before anything is written; stock is *not*
        decremented here (that happens once payment is accepted).

        Raises:
            InsufficientStock: with every shortfall found.
        """
        lines = [StockLine(item.product_id, item.quantity) for item in dto.items]
        products = self._ledger.check_availability(lines)

        order = self._order_repo.create(
            self._order_data(dto, products, status=OrderStatus.CREATED, stock_updated=False)
        )
        self._order_repo.add_history(
            order_id=order.id,
            status=OrderStatus.CREATED,
            source=StatusSource.CHECKOUT,
            notes="Order created at checkout",
        )
        logger.info(
            "order.created",
            order_id=str(order.id),
            order_number=order.order_number,
            total_amount=str(order.total_amount),
            source=StatusSource.CHECKOUT,
        )
        return order

    @transaction.atomic
    def create_admin_order(self, dto: OrderInputDTO) -> Order:
        """Create a counter-sale order, committing its stock immediately.

        No payment intention is requested.  All lines are validated, then
        decremented with conditional updates, all or none.
        """
        lines = [StockLine(item.product_id, item.quantity) for item in dto.items]
        products = self._ledger.check_availability(lines)
        self._ledger.commit_lines(lines)

        order = self._order_repo.create(
            self._order_data(dto, products, status=OrderStatus.CREATED, stock_updated=True)
        )
        self._order_repo.add_history(
            order_id=order.id,
            status=OrderStatus.CREATED,
            source=StatusSource.ADMIN,
            notes="Order created by staff; stock committed",
        )
        logger.info(
            "order.created",
            order_id=str(order.id),
            order_number=order.order_number,
            total_amount=str(order.total_amount),
            source=StatusSource.ADMIN,
        )
        return order

    def _order_data(
        self,
        dto: OrderInputDTO,
        products: Dict[str, Product],
        status: str,
        stock_updated: bool,
    ) -> Dict[str, Any]:
        return {
            "customer_name": dto.customer_name,
            "customer_phone": dto.customer_phone,
            "customer_email": dto.customer_email or "",
            "customer_address": dto.customer_address or "",
            "shipping": dto.shipping,
            "notes": dto.notes,
            "idempotency_key": dto.idempotency_key,
            "status": status,
            "stock_updated": stock_updated,
            "items": [
                _snapshot(products[item.product_id], item.quantity) for item in dto.items
            ],
        }

    # ------------------------------------------------------------------
    # Gateway bookkeeping
    # ------------------------------------------------------------------

    @transaction.atomic
    def attach_intention(self, order_id: Any, intention: PaymentIntention) -> Order:
        """Store the gateway artifacts and move the order to ``PROCESSING``."""
        order = self._lock(order_id)
        order.gateway_intention_id = intention.intention_id
        order.qr_payload = intention.qr
        order.deep_link = intention.deep_link
        order.checkout_url = intention.checkout_url or ""
        if order.can_transition_to(OrderStatus.PROCESSING):
            return self.apply_locked_transition(
                order,
                OrderStatus.PROCESSING,
                source=StatusSource.CHECKOUT,
                notes="Payment intention created",
            )
        self._order_repo.save(order)
        return order

    @transaction.atomic
    def mark_failed(self, order_id: Any, reason: str) -> Optional[Order]:
        """Move an order to ``FAILED`` after a gateway error.

        Never raises for a state that cannot fail any more (e.g. a webhook
        already settled it); returns ``None`` for unknown orders.
        """
        order = self._order_repo.get_for_update(str(order_id))
        if order is None:
            logger.warning("order.mark_failed_missing", order_id=str(order_id))
            return None
        if not order.can_transition_to(OrderStatus.FAILED):
            logger.warning(
                "order.mark_failed_skipped",
                order_id=str(order_id),
                current_status=order.status,
            )
            return order
        return self.apply_locked_transition(
            order, OrderStatus.FAILED, source=StatusSource.CHECKOUT, notes=reason
        )

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    @transaction.atomic
    def transition_status(
        self,
        order_id: Any,
        new_status: str,
        source: str = StatusSource.ADMIN,
        notes: str = "",
        payment_status: Optional[str] = None,
    ) -> Order:
        """Move an order to *new_status*.

        Acquires a row-level lock before validating the transition.

        Raises:
            OrderNotFound: order does not exist.
            InvalidOrderStatus: transition not in the table.
        """
        order = self._lock(order_id)
        if payment_status is not None:
            order.payment_status = payment_status
        return self.apply_locked_transition(order, new_status, source=source, notes=notes)

    def transition_by_reference(self, dto: StatusTransitionDTO) -> Order:
        """Admin status move addressed by id or by display number.

        Raises:
            AmbiguousOrderNumber: the number matches several orders.
        """
        order_id: Any = dto.order_id
        if order_id is None:
            matches = self._order_repo.find_by_order_number(dto.order_number or "")
            if not matches:
                raise OrderNotFound()
            if len(matches) > 1:
                logger.warning(
                    "order.ambiguous_number",
                    order_number=dto.order_number,
                    match_count=len(matches),
                )
                raise AmbiguousOrderNumber()
            order_id = matches[0].id
        return self.transition_status(
            order_id, dto.status, source=StatusSource.ADMIN, notes=dto.notes
        )

    def cancel_order(
        self, order_id: Any, notes: str = "", source: str = StatusSource.ADMIN
    ) -> Order:
        """Cancel an order; committed stock goes back to the shelf."""
        return self.transition_status(
            order_id,
            OrderStatus.CANCELLED,
            source=source,
            notes=notes or "Order cancelled",
        )

    def apply_locked_transition(
        self,
        order: Order,
        new_status: str,
        source: str,
        notes: str = "",
    ) -> Order:
        """Validate and write a transition on an order locked by the caller."""
        old_status = order.status
        log = logger.bind(
            order_id=str(order.id),
            current_status=old_status,
            new_status=new_status,
            source=source,
        )
        if not order.can_transition_to(new_status):
            log.warning("order.invalid_transition")
            raise InvalidOrderStatus(
                f"Cannot transition from {old_status} to {new_status}."
            )

        if new_status == OrderStatus.PAID:
            self._commit_stock_once(order)

        stock_released = False
        if new_status == OrderStatus.CANCELLED and order.stock_updated:
            self._release_stock(order)
            stock_released = True

        order.status = new_status
        if new_status in NOTIFY_STATES:
            order.add_domain_event(
                OrderStatusChanged(
                    aggregate_id=order.id,
                    order_number=order.order_number,
                    old_status=old_status,
                    new_status=new_status,
                    customer_name=order.customer_name,
                    customer_email=order.customer_email,
                    total_amount=str(order.total_amount),
                )
            )
        elif new_status == OrderStatus.CANCELLED:
            order.add_domain_event(
                OrderCancelled(
                    aggregate_id=order.id,
                    order_number=order.order_number,
                    old_status=old_status,
                    stock_released=stock_released,
                )
            )

        has_events = bool(order.domain_events)
        self._order_repo.save(order)
        self._order_repo.add_history(
            order_id=order.id,
            status=new_status,
            old_status=old_status,
            source=source,
            notes=notes,
        )
        log.info("order.status_updated")
        if has_events:
            transaction.on_commit(_schedule_outbox_dispatch)
        return order

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------

    def _commit_stock_once(self, order: Order) -> bool:
        """Decrement stock for *order* unless it was already committed."""
        if order.stock_updated:
            logger.info("order.stock_already_committed", order_id=str(order.id))
            return False
        oversold = self._ledger.commit_order(_lines_of(order))
        order.stock_updated = True
        logger.info(
            "stock.committed_for_order",
            order_id=str(order.id),
            oversold=oversold,
        )
        return True

    def _release_stock(self, order: Order) -> None:
        for line in _lines_of(order):
            self._ledger.release(line.product_id, line.quantity)
        logger.info("order.stock_released", order_id=str(order.id))

    def record_payment_status(self, order: Order, payment_status: str) -> Order:
        """Store the raw gateway status without moving the order."""
        order.payment_status = payment_status
        return self._order_repo.save(order)

    # ------------------------------------------------------------------
    # Edit
    # ------------------------------------------------------------------

    @transaction.atomic
    def edit_order(self, order_id: Any, dto: OrderInputDTO) -> Order:
        """Replace customer data and line items.

        Existing lines keep their snapshot price; new lines snapshot the
        current catalog price.  Stock already committed for the order is
        adjusted by per-product deltas; otherwise availability is only
        validated.  Validation of every line precedes any mutation.

        Raises:
            OrderNotFound, OrderNotEditable, InsufficientStock
        """
        order = self._lock(order_id)
        log = logger.bind(order_id=str(order.id), status=order.status)
        if order.status not in EDITABLE_STATES:
            log.warning("order.edit_rejected")
            raise OrderNotEditable(f"Order in status {order.status} cannot be edited.")

        current_items = {str(item.product_id): item for item in order.items.all()}
        previous = {pid: item.quantity for pid, item in current_items.items()}
        requested = dto.quantities()

        if order.stock_updated:
            self._ledger.apply_deltas(previous, requested)
        else:
            self._ledger.check_availability(
                [StockLine(pid, qty) for pid, qty in requested.items()],
                exempt_inactive=previous.keys(),
            )

        new_ids = [pid for pid in requested if pid not in current_items]
        products = self._product_repo.get_many(new_ids) if new_ids else {}
        lines: List[Dict[str, Any]] = []
        for pid, quantity in requested.items():
            existing = current_items.get(pid)
            if existing is not None:
                lines.append(
                    {
                        "product_id": existing.product_id,
                        "name": existing.name,
                        "unit_price": existing.unit_price,
                        "image": existing.image,
                        "quantity": quantity,
                    }
                )
            else:
                lines.append(_snapshot(products[pid], quantity))

        order.customer_name = dto.customer_name
        order.customer_phone = dto.customer_phone
        order.customer_address = dto.customer_address or ""
        order.shipping = dto.shipping
        if dto.customer_email is not None:
            order.customer_email = dto.customer_email
        if dto.notes:
            order.notes = dto.notes

        self._order_repo.replace_items(order, lines)
        self._order_repo.save(order)
        log.info(
            "order.edited",
            total_amount=str(order.total_amount),
            item_count=len(lines),
            stock_adjusted=order.stock_updated,
        )
        return self.get_order(str(order.id))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: str) -> Order:
        """Retrieve a single order by ID.

        Raises:
            OrderNotFound: if the order does not exist.
        """
        order = self._order_repo.get_by_id(order_id)
        if not order:
            raise OrderNotFound()
        return order

    def find_by_idempotency_key(self, key: str) -> Optional[Order]:
        return self._order_repo.get_by_idempotency_key(key)

    def _lock(self, order_id: Any) -> Order:
        order = self._order_repo.get_for_update(str(order_id))
        if not order:
            raise OrderNotFound()
        return order


def _snapshot(product: Product, quantity: int) -> Dict[str, Any]:
    return {
        "product_id": product.id,
        "name": product.name,
        "unit_price": product.effective_price,
        "image": product.image,
        "quantity": quantity,
    }


def _lines_of(order: Order) -> Sequence[StockLine]:
    return [
        StockLine(str(item.product_id), item.quantity) for item in order.items.all()
    ]


def _schedule_outbox_dispatch() -> None:
    """Ask the worker to drain the outbox; a broker outage only delays it."""
    from modules.orders.tasks import dispatch_outbox_events

    try:
        dispatch_outbox_events.delay()
    except Exception:
        # The beat schedule drains the outbox anyway.
        logger.exception("outbox.dispatch_enqueue_failed")
