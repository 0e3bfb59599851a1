"""Order repository interface.

Extends ``IRepository[Order]`` with methods required by the Order
aggregate: atomic creation with items, locked reads for state changes,
status history tracking and look-ups by idempotency key / display number.

The Service Layer depends exclusively on this contract (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.orders.models import Order, OrderItem, OrderStatusHistory


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root.

    The Order aggregate includes OrderItem children and
    OrderStatusHistory records.  Mutations must be atomic.
    """

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order with its items atomically.

        ``data`` holds the order fields plus ``items``: a list of dicts with
        ``product_id``, ``name``, ``unit_price``, ``quantity`` and ``image``.
        ``total_amount`` is computed from the items.
        """

    @abstractmethod
    def get_for_update(self, id: str) -> Optional[Order]:
        """Retrieve an order with a row-level lock (SELECT FOR UPDATE)."""

    @abstractmethod
    def replace_items(self, order: Order, items: Sequence[Dict[str, Any]]) -> List[OrderItem]:
        """Replace the order's lines and recompute ``total_amount``."""

    @abstractmethod
    def add_history(
        self,
        order_id: Any,
        status: str,
        old_status: Optional[str] = None,
        source: str = "system",
        notes: str = "",
    ) -> OrderStatusHistory:
        """Record a status change in the order's audit trail."""

    @abstractmethod
    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        """Retrieve an order by its idempotency key."""

    @abstractmethod
    def find_by_order_number(self, order_number: str) -> List[Order]:
        """All orders carrying *order_number* (it is not unique)."""

    @abstractmethod
    def count(self) -> int:
        """Number of orders; feeds the display-number sequence."""
