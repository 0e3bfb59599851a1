"""Product repository interface.

Besides catalog look-ups, the contract exposes the **atomic** stock
primitives the StockLedger is built on.  Implementations must apply each
primitive as a single conditional update at the storage layer, never as
read-modify-write in application code.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Dict, Iterable, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.products.models import Product


class IProductRepository(IRepository["Product"]):
    """Repository contract for the Product aggregate."""

    @abstractmethod
    def get_many(self, ids: Iterable[str]) -> Dict[str, "Product"]:
        """Return the existing products among *ids*, keyed by ``str(id)``."""

    @abstractmethod
    def get_by_sku(self, sku: str) -> Optional["Product"]:
        """Retrieve a product by SKU."""

    @abstractmethod
    def decrement_if_available(self, id: str, quantity: int) -> bool:
        """Atomically subtract *quantity* only if enough stock remains.

        Returns ``False`` (and changes nothing) when stock is short or the
        product does not exist.
        """

    @abstractmethod
    def decrement_floored(self, id: str, quantity: int) -> bool:
        """Atomically subtract *quantity*, flooring the counter at zero."""

    @abstractmethod
    def increment(self, id: str, quantity: int) -> bool:
        """Atomically add *quantity* back to stock."""
