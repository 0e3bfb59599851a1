"""Catalog and inventory exceptions.

Raised by the StockLedger and the catalog service.  Views translate them
into the uniform error format (``modules.core.exceptions``).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from modules.core.exceptions import DomainError


@dataclass(frozen=True)
class StockShortfall:
    """One line item that cannot be satisfied from current stock."""

    product_id: str
    requested: int
    available: int
    error: str
    name: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"productId": self.product_id}
        if self.name is not None:
            data["name"] = self.name
        data.update(
            available=self.available, requested=self.requested, error=self.error
        )
        return data


class ProductNotFound(DomainError):
    """The requested product does not exist."""

    code = "product_not_found"
    message = "Product not found."


class InsufficientStock(DomainError):
    """One or more products lack the stock required by the operation.

    Carries **every** shortfall found, never only the first.
    """

    code = "insufficient_stock"
    message = "Insufficient stock for some products."

    def __init__(self, shortfalls: Iterable[StockShortfall]) -> None:
        self.shortfalls: List[StockShortfall] = list(shortfalls)
        super().__init__(self.message)

    @property
    def details(self) -> List[Dict[str, Any]]:
        return [s.as_dict() for s in self.shortfalls]
