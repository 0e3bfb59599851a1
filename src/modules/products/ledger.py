"""StockLedger: quantity-bounded inventory mutations.

Every other component goes through the ledger to touch stock.  The rules:

- **Validate before mutating.**  ``check_availability`` reads every line in
  one query and reports *all* shortfalls at once.
- **Mutate atomically.**  Decrements are single conditional updates
  (``stock >= qty``); a conditional that matches no row is itself the
  insufficient-stock signal.
- **All or none.**  Multi-line mutations run inside ``transaction.atomic``
  so a late failure rolls back the lines already applied.

Stock is not held "reserved" between checkout and payment: the
webhook-confirmed flow decrements only once payment is accepted
(``commit_order``).
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from typing import TYPE_CHECKING, AbstractSet, Dict, Iterable, List, Mapping
from uuid import UUID

import structlog
from django.db import transaction

from modules.products.exceptions import InsufficientStock, StockShortfall

if TYPE_CHECKING:
    from modules.products.models import Product
    from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)

PRODUCT_NOT_FOUND = "product_not_found"
PRODUCT_INACTIVE = "product_inactive"
INSUFFICIENT_STOCK = "insufficient_stock"


def canonical_product_id(raw) -> str:
    """Lowercase hyphenated form of a UUID id; anything else is returned as sent.

    Unparseable ids stay as they are so lookups report them as
    ``product_not_found`` rather than failing validation.
    """
    try:
        return str(UUID(str(raw)))
    except ValueError:
        return str(raw)


@dataclass(frozen=True)
class StockLine:
    product_id: str
    quantity: int


def merge_lines(lines: Iterable[StockLine]) -> "OrderedDict[str, int]":
    """Sum quantities per product, preserving first-seen order."""
    merged: "OrderedDict[str, int]" = OrderedDict()
    for line in lines:
        key = canonical_product_id(line.product_id)
        merged[key] = merged.get(key, 0) + line.quantity
    return merged


class StockLedger:
    """Inventory operations on top of an ``IProductRepository``."""

    def __init__(self, product_repository: IProductRepository) -> None:
        self._repo = product_repository

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def check_availability(
        self,
        lines: Iterable[StockLine],
        exempt_inactive: Iterable[str] = (),
    ) -> Dict[str, Product]:
        """Return the products for *lines* or raise with every shortfall.

        Raises:
            InsufficientStock: one or more lines are missing, inactive or
                short.  ``shortfalls`` lists all of them.

        Products in *exempt_inactive* (lines already on an order) may be
        inactive; every other line must reference an active product.
        """
        wanted = merge_lines(lines)
        products = self._repo.get_many(wanted.keys())
        shortfalls = self._shortfalls(
            wanted, products, {canonical_product_id(pid) for pid in exempt_inactive}
        )
        if shortfalls:
            logger.info(
                "stock.check_failed",
                shortfall_count=len(shortfalls),
                product_ids=[s.product_id for s in shortfalls],
            )
            raise InsufficientStock(shortfalls)
        return products

    def reserve_check(self, product_id: str, quantity: int) -> Product:
        """Single-line availability check."""
        products = self.check_availability([StockLine(product_id, quantity)])
        return products[canonical_product_id(product_id)]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def commit_decrement(self, product_id: str, quantity: int) -> None:
        """Atomically decrement, failing if stock is short at write time."""
        if not self._repo.decrement_if_available(str(product_id), quantity):
            product = self._repo.get_by_id(str(product_id))
            raise InsufficientStock(
                [
                    StockShortfall(
                        product_id=str(product_id),
                        name=product.name if product else None,
                        requested=quantity,
                        available=product.stock_quantity if product else 0,
                        error=INSUFFICIENT_STOCK if product else PRODUCT_NOT_FOUND,
                    )
                ]
            )
        logger.info("stock.decremented", product_id=str(product_id), quantity=quantity)

    def release(self, product_id: str, quantity: int) -> None:
        """Compensating increment; unconditional."""
        if not self._repo.increment(str(product_id), quantity):
            logger.warning(
                "stock.release_skipped",
                product_id=str(product_id),
                quantity=quantity,
                reason="product_missing",
            )
            return
        logger.info("stock.released", product_id=str(product_id), quantity=quantity)

    @transaction.atomic
    def commit_lines(self, lines: Iterable[StockLine]) -> None:
        """Validate every line, then decrement them all or none."""
        wanted = merge_lines(lines)
        self.check_availability(
            [StockLine(pid, qty) for pid, qty in wanted.items()]
        )
        for product_id, quantity in wanted.items():
            self.commit_decrement(product_id, quantity)

    @transaction.atomic
    def commit_order(self, lines: Iterable[StockLine]) -> List[str]:
        """Decrement stock for a paid order.

        Payment is already captured, so this never rejects: a line oversold
        since checkout is floored at zero and reported.  Returns the product
        ids that were oversold.
        """
        oversold: List[str] = []
        for product_id, quantity in merge_lines(lines).items():
            if self._repo.decrement_if_available(product_id, quantity):
                logger.info("stock.committed", product_id=product_id, quantity=quantity)
                continue
            if self._repo.decrement_floored(product_id, quantity):
                oversold.append(product_id)
                logger.warning(
                    "stock.oversold", product_id=product_id, quantity=quantity
                )
            else:
                logger.warning(
                    "stock.commit_skipped",
                    product_id=product_id,
                    quantity=quantity,
                    reason="product_missing",
                )
        return oversold

    @transaction.atomic
    def apply_deltas(
        self,
        previous: Mapping[str, int],
        new: Mapping[str, int],
    ) -> Dict[str, int]:
        """Apply ``new - previous`` per product.

        Positive deltas pass the same shortfall check as a fresh reservation
        (all validated before any mutation); negative deltas and removed
        products are unconditional releases.  Returns the non-zero deltas.
        """
        deltas = compute_deltas(previous, new)
        increases = {pid: d for pid, d in deltas.items() if d > 0}
        if increases:
            self.check_availability(
                [StockLine(pid, qty) for pid, qty in increases.items()],
                exempt_inactive=previous.keys(),
            )
        for product_id, delta in deltas.items():
            if delta > 0:
                self.commit_decrement(product_id, delta)
            else:
                self.release(product_id, -delta)
        logger.info("stock.deltas_applied", deltas=deltas)
        return deltas

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _shortfalls(
        wanted: Mapping[str, int],
        products: Mapping[str, Product],
        exempt_inactive: AbstractSet[str],
    ) -> List[StockShortfall]:
        shortfalls: List[StockShortfall] = []
        for product_id, quantity in wanted.items():
            product = products.get(product_id)
            if product is None:
                shortfalls.append(
                    StockShortfall(
                        product_id=product_id,
                        requested=quantity,
                        available=0,
                        error=PRODUCT_NOT_FOUND,
                    )
                )
            elif not product.is_active and product_id not in exempt_inactive:
                shortfalls.append(
                    StockShortfall(
                        product_id=product_id,
                        name=product.name,
                        requested=quantity,
                        available=0,
                        error=PRODUCT_INACTIVE,
                    )
                )
            elif product.stock_quantity < quantity:
                shortfalls.append(
                    StockShortfall(
                        product_id=product_id,
                        name=product.name,
                        requested=quantity,
                        available=product.stock_quantity,
                        error=INSUFFICIENT_STOCK,
                    )
                )
        return shortfalls


def compute_deltas(previous: Mapping[str, int], new: Mapping[str, int]) -> Dict[str, int]:
    """``new - previous`` per product; products dropped from *new* release fully."""
    previous = {canonical_product_id(p): q for p, q in previous.items()}
    new = {canonical_product_id(p): q for p, q in new.items()}
    deltas: Dict[str, int] = {}
    for product_id in list(previous) + [p for p in new if p not in previous]:
        delta = new.get(product_id, 0) - previous.get(product_id, 0)
        if delta:
            deltas[product_id] = delta
    return deltas
