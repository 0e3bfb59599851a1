"""Catalog read use-cases.

The storefront only reads the catalog; stock mutations belong to
``modules.products.ledger.StockLedger``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional

import structlog

from modules.products.exceptions import ProductNotFound
from modules.products.models import ProductStatus

if TYPE_CHECKING:
    from modules.products.models import Product
    from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


class CatalogService:
    """Public catalog queries.  Inactive products are never exposed."""

    def __init__(self, repository: IProductRepository) -> None:
        self._repo = repository

    def list_products(self, filters: Optional[Dict[str, Any]] = None) -> List[Product]:
        lookups = {"status": ProductStatus.ACTIVE}
        if filters:
            lookups.update(filters)
        return self._repo.list(lookups)

    def get_product(self, id: str) -> Product:
        """Raises ``ProductNotFound`` for unknown *and* inactive products."""
        product = self._repo.get_by_id(id)
        if product is None or not product.is_active:
            raise ProductNotFound()
        logger.debug("product.retrieved", product_id=str(id))
        return product
