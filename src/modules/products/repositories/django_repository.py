"""Django ORM implementation of the Product repository.

Satisfies ``IProductRepository`` using Django's QuerySet API.  Stock
primitives are single ``UPDATE ... WHERE`` statements built from ``F``
expressions, so two concurrent orders touching the same product can
never both pass a check that was only valid at read time.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F, PositiveIntegerField, Value
from django.db.models.functions import Greatest

from modules.core.clock import local_now
from modules.products.models import Product
from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


class ProductDjangoRepository(IProductRepository):
    """Concrete Product repository backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[Product]:
        """Retrieve a product by primary key.

        Returns ``None`` for non-existent or invalid IDs.
        """
        try:
            return Product.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_many(self, ids: Iterable[str]) -> Dict[str, Product]:
        valid_ids = []
        for raw in ids:
            try:
                Product._meta.pk.to_python(raw)
            except ValidationError:
                continue
            valid_ids.append(raw)
        if not valid_ids:
            return {}
        return {str(p.id): p for p in Product.objects.filter(id__in=valid_ids)}

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Product]:
        """List products with optional Django ORM look-ups.

        Examples of valid filters::

            {"status": "active"}
            {"name__icontains": "mate"}
        """
        queryset = Product.objects.all()
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    @transaction.atomic
    def save(self, entity: Product) -> Product:
        entity.touch()
        entity.save()
        logger.info("product.saved", product_id=str(entity.id), sku=entity.sku)
        return entity

    def get_by_sku(self, sku: str) -> Optional[Product]:
        return Product.objects.filter(sku=sku.strip().upper()).first()

    # ------------------------------------------------------------------
    # Atomic stock primitives
    # ------------------------------------------------------------------

    def decrement_if_available(self, id: str, quantity: int) -> bool:
        updated = Product.objects.filter(
            id=id, stock_quantity__gte=quantity
        ).update(
            stock_quantity=F("stock_quantity") - quantity,
            updated_at=local_now(),
        )
        return updated == 1

    def decrement_floored(self, id: str, quantity: int) -> bool:
        updated = Product.objects.filter(id=id).update(
            stock_quantity=Greatest(
                F("stock_quantity") - quantity,
                Value(0),
                output_field=PositiveIntegerField(),
            ),
            updated_at=local_now(),
        )
        return updated == 1

    def increment(self, id: str, quantity: int) -> bool:
        updated = Product.objects.filter(id=id).update(
            stock_quantity=F("stock_quantity") + quantity,
            updated_at=local_now(),
        )
        return updated == 1
