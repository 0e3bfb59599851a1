"""Catalog DRF serializers.

Wire keys are camelCase; ``source=`` maps them onto the model's fields.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.products.models import Product


class ProductSerializer(serializers.ModelSerializer):
    """Public read representation of a catalog entry."""

    salePrice = serializers.DecimalField(
        source="sale_price", max_digits=12, decimal_places=2, read_only=True
    )
    effectivePrice = serializers.DecimalField(
        source="effective_price", max_digits=12, decimal_places=2, read_only=True
    )
    stockQuantity = serializers.IntegerField(source="stock_quantity", read_only=True)
    inStock = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = [
            "id",
            "sku",
            "name",
            "description",
            "image",
            "price",
            "salePrice",
            "effectivePrice",
            "stockQuantity",
            "inStock",
            "status",
        ]
        read_only_fields = fields

    def get_inStock(self, obj: Product) -> bool:
        return obj.stock_quantity > 0
