"""Public catalog API.

Anonymous, read-only, admitted through the per-IP sliding-window limiter.
"""

from __future__ import annotations

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.mixins import ListModelMixin
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from modules.core.exceptions import error_response
from modules.core.throttling import PublicReadThrottle
from modules.products.exceptions import ProductNotFound
from modules.products.filters import ProductFilter
from modules.products.models import Product, ProductStatus
from modules.products.repositories.django_repository import ProductDjangoRepository
from modules.products.serializers import ProductSerializer
from modules.products.services import CatalogService


class ProductViewSet(ListModelMixin, GenericViewSet):
    """``GET /api/v1/products/`` and ``GET /api/v1/products/{pk}/``."""

    permission_classes = [AllowAny]
    throttle_classes = [PublicReadThrottle]
    filterset_class = ProductFilter
    search_fields = ["name", "sku", "description"]
    ordering_fields = ["name", "price", "stock_quantity"]
    ordering = ["name"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    serializer_class = ProductSerializer

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = CatalogService(repository=ProductDjangoRepository())

    def get_queryset(self):
        # Filter backends need a QuerySet; the service enforces the same rule.
        return Product.objects.filter(status=ProductStatus.ACTIVE)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        try:
            product = self._service.get_product(pk)
        except ProductNotFound as exc:
            return error_response(str(exc), exc.code, status.HTTP_404_NOT_FOUND)
        return Response(ProductSerializer(product).data)
