"""Order API views.

Public endpoints (checkout, status poll) and the staff-only order
management ViewSet.  Domain exceptions are caught and translated into
the uniform error format; the view never swallows generic exceptions.
"""

from __future__ import annotations

from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import extend_schema
from pydantic import ValidationError as PydanticValidationError
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework.viewsets import GenericViewSet

from modules.core.exceptions import error_response
from modules.core.throttling import PublicReadThrottle
from modules.orders.checkout import CheckoutOrchestrator
from modules.orders.exceptions import (
    AmbiguousOrderNumber,
    IdempotencyConflict,
    InvalidOrderStatus,
    OrderNotEditable,
    OrderNotFound,
)
from modules.orders.filters import OrderFilter
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.serializers import (
    CancelOrderSerializer,
    OrderInputSerializer,
    OrderListSerializer,
    OrderSerializer,
    OrderStatusSerializer,
    StatusTransitionSerializer,
)
from modules.orders.services import OrderService
from modules.payments.context import get_payments_context
from modules.payments.exceptions import GatewayError
from modules.products.exceptions import InsufficientStock
from modules.products.repositories.django_repository import ProductDjangoRepository


def build_order_service() -> OrderService:
    return OrderService(
        order_repository=OrderDjangoRepository(),
        product_repository=ProductDjangoRepository(),
    )


def _validation_error(exc: PydanticValidationError) -> Response:
    details = [
        {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return error_response(
        "Invalid request.", "validation_error", status.HTTP_400_BAD_REQUEST, details
    )


def _stock_error(exc: InsufficientStock) -> Response:
    return error_response(str(exc), exc.code, status.HTTP_400_BAD_REQUEST, exc.details)


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


class CheckoutView(APIView):
    """POST /api/v1/checkout/

    Supports idempotency via the ``Idempotency-Key`` header: a replay
    returns the original order's payment session with ``200``.
    """

    authentication_classes: list = []
    permission_classes = [AllowAny]
    throttle_scope = "checkout"

    @extend_schema(request=OrderInputSerializer, responses={201: None})
    def post(self, request: Request) -> Response:
        serializer = OrderInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            dto = serializer.to_dto(request.headers.get("Idempotency-Key"))
        except PydanticValidationError as exc:
            return _validation_error(exc)

        orchestrator = CheckoutOrchestrator(
            order_service=build_order_service(),
            gateway_client=get_payments_context().gateway_client,
        )
        try:
            result = orchestrator.checkout(dto)
        except InsufficientStock as exc:
            return _stock_error(exc)
        except GatewayError as exc:
            return error_response(str(exc), exc.code, status.HTTP_502_BAD_GATEWAY)
        except IdempotencyConflict as exc:
            return error_response(str(exc), exc.code, status.HTTP_409_CONFLICT)

        http_status = status.HTTP_200_OK if result.replayed else status.HTTP_201_CREATED
        return Response(result.to_response(), status=http_status)


class OrderStatusView(APIView):
    """GET /api/v1/orders/{pk}/status/ (anonymous, per-IP rate limited)."""

    authentication_classes: list = []
    permission_classes = [AllowAny]
    throttle_classes = [PublicReadThrottle]

    @extend_schema(responses=OrderStatusSerializer)
    def get(self, request: Request, pk: str) -> Response:
        try:
            order = build_order_service().get_order(pk)
        except OrderNotFound as exc:
            return error_response(str(exc), exc.code, status.HTTP_404_NOT_FOUND)
        return Response(OrderStatusSerializer(order).data)


# ---------------------------------------------------------------------------
# Staff endpoints
# ---------------------------------------------------------------------------


class OrderViewSet(GenericViewSet):
    """Order management for staff.

    Uses ``OrderService`` with injected repositories (DIP).
    Does **not** extend ``ModelViewSet``: every write goes through the
    service so the state machine and stock rules always apply.
    """

    permission_classes = [IsAdminUser]
    throttle_scope = "admin_orders"
    serializer_class = OrderSerializer
    filterset_class = OrderFilter
    search_fields = ["order_number", "customer_name", "customer_phone", "customer_email"]
    ordering_fields = ["created_at", "updated_at", "total_amount", "status"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = build_order_service()

    def get_queryset(self):
        return OrderDjangoRepository().queryset()

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/

        Filtering (status, phone, date range, totals) is handled by
        ``OrderFilter``; results are paginated.
        """
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        serializer = OrderListSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        try:
            order = self._service.get_order(pk)
        except OrderNotFound as exc:
            return error_response(str(exc), exc.code, status.HTTP_404_NOT_FOUND)
        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Create / Edit
    # ------------------------------------------------------------------

    @extend_schema(request=OrderInputSerializer)
    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/ : counter sale, stock committed at once."""
        serializer = OrderInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            dto = serializer.to_dto()
            order = self._service.create_admin_order(dto)
        except PydanticValidationError as exc:
            return _validation_error(exc)
        except InsufficientStock as exc:
            return _stock_error(exc)
        order = self._service.get_order(str(order.id))
        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)

    @extend_schema(request=OrderInputSerializer)
    def partial_update(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/orders/{pk}/ : customer data and items."""
        serializer = OrderInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            order = self._service.edit_order(pk, serializer.to_dto())
        except PydanticValidationError as exc:
            return _validation_error(exc)
        except OrderNotFound as exc:
            return error_response(str(exc), exc.code, status.HTTP_404_NOT_FOUND)
        except OrderNotEditable as exc:
            return error_response(str(exc), exc.code, status.HTTP_409_CONFLICT)
        except InsufficientStock as exc:
            return _stock_error(exc)
        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @extend_schema(request=StatusTransitionSerializer)
    @action(detail=False, methods=["post"])
    def transition(self, request: Request) -> Response:
        """POST /api/v1/orders/transition/ with ``{orderId|orderNumber, status}``."""
        serializer = StatusTransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            order = self._service.transition_by_reference(serializer.to_dto())
        except PydanticValidationError as exc:
            return _validation_error(exc)
        except OrderNotFound as exc:
            return error_response(str(exc), exc.code, status.HTTP_404_NOT_FOUND)
        except AmbiguousOrderNumber as exc:
            return error_response(str(exc), exc.code, status.HTTP_409_CONFLICT)
        except InvalidOrderStatus as exc:
            return error_response(str(exc), exc.code, status.HTTP_400_BAD_REQUEST)
        order = self._service.get_order(str(order.id))
        return Response(OrderSerializer(order).data)

    @extend_schema(request=CancelOrderSerializer)
    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/cancel/

        Cancels an order and releases committed stock.
        """
        serializer = CancelOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            order = self._service.cancel_order(pk, notes=serializer.validated_data["notes"])
        except OrderNotFound as exc:
            return error_response(str(exc), exc.code, status.HTTP_404_NOT_FOUND)
        except InvalidOrderStatus as exc:
            return error_response(str(exc), exc.code, status.HTTP_400_BAD_REQUEST)
        order = self._service.get_order(str(order.id))
        return Response(OrderSerializer(order).data)
