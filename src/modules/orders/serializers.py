"""Order DRF serializers for API input/output.

Wire keys are camelCase; ``source=`` maps them onto snake_case model
fields and DTO attributes.  Input serializers only shape and validate
the payload; business rules live in the Service Layer, which receives
Pydantic DTOs from ``dtos.py``.
"""

from __future__ import annotations

from typing import Optional

from rest_framework import serializers

from modules.orders.constants import OrderStatus
from modules.orders.dtos import CartItemDTO, OrderInputDTO, StatusTransitionDTO
from modules.orders.models import Order, OrderItem, OrderStatusHistory
from modules.products.ledger import canonical_product_id

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class CartItemSerializer(serializers.Serializer):
    productId = serializers.CharField(source="product_id", max_length=64)
    quantity = serializers.IntegerField(min_value=1)

    def validate_productId(self, value):
        return canonical_product_id(value)


class OrderInputSerializer(serializers.Serializer):
    """Checkout, admin creation and full edit share this payload."""

    items = CartItemSerializer(many=True, allow_empty=False)
    customerName = serializers.CharField(source="customer_name", max_length=255)
    customerPhone = serializers.CharField(source="customer_phone", max_length=40)
    customerEmail = serializers.EmailField(
        source="customer_email", required=False, allow_blank=True, allow_null=True
    )
    customerAddress = serializers.CharField(
        source="customer_address", required=False, allow_blank=True, allow_null=True
    )
    shipping = serializers.BooleanField(required=False, default=False)
    notes = serializers.CharField(required=False, default="", allow_blank=True)

    def validate_items(self, value):
        product_ids = [item["product_id"] for item in value]
        if len(product_ids) != len(set(product_ids)):
            raise serializers.ValidationError(
                "Duplicate product IDs are not allowed in the same order."
            )
        return value

    def validate(self, attrs):
        if attrs.get("shipping") and not (attrs.get("customer_address") or "").strip():
            raise serializers.ValidationError(
                {"customerAddress": "A shipping address is required for shipped orders."}
            )
        return attrs

    def to_dto(self, idempotency_key: Optional[str] = None) -> OrderInputDTO:
        data = self.validated_data
        return OrderInputDTO(
            items=[
                CartItemDTO(product_id=item["product_id"], quantity=item["quantity"])
                for item in data["items"]
            ],
            customer_name=data["customer_name"],
            customer_phone=data["customer_phone"],
            customer_email=data.get("customer_email") or None,
            customer_address=data.get("customer_address"),
            shipping=data.get("shipping", False),
            notes=data.get("notes", ""),
            idempotency_key=idempotency_key,
        )


class StatusTransitionSerializer(serializers.Serializer):
    orderId = serializers.UUIDField(source="order_id", required=False, allow_null=True)
    orderNumber = serializers.CharField(
        source="order_number", required=False, allow_blank=True, max_length=40
    )
    status = serializers.ChoiceField(choices=OrderStatus.choices)
    notes = serializers.CharField(required=False, default="", allow_blank=True)

    def validate(self, attrs):
        if not attrs.get("order_id") and not attrs.get("order_number"):
            raise serializers.ValidationError("Either orderId or orderNumber is required.")
        return attrs

    def to_dto(self) -> StatusTransitionDTO:
        data = self.validated_data
        return StatusTransitionDTO(
            order_id=data.get("order_id"),
            order_number=data.get("order_number") or None,
            status=data["status"],
            notes=data.get("notes", ""),
        )


class CancelOrderSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, default="", allow_blank=True)


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class OrderItemSerializer(serializers.ModelSerializer):
    """Line-item snapshot."""

    productId = serializers.UUIDField(source="product_id", read_only=True)
    unitPrice = serializers.DecimalField(
        source="unit_price", max_digits=12, decimal_places=2, read_only=True
    )

    class Meta:
        model = OrderItem
        fields = ["productId", "name", "unitPrice", "quantity", "image", "subtotal"]
        read_only_fields = fields


class StatusHistorySerializer(serializers.ModelSerializer):
    oldStatus = serializers.CharField(source="old_status", read_only=True)
    newStatus = serializers.CharField(source="new_status", read_only=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)

    class Meta:
        model = OrderStatusHistory
        fields = ["oldStatus", "newStatus", "source", "notes", "createdAt"]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for order list (no nested relations)."""

    orderNumber = serializers.CharField(source="order_number", read_only=True)
    paymentStatus = serializers.CharField(source="payment_status", read_only=True)
    totalAmount = serializers.DecimalField(
        source="total_amount", max_digits=12, decimal_places=2, read_only=True
    )
    customerName = serializers.CharField(source="customer_name", read_only=True)
    customerPhone = serializers.CharField(source="customer_phone", read_only=True)
    stockUpdated = serializers.BooleanField(source="stock_updated", read_only=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "orderNumber",
            "status",
            "paymentStatus",
            "totalAmount",
            "customerName",
            "customerPhone",
            "shipping",
            "stockUpdated",
            "createdAt",
            "updatedAt",
        ]
        read_only_fields = fields


class OrderSerializer(OrderListSerializer):
    """Full order with items, history and gateway artifacts."""

    customerEmail = serializers.CharField(source="customer_email", read_only=True)
    customerAddress = serializers.CharField(source="customer_address", read_only=True)
    externalIntentionId = serializers.CharField(
        source="gateway_intention_id", read_only=True
    )
    qrPayload = serializers.CharField(source="qr_payload", read_only=True)
    deepLink = serializers.CharField(source="deep_link", read_only=True)
    checkoutUrl = serializers.CharField(source="checkout_url", read_only=True)
    paymentReference = serializers.CharField(source="payment_reference", read_only=True)
    nextStatuses = serializers.ListField(
        source="next_statuses", child=serializers.CharField(), read_only=True
    )
    items = OrderItemSerializer(many=True, read_only=True)
    statusHistory = StatusHistorySerializer(
        source="status_history", many=True, read_only=True
    )

    class Meta(OrderListSerializer.Meta):
        fields = OrderListSerializer.Meta.fields + [
            "customerEmail",
            "customerAddress",
            "notes",
            "externalIntentionId",
            "qrPayload",
            "deepLink",
            "checkoutUrl",
            "paymentReference",
            "nextStatuses",
            "items",
            "statusHistory",
        ]
        read_only_fields = fields


class OrderStatusSerializer(serializers.ModelSerializer):
    """Public status poll: no customer data."""

    orderNumber = serializers.CharField(source="order_number", read_only=True)
    paymentStatus = serializers.CharField(source="payment_status", read_only=True)
    totalAmount = serializers.DecimalField(
        source="total_amount", max_digits=12, decimal_places=2, read_only=True
    )
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)

    class Meta:
        model = Order
        fields = [
            "status",
            "paymentStatus",
            "orderNumber",
            "totalAmount",
            "createdAt",
            "updatedAt",
        ]
        read_only_fields = fields
