"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
These are the contracts between the API layer (DRF Serializers)
and the Service layer.  DTOs are immutable (``frozen=True``).

- ``CartItemDTO``: ``{product_id, quantity}`` as sent by a client.
- ``OrderInputDTO``: cart plus customer data (checkout, admin create, edit).
- ``StatusTransitionDTO``: admin status move by id or display number.
- ``CheckoutResultDTO``: what the storefront needs to start paying.
"""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from modules.orders.constants import OrderStatus
from modules.products.ledger import canonical_product_id

# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class CartItemDTO(BaseModel):
    """One requested line.  Price is never accepted from the client."""

    model_config = ConfigDict(frozen=True)

    product_id: str = Field(min_length=1)
    quantity: int

    @field_validator("product_id")
    @classmethod
    def canonicalise_product_id(cls, v: str) -> str:
        return canonical_product_id(v)

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be at least 1.")
        return v


class OrderInputDTO(BaseModel):
    """Cart plus customer details.

    Validates:
    - ``items`` must contain at least one item, no product twice.
    - ``customer_address`` is required when ``shipping`` is requested.
    """

    model_config = ConfigDict(frozen=True)

    items: List[CartItemDTO]
    customer_name: str = Field(min_length=1, max_length=255)
    customer_phone: str = Field(min_length=1, max_length=40)
    customer_email: Optional[EmailStr] = None
    customer_address: Optional[str] = None
    shipping: bool = False
    notes: str = ""
    idempotency_key: Optional[str] = Field(default=None, max_length=255)

    @field_validator("items")
    @classmethod
    def items_must_not_be_empty(cls, v: List[CartItemDTO]) -> List[CartItemDTO]:
        if not v:
            raise ValueError("Order must have at least one item.")
        return v

    @model_validator(mode="after")
    def check_lines_and_address(self) -> "OrderInputDTO":
        product_ids = [item.product_id for item in self.items]
        if len(product_ids) != len(set(product_ids)):
            raise ValueError("Duplicate product IDs are not allowed in the same order.")
        if self.shipping and not (self.customer_address or "").strip():
            raise ValueError("A shipping address is required for shipped orders.")
        return self

    def quantities(self) -> dict[str, int]:
        return {item.product_id: item.quantity for item in self.items}


class StatusTransitionDTO(BaseModel):
    """Admin status move addressed by ``order_id`` or ``order_number``."""

    model_config = ConfigDict(frozen=True)

    order_id: Optional[UUID] = None
    order_number: Optional[str] = None
    status: OrderStatus
    notes: str = ""

    @model_validator(mode="after")
    def require_reference(self) -> "StatusTransitionDTO":
        if self.order_id is None and not self.order_number:
            raise ValueError("Either orderId or orderNumber is required.")
        return self


# ---------------------------------------------------------------------------
# Output DTOs
# ---------------------------------------------------------------------------


class CheckoutResultDTO(BaseModel):
    """Immutable result of a successful checkout."""

    model_config = ConfigDict(frozen=True)

    order_id: UUID
    order_number: str
    intention_id: str
    qr: str
    deep_link: str
    checkout_url: str = ""
    amount: Decimal
    replayed: bool = False

    def to_response(self) -> dict:
        checkout = {
            "intentionId": self.intention_id,
            "qr": self.qr,
            "deepLink": self.deep_link,
            "amount": str(self.amount),
            "orderNumber": self.order_number,
        }
        if self.checkout_url:
            checkout["checkoutUrl"] = self.checkout_url
        return {"orderId": str(self.order_id), "checkout": checkout}
