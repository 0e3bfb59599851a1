"""Order domain exceptions.

Raised by the Service Layer when business rules are violated.
The API layer (Views) catches these and translates them into
HTTP responses in the uniform ``{error, code, details?}`` format.
"""

from __future__ import annotations

from modules.core.exceptions import DomainError


class OrderNotFound(DomainError):
    """The requested order does not exist."""

    code = "order_not_found"
    message = "Order not found."


class AmbiguousOrderNumber(DomainError):
    """More than one order carries the requested display number."""

    code = "ambiguous_order_number"
    message = "Several orders share this order number; use the order id."


class InvalidOrderStatus(DomainError):
    """A transition outside the state machine was requested."""

    code = "invalid_status_transition"
    message = "Status transition not allowed."


class OrderNotEditable(DomainError):
    """The order reached a state where items can no longer change."""

    code = "order_not_editable"
    message = "Order can no longer be edited."


class IdempotencyConflict(DomainError):
    """A checkout with this ``Idempotency-Key`` exists but has no payment session."""

    code = "idempotency_conflict"
    message = "A checkout with this Idempotency-Key did not complete."
