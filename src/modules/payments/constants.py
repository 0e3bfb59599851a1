"""Gateway status vocabulary and its mapping onto order statuses.

The gateway reports its own status tokens, which are not 1:1 with the
order lifecycle.  ``GATEWAY_STATUS_MAP`` covers every known token; any
other value is rejected instead of being defaulted.
"""

from __future__ import annotations

from typing import Dict, Tuple

from django.db import models

from modules.orders.constants import OrderStatus
from modules.payments.exceptions import UnrecognizedPaymentStatus


class GatewayStatus(models.TextChoices):
    CREATED = "CREATED", "Created"
    SCANNED = "SCANNED", "QR scanned"
    PROCESSING = "PROCESSING", "Processing"
    ACCEPTED = "ACCEPTED", "Accepted"
    REJECTED = "REJECTED", "Rejected"


GATEWAY_STATUS_MAP: Dict[str, str] = {
    GatewayStatus.CREATED: OrderStatus.PROCESSING,
    GatewayStatus.SCANNED: OrderStatus.PROCESSING,
    GatewayStatus.PROCESSING: OrderStatus.PROCESSING,
    GatewayStatus.ACCEPTED: OrderStatus.PAID,
    GatewayStatus.REJECTED: OrderStatus.PAYMENT_FAILED,
}


def map_gateway_status(raw: object) -> Tuple[GatewayStatus, OrderStatus]:
    """Return ``(gateway_status, order_status)`` for a raw webhook value.

    Raises:
        UnrecognizedPaymentStatus: *raw* is not a known gateway token.
    """
    value = str(raw or "").strip().upper()
    if value not in GatewayStatus.values:
        raise UnrecognizedPaymentStatus(f"Unrecognized payment status '{raw}'.")
    gateway_status = GatewayStatus(value)
    return gateway_status, OrderStatus(GATEWAY_STATUS_MAP[gateway_status])
