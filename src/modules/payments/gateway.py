"""Payment-intention client for the external gateway.

One bounded HTTP call per intention, no internal retry: the caller
decides what to do with a failure (checkout marks the order ``FAILED``).
The order id is the gateway's correlation key (``external_intention_id``).
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict

import httpx
import structlog

from modules.core.middleware import correlation_id_var
from modules.payments.dtos import PaymentIntention
from modules.payments.exceptions import IntentionCreationError

if TYPE_CHECKING:
    from modules.orders.models import Order
    from modules.payments.tokens import TokenProvider

logger = structlog.get_logger(__name__)

INTENTION_PATH = "/payment-requests/"


class PaymentGatewayClient:
    def __init__(
        self,
        base_url: str,
        token_provider: TokenProvider,
        http_client: httpx.Client,
        currency: str = "ARS",
        webhook_url: str = "",
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._tokens = token_provider
        self._http = http_client
        self._currency = currency
        self._webhook_url = webhook_url

    def create_intention(self, order: Order) -> PaymentIntention:
        """Request a payment session for *order*.

        Raises:
            GatewayTokenError: no credential could be obtained.
            IntentionCreationError: transport failure, non-2xx response or
                an unusable response body.
        """
        log = logger.bind(order_id=str(order.id), order_number=order.order_number)
        payload = self.build_payload(order)
        token = self._tokens.get_token()

        try:
            response = self._http.post(
                f"{self._base_url}{INTENTION_PATH}",
                json=payload,
                headers=_headers(token),
            )
        except httpx.HTTPError as exc:
            log.error("gateway.intention_unreachable", error=type(exc).__name__)
            raise IntentionCreationError("Payment gateway unreachable.") from exc

        if response.is_error:
            if response.status_code == httpx.codes.UNAUTHORIZED:
                self._tokens.invalidate()
            log.error(
                "gateway.intention_failed",
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise IntentionCreationError(status_code=response.status_code)

        try:
            data = response.json()
            intention = PaymentIntention(
                intention_id=str(data["id"]),
                qr=data.get("qr") or "",
                deep_link=data.get("deeplink") or "",
                checkout_url=data.get("checkout_url"),
            )
        except (ValueError, KeyError, TypeError) as exc:
            log.error("gateway.intention_malformed_response")
            raise IntentionCreationError(status_code=response.status_code) from exc

        log.info("gateway.intention_created", intention_id=intention.intention_id)
        return intention

    def build_payload(self, order: Order) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "external_intention_id": str(order.id),
            "description": f"Order {order.order_number}",
            "amount": _money(order.total_amount),
            "currency": self._currency,
            "items": [
                {
                    "name": item.name,
                    "quantity": item.quantity,
                    "unit_price": _money(item.unit_price),
                }
                for item in order.items.all()
            ],
            "customer": {
                "name": order.customer_name,
                "email": order.customer_email,
                "phone": order.customer_phone,
            },
        }
        if self._webhook_url:
            payload["webhook_notification"] = self._webhook_url
        return payload


def _money(value: Decimal) -> float:
    return float(Decimal(value).quantize(Decimal("0.01")))


def _headers(token: str) -> Dict[str, str]:
    headers = {"Authorization": f"Bearer {token}"}
    request_id = correlation_id_var.get()
    if request_id:
        headers["X-Request-ID"] = request_id
    return headers
