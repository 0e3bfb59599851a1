"""Unit tests for PaymentGatewayClient."""

from __future__ import annotations

import json
from decimal import Decimal

import httpx
import pytest

from modules.orders.dtos import CartItemDTO, OrderInputDTO
from modules.payments.exceptions import GatewayTokenError, IntentionCreationError
from modules.payments.gateway import PaymentGatewayClient

pytestmark = pytest.mark.unit

BASE_URL = "https://gateway.test/v2"


class StubTokens:
    def __init__(self, token: str = "access-token") -> None:
        self.token = token
        self.invalidated = 0

    def get_token(self) -> str:
        return self.token

    def invalidate(self) -> None:
        self.invalidated += 1


def _client(handler, tokens=None, webhook_url="") -> PaymentGatewayClient:
    return PaymentGatewayClient(
        base_url=BASE_URL + "/",
        token_provider=tokens or StubTokens(),
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
        currency="ARS",
        webhook_url=webhook_url,
    )


@pytest.fixture()
def order(order_service, make_product):
    product = make_product(name="Mate", price=Decimal("1000.00"), stock_quantity=5)
    dto = OrderInputDTO(
        items=[CartItemDTO(product_id=str(product.id), quantity=2)],
        customer_name="Ana",
        customer_phone="+5491100000000",
        customer_email="ana@example.com",
    )
    return order_service.create_pending_order(dto)


class TestCreateIntention:
    def test_posts_payload_with_bearer_token(self, order):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(
                201,
                json={"id": "pi_1", "qr": "qr", "deeplink": "app://pi_1", "checkout_url": None},
            )

        intention = _client(handler, webhook_url="https://shop.test/hook").create_intention(order)

        assert intention.intention_id == "pi_1"
        assert intention.deep_link == "app://pi_1"
        assert intention.checkout_url is None

        request = seen[0]
        assert str(request.url) == f"{BASE_URL}/payment-requests/"
        assert request.headers["Authorization"] == "Bearer access-token"
        body = json.loads(request.content)
        assert body["external_intention_id"] == str(order.id)
        assert body["amount"] == 2000.0
        assert body["currency"] == "ARS"
        assert body["items"] == [{"name": "Mate", "quantity": 2, "unit_price": 1000.0}]
        assert body["customer"]["email"] == "ana@example.com"
        assert body["webhook_notification"] == "https://shop.test/hook"

    def test_webhook_notification_omitted_when_unset(self, order):
        payload = _client(lambda r: httpx.Response(500)).build_payload(order)
        assert "webhook_notification" not in payload

    def test_error_status_raises(self, order):
        client = _client(lambda r: httpx.Response(422, json={"error": "bad amount"}))
        with pytest.raises(IntentionCreationError) as exc_info:
            client.create_intention(order)
        assert exc_info.value.status_code == 422
        assert exc_info.value.code == "gateway_error"

    def test_unauthorized_invalidates_token(self, order):
        tokens = StubTokens()
        client = _client(lambda r: httpx.Response(401), tokens=tokens)
        with pytest.raises(IntentionCreationError):
            client.create_intention(order)
        assert tokens.invalidated == 1

    def test_transport_error_raises(self, order):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(IntentionCreationError):
            _client(handler).create_intention(order)

    def test_response_without_id_raises(self, order):
        client = _client(lambda r: httpx.Response(201, json={"qr": "qr"}))
        with pytest.raises(IntentionCreationError):
            client.create_intention(order)

    def test_token_failure_propagates(self, order):
        class BrokenTokens(StubTokens):
            def get_token(self):
                raise GatewayTokenError()

        client = _client(lambda r: httpx.Response(201), tokens=BrokenTokens())
        with pytest.raises(GatewayTokenError):
            client.create_intention(order)
