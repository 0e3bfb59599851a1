"""Integration tests for the public order status poll."""

from __future__ import annotations

from uuid import uuid4

import pytest

from modules.orders.dtos import CartItemDTO, OrderInputDTO

pytestmark = pytest.mark.integration


@pytest.fixture()
def order(order_service, make_product):
    return order_service.create_pending_order(
        OrderInputDTO(
            items=[CartItemDTO(product_id=str(make_product().id), quantity=1)],
            customer_name="Ana",
            customer_phone="+5491100000000",
            customer_email="ana@example.com",
        )
    )


def _url(order_id) -> str:
    return f"/api/v1/orders/{order_id}/status/"


class TestOrderStatus:
    def test_exposes_status_without_customer_data(self, api_client, order):
        response = api_client.get(_url(order.id))

        assert response.status_code == 200
        data = response.json()
        assert set(data) == {
            "status",
            "paymentStatus",
            "orderNumber",
            "totalAmount",
            "createdAt",
            "updatedAt",
        }
        assert data["status"] == "CREATED"
        assert data["orderNumber"] == order.order_number

    def test_timestamps_carry_store_offset(self, api_client, order):
        data = api_client.get(_url(order.id)).json()
        assert data["createdAt"].endswith("-03:00")

    def test_unknown_order(self, api_client):
        response = api_client.get(_url(uuid4()))
        assert response.status_code == 404
        assert response.json() == {"error": "Order not found.", "code": "order_not_found"}

    def test_malformed_id(self, api_client):
        assert api_client.get(_url("nope")).status_code == 404

    def test_no_authentication_required(self, api_client, order):
        api_client.credentials(HTTP_AUTHORIZATION="Bearer garbage")
        assert api_client.get(_url(order.id)).status_code == 200


class TestOrderStatusRateLimit:
    @pytest.fixture(autouse=True)
    def _small_window(self, public_rate):
        public_rate("2/minute")

    def test_rejects_over_capacity_with_retry_after(self, api_client, order):
        statuses = [api_client.get(_url(order.id)).status_code for _ in range(3)]

        assert statuses == [200, 200, 429]
        response = api_client.get(_url(order.id))
        assert response.status_code == 429
        assert response.json()["code"] == "throttled"
        assert int(response["Retry-After"]) > 0

    def test_limit_is_per_client_ip(self, api_client, order):
        for _ in range(2):
            api_client.get(_url(order.id), REMOTE_ADDR="10.0.0.1")

        blocked = api_client.get(_url(order.id), REMOTE_ADDR="10.0.0.1")
        other = api_client.get(_url(order.id), REMOTE_ADDR="10.0.0.2")

        assert blocked.status_code == 429
        assert other.status_code == 200
