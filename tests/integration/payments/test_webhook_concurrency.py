"""Concurrent redeliveries of one acceptance commit stock once.

Needs real row locks, so it is skipped on SQLite.
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest
from django.db import connection, connections
from rest_framework.test import APIClient

from modules.orders.constants import OrderStatus
from modules.orders.dtos import CartItemDTO, OrderInputDTO
from modules.orders.models import Order
from modules.payments.dtos import PaymentIntention

pytestmark = [
    pytest.mark.integration,
    pytest.mark.django_db(transaction=True),
    pytest.mark.usefixtures("use_payments_context"),
    pytest.mark.skipif(
        connection.vendor == "sqlite", reason="SQLite has no row-level locking"
    ),
]


def test_parallel_acceptances_commit_once(order_service, make_product, signed_webhook, stock_of):
    product = make_product(price=Decimal("1000.00"), stock_quantity=5)
    order = order_service.create_pending_order(
        OrderInputDTO(
            items=[CartItemDTO(product_id=str(product.id), quantity=2)],
            customer_name="Ana",
            customer_phone="+5491100000000",
        )
    )
    order_service.attach_intention(
        order.id, PaymentIntention(intention_id="pi_1", qr="qr", deep_link="app://pi_1")
    )
    body = signed_webhook(
        {"id": "pay_1", "external_intention_id": str(order.id), "status": "ACCEPTED"}
    )

    def deliver(_):
        try:
            response = APIClient().post(
                "/api/v1/payments/webhook/", data=body, content_type="application/json"
            )
            return response.status_code
        finally:
            connections.close_all()

    with ThreadPoolExecutor(max_workers=6) as pool:
        codes = list(pool.map(deliver, range(6)))

    assert codes == [200] * 6
    assert stock_of(product) == 3
    paid = Order.objects.get(id=order.id)
    assert paid.status == OrderStatus.PAID
    assert paid.status_history.filter(new_status=OrderStatus.PAID).count() == 1
