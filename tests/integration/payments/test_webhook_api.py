"""Integration tests for ``POST /api/v1/payments/webhook/``.

Covers:
- Signature checked before any order lookup.
- Acceptance commits stock exactly once, whatever the redelivery count.
- Out-of-order and stale deliveries never move an order backwards.
- Customer e-mail sent through the outbox after commit.
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import patch
from uuid import uuid4

import jwt
import pytest
from django.core import mail

from modules.orders.constants import OrderStatus, StatusSource
from modules.orders.dtos import CartItemDTO, OrderInputDTO
from modules.orders.models import Order
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.payments.dtos import PaymentIntention

pytestmark = [pytest.mark.integration, pytest.mark.usefixtures("use_payments_context")]

WEBHOOK_URL = "/api/v1/payments/webhook/"


@pytest.fixture()
def product(make_product):
    return make_product(name="Mate", price=Decimal("1000.00"), stock_quantity=5)


@pytest.fixture()
def pending_order(order_service, product):
    """A checkout order waiting for payment (PROCESSING, stock untouched)."""
    dto = OrderInputDTO(
        items=[CartItemDTO(product_id=str(product.id), quantity=2)],
        customer_name="Ana",
        customer_phone="+5491100000000",
        customer_email="ana@example.com",
    )
    order = order_service.create_pending_order(dto)
    return order_service.attach_intention(
        order.id, PaymentIntention(intention_id="pi_1", qr="qr", deep_link="app://pi_1")
    )


def _claims(order, status="ACCEPTED", **extra) -> dict:
    return {"id": "pay_1", "external_intention_id": str(order.id), "status": status, **extra}


def _refresh(order) -> Order:
    return Order.objects.get(id=order.id)


class TestSignature:
    @pytest.mark.parametrize("mode", ["compact", "empty", "detached"])
    def test_accepts_every_signature_encoding(self, post_webhook, pending_order, mode):
        response = post_webhook(_claims(pending_order), mode=mode)
        assert response.status_code == 200
        assert response.json() == {"received": True, "status": "PAID"}

    def test_invalid_signature_rejected_before_lookup(
        self, post_webhook, pending_order, foreign_key, stock_of, product
    ):
        with patch.object(OrderDjangoRepository, "get_for_update") as get_for_update:
            response = post_webhook(_claims(pending_order), key=foreign_key)

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_signature"
        get_for_update.assert_not_called()
        assert _refresh(pending_order).status == OrderStatus.PROCESSING
        assert stock_of(product) == 5

    def test_unsigned_body_rejected(self, api_client, pending_order):
        response = api_client.post(WEBHOOK_URL, _claims(pending_order), format="json")
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_signature"

    def test_tampered_status_rejected(self, api_client, pending_order, sign):
        claims = _claims(pending_order, status="REJECTED")
        signature = sign(claims)
        forged = {**claims, "status": "ACCEPTED", "signature": signature}

        response = api_client.post(WEBHOOK_URL, forged, format="json")

        assert response.status_code == 400
        assert _refresh(pending_order).status == OrderStatus.PROCESSING

    def test_unreachable_key_set_answers_503_so_gateway_retries(
        self, post_webhook, pending_order, key_resolver, monkeypatch
    ):
        def _unreachable(token):
            raise jwt.PyJWKClientConnectionError("Fail to fetch data from the url")

        monkeypatch.setattr(key_resolver, "get_signing_key_from_jwt", _unreachable)

        response = post_webhook(_claims(pending_order))

        assert response.status_code == 503
        assert response.json()["code"] == "signing_keys_unavailable"
        assert _refresh(pending_order).status == OrderStatus.PROCESSING


class TestPayloadErrors:
    def test_missing_intention_id(self, post_webhook):
        response = post_webhook({"id": "pay_1", "status": "ACCEPTED"})
        assert response.status_code == 400
        assert response.json()["code"] == "missing_intention_id"

    def test_unknown_status(self, post_webhook, pending_order):
        response = post_webhook(_claims(pending_order, status="REFUNDED"))
        assert response.status_code == 400
        assert response.json()["code"] == "unrecognized_payment_status"
        assert _refresh(pending_order).status == OrderStatus.PROCESSING

    def test_unknown_order(self, post_webhook):
        response = post_webhook(
            {"id": "pay_1", "external_intention_id": str(uuid4()), "status": "ACCEPTED"}
        )
        assert response.status_code == 404
        assert response.json()["code"] == "order_not_found"


class TestAcceptance:
    def test_accepted_marks_paid_and_commits_stock(
        self, post_webhook, pending_order, product, stock_of
    ):
        response = post_webhook(_claims(pending_order))

        assert response.status_code == 200
        order = _refresh(pending_order)
        assert order.status == OrderStatus.PAID
        assert order.payment_status == "ACCEPTED"
        assert order.payment_reference == "pay_1"
        assert order.stock_updated is True
        assert stock_of(product) == 3

        last = order.status_history.last()
        assert (last.old_status, last.new_status, last.source) == (
            OrderStatus.PROCESSING,
            OrderStatus.PAID,
            StatusSource.WEBHOOK,
        )

    def test_redelivery_commits_stock_once(self, post_webhook, pending_order, product, stock_of):
        for _ in range(3):
            response = post_webhook(_claims(pending_order))
            assert response.status_code == 200
            assert response.json()["status"] == "PAID"

        assert stock_of(product) == 3
        assert _refresh(pending_order).status_history.filter(
            new_status=OrderStatus.PAID
        ).count() == 1

    def test_payment_id_preferred_over_id(self, post_webhook, pending_order):
        post_webhook(_claims(pending_order, payment_id="txn_99"))
        assert _refresh(pending_order).payment_reference == "txn_99"

    def test_oversold_line_floored_at_zero(self, post_webhook, pending_order, product, stock_of):
        product.stock_quantity = 1
        product.save()

        response = post_webhook(_claims(pending_order))

        assert response.status_code == 200
        assert _refresh(pending_order).status == OrderStatus.PAID
        assert stock_of(product) == 0

    def test_processing_statuses_keep_order_processing(self, post_webhook, pending_order):
        response = post_webhook(_claims(pending_order, status="SCANNED"))
        assert response.status_code == 200
        order = _refresh(pending_order)
        assert order.status == OrderStatus.PROCESSING
        assert order.payment_status == "SCANNED"


class TestOrdering:
    def test_rejected_then_accepted_pays(self, post_webhook, pending_order, product, stock_of):
        post_webhook(_claims(pending_order, status="REJECTED"))
        assert _refresh(pending_order).status == OrderStatus.PAYMENT_FAILED
        assert stock_of(product) == 5

        post_webhook(_claims(pending_order, status="ACCEPTED"))
        assert _refresh(pending_order).status == OrderStatus.PAID
        assert stock_of(product) == 3

    def test_stale_processing_after_rejection_only_records_status(
        self, post_webhook, pending_order
    ):
        post_webhook(_claims(pending_order, status="REJECTED"))
        response = post_webhook(_claims(pending_order, status="PROCESSING"))

        assert response.status_code == 200
        assert response.json()["status"] == OrderStatus.PAYMENT_FAILED
        order = _refresh(pending_order)
        assert order.status == OrderStatus.PAYMENT_FAILED
        assert order.payment_status == "PROCESSING"

    def test_rejection_after_acceptance_is_ignored(
        self, post_webhook, pending_order, product, stock_of
    ):
        post_webhook(_claims(pending_order, status="ACCEPTED"))
        response = post_webhook(_claims(pending_order, status="REJECTED"))

        assert response.status_code == 200
        assert response.json()["status"] == OrderStatus.PAID
        order = _refresh(pending_order)
        assert order.status == OrderStatus.PAID
        assert order.payment_status == "ACCEPTED"
        assert stock_of(product) == 3

    def test_cancelled_order_is_not_revived(
        self, post_webhook, pending_order, order_service, product, stock_of
    ):
        order_service.cancel_order(pending_order.id)

        response = post_webhook(_claims(pending_order))

        assert response.status_code == 200
        assert _refresh(pending_order).status == OrderStatus.CANCELLED
        assert stock_of(product) == 5


class TestNotifications:
    def test_payment_email_sent_once(
        self, post_webhook, pending_order, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            post_webhook(_claims(pending_order))
        with django_capture_on_commit_callbacks(execute=True):
            post_webhook(_claims(pending_order))

        assert len(mail.outbox) == 1
        message = mail.outbox[0]
        assert message.to == ["ana@example.com"]
        assert pending_order.order_number in message.subject

    def test_rejection_sends_no_email(
        self, post_webhook, pending_order, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            post_webhook(_claims(pending_order, status="REJECTED"))

        assert callbacks == []
        assert mail.outbox == []


class TestCheckoutToPaymentExample:
    def test_full_flow(self, api_client, post_webhook, make_product, stock_of):
        p1 = make_product(sku="P1", price=Decimal("1000.00"), stock_quantity=5)

        checkout = api_client.post(
            "/api/v1/checkout/",
            {
                "items": [{"productId": str(p1.id), "quantity": 2}],
                "customerName": "Ana",
                "customerPhone": "+5491100000000",
            },
            format="json",
        )
        assert checkout.status_code == 201
        assert checkout.json()["checkout"]["amount"] == "2000.00"
        assert stock_of(p1) == 5

        order_id = checkout.json()["orderId"]
        claims = {"id": "pay_7", "external_intention_id": order_id, "status": "ACCEPTED"}
        assert post_webhook(claims).status_code == 200
        assert stock_of(p1) == 3

        assert post_webhook(claims).status_code == 200
        assert stock_of(p1) == 3

        status = api_client.get(f"/api/v1/orders/{order_id}/status/")
        assert status.json()["status"] == "PAID"
        assert status.json()["paymentStatus"] == "ACCEPTED"
