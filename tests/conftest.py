import itertools
import json
import time
from decimal import Decimal
from types import SimpleNamespace

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from django.contrib.auth import get_user_model
from django.core.cache import cache
from jwt.api_jws import PyJWS
from rest_framework.test import APIClient

from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.payments.context import build_payments_context, get_payments_context
from modules.payments.signature import canonical_json
from modules.products.models import Product, ProductStatus
from modules.products.repositories.django_repository import ProductDjangoRepository

WEBHOOK_URL = "/api/v1/payments/webhook/"
CHECKOUT_URL = "/api/v1/checkout/"


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def _reset_process_state():
    """Throttle histories live in the cache; the payments context is per process."""
    cache.clear()
    get_payments_context.cache_clear()
    yield
    get_payments_context.cache_clear()


@pytest.fixture()
def drf_settings(settings):
    """Override keys of ``REST_FRAMEWORK``; DRF reloads its settings on change."""

    def _override(**overrides):
        settings.REST_FRAMEWORK = {**settings.REST_FRAMEWORK, **overrides}

    return _override


@pytest.fixture()
def public_rate(drf_settings, settings):
    """Set the per-IP rate of the anonymous read endpoints, e.g. ``"2/minute"``."""

    def _set(rate: str):
        rates = {**settings.REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"], "public": rate}
        drf_settings(DEFAULT_THROTTLE_RATES=rates)

    return _set


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


@pytest.fixture()
def staff_client():
    """APIClient force-authenticated as a staff user."""
    client = APIClient()
    user = get_user_model().objects.create_user(
        username="staff", password="staffpass123", is_staff=True
    )
    client.force_authenticate(user=user)
    return client


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_product():
    counter = itertools.count(1)

    def _make(**overrides) -> Product:
        n = next(counter)
        defaults = {
            "sku": f"SKU-{n:03d}",
            "name": f"Product {n}",
            "price": Decimal("1000.00"),
            "stock_quantity": 5,
            "status": ProductStatus.ACTIVE,
        }
        defaults.update(overrides)
        return Product.objects.create(**defaults)

    return _make


@pytest.fixture()
def order_service():
    return OrderService(
        order_repository=OrderDjangoRepository(),
        product_repository=ProductDjangoRepository(),
    )


@pytest.fixture()
def stock_of():
    def _stock(product: Product) -> int:
        product.refresh_from_db()
        return product.stock_quantity

    return _stock


# ---------------------------------------------------------------------------
# Payment gateway doubles
# ---------------------------------------------------------------------------


def make_access_token(expires_in: float = 3600, **claims) -> str:
    payload = {"sub": "test-client", **claims}
    if expires_in is not None:
        payload["exp"] = int(time.time() + expires_in)
    return jwt.encode(payload, "gateway-signing-secret-for-tests-0123456789", algorithm="HS256")


@pytest.fixture()
def access_token_factory():
    return make_access_token


class FakeGateway:
    """In-process stand-in for the gateway's token and intention endpoints."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.token_calls = 0
        self.intention_calls = 0
        self.intention_status = 201
        self.token_status = 200
        self._ids = itertools.count(1)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.endswith("/token"):
            self.token_calls += 1
            if self.token_status >= 400:
                return httpx.Response(self.token_status, json={"error": "invalid_client"})
            return httpx.Response(200, json={"access_token": make_access_token()})
        if path.endswith("/payment-requests/"):
            self.intention_calls += 1
            if self.intention_status >= 400:
                return httpx.Response(self.intention_status, json={"error": "rejected"})
            n = next(self._ids)
            return httpx.Response(
                201,
                json={
                    "id": f"pi_{n:04d}",
                    "qr": f"00020101021243650016COM.GATEWAY{n:04d}",
                    "deeplink": f"gateway://pay/pi_{n:04d}",
                    "checkout_url": f"https://pay.gateway.test/pi_{n:04d}",
                },
            )
        return httpx.Response(404)

    def intention_payloads(self) -> list[dict]:
        return [
            json.loads(r.content)
            for r in self.requests
            if r.url.path.endswith("/payment-requests/")
        ]


class StaticKeyResolver:
    """Resolves every JWS to the same public key, like a one-key JWKS."""

    def __init__(self, public_key) -> None:
        self.public_key = public_key
        self.lookups = 0

    def get_signing_key_from_jwt(self, token: str):
        self.lookups += 1
        return SimpleNamespace(key=self.public_key)


@pytest.fixture(scope="session")
def signing_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def foreign_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture()
def key_resolver(signing_key):
    return StaticKeyResolver(signing_key.public_key())


@pytest.fixture()
def fake_gateway():
    return FakeGateway()


@pytest.fixture()
def payments_context(fake_gateway, key_resolver, settings):
    http = httpx.Client(transport=httpx.MockTransport(fake_gateway.handler))
    return build_payments_context(
        settings.PAYMENT_GATEWAY, http_client=http, key_resolver=key_resolver
    )


@pytest.fixture()
def use_payments_context(payments_context, monkeypatch):
    """Route the views' payments context to the fake gateway."""
    monkeypatch.setattr("modules.orders.views.get_payments_context", lambda: payments_context)
    monkeypatch.setattr("modules.payments.views.get_payments_context", lambda: payments_context)
    return payments_context


def sign_claims(claims: dict, key, mode: str = "compact") -> str:
    """JWS over the canonical JSON of *claims*.

    ``mode`` is ``compact`` (embedded payload), ``empty`` (payload segment
    stripped) or ``detached`` (``b64: false``).
    """
    payload = canonical_json(claims)
    jws = PyJWS()
    if mode == "detached":
        return jws.encode(payload, key, algorithm="RS256", is_payload_detached=True)
    token = jws.encode(payload, key, algorithm="RS256")
    if mode == "empty":
        header, _, signature = token.split(".")
        return f"{header}..{signature}"
    return token


@pytest.fixture()
def sign(signing_key):
    def _sign(claims: dict, mode: str = "compact", key=None) -> str:
        return sign_claims(claims, key or signing_key, mode)

    return _sign


@pytest.fixture()
def signed_webhook(signing_key):
    """Build a signed webhook body (bytes) for the given claims."""

    def _build(claims: dict, mode: str = "compact", key=None) -> bytes:
        signature = sign_claims(claims, key or signing_key, mode)
        return json.dumps({**claims, "signature": signature}).encode("utf-8")

    return _build


@pytest.fixture()
def post_webhook(api_client, signed_webhook):
    def _post(claims: dict, **kwargs):
        body = signed_webhook(claims, **kwargs)
        return api_client.post(WEBHOOK_URL, data=body, content_type="application/json")

    return _post
