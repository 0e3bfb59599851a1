"""Process-scoped payment capabilities.

The token provider, gateway client and signature verifier hold shared
state (the cached credential, the HTTP connection pool, the JWKS cache),
so one instance of each lives for the whole process.  Views obtain them
through ``get_payments_context()``; tests build their own with
``build_payments_context`` or reset the cached one with
``get_payments_context.cache_clear()``.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Mapping, Optional

import httpx
from django.conf import settings
from jwt import PyJWKClient

from modules.payments.gateway import PaymentGatewayClient
from modules.payments.signature import SignatureVerifier, SigningKeyResolver
from modules.payments.tokens import TokenProvider


@dataclass(frozen=True)
class PaymentsContext:
    token_provider: TokenProvider
    gateway_client: PaymentGatewayClient
    signature_verifier: SignatureVerifier


def build_payments_context(
    conf: Mapping[str, Any],
    http_client: Optional[httpx.Client] = None,
    key_resolver: Optional[SigningKeyResolver] = None,
) -> PaymentsContext:
    timeout = conf.get("TIMEOUT", 10.0)
    http = http_client or httpx.Client(timeout=httpx.Timeout(timeout))
    tokens = TokenProvider(
        token_url=conf["TOKEN_URL"],
        client_id=conf.get("CLIENT_ID", ""),
        client_secret=conf.get("CLIENT_SECRET", ""),
        http_client=http,
        leeway=conf.get("TOKEN_LEEWAY", 30),
    )
    gateway = PaymentGatewayClient(
        base_url=conf["BASE_URL"],
        token_provider=tokens,
        http_client=http,
        currency=conf.get("CURRENCY", "ARS"),
        webhook_url=conf.get("WEBHOOK_URL", ""),
    )
    resolver = key_resolver or PyJWKClient(
        conf["JWKS_URL"],
        cache_jwk_set=True,
        lifespan=conf.get("JWKS_LIFESPAN", 3600),
        timeout=int(timeout),
    )
    verifier = SignatureVerifier(
        resolver, algorithms=conf.get("SIGNATURE_ALGORITHMS") or ["RS256"]
    )
    return PaymentsContext(
        token_provider=tokens,
        gateway_client=gateway,
        signature_verifier=verifier,
    )


@lru_cache(maxsize=1)
def get_payments_context() -> PaymentsContext:
    return build_payments_context(settings.PAYMENT_GATEWAY)
