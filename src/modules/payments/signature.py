"""Webhook signature verification.

The gateway signs each notification with a JWS carried in the body's
``signature`` field.  The signed payload must equal the canonical JSON of
every *other* field of the same body.  Three encodings are accepted:

- compact JWS with an embedded payload (compared after decoding),
- compact JWS with an empty payload segment (payload re-attached from the
  canonical bytes before verifying),
- ``b64: false`` detached JWS (verified against the canonical bytes).

Keys come from the gateway's JWKS through ``PyJWKClient``, which caches
the key set for the life of the process.
"""

from __future__ import annotations

import base64
import json
from typing import Any, Dict, Protocol, Sequence

import jwt
import structlog
from jwt.api_jws import PyJWS

from modules.payments.exceptions import InvalidSignature, SigningKeysUnavailable

logger = structlog.get_logger(__name__)

SIGNATURE_FIELD = "signature"


class SigningKeyResolver(Protocol):
    def get_signing_key_from_jwt(self, token: str) -> Any: ...


def canonical_json(data: Any) -> bytes:
    """Compact JSON in the body's own key order."""
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def parse_body(raw_body: bytes) -> Dict[str, Any]:
    try:
        body = json.loads(raw_body)
    except (ValueError, UnicodeDecodeError) as exc:
        raise InvalidSignature("Malformed webhook body.") from exc
    if not isinstance(body, dict):
        raise InvalidSignature("Malformed webhook body.")
    return body


class SignatureVerifier:
    def __init__(self, key_resolver: SigningKeyResolver, algorithms: Sequence[str]) -> None:
        self._keys = key_resolver
        self._algorithms = list(algorithms)
        self._jws = PyJWS()

    def verify(self, raw_body: bytes) -> Dict[str, Any]:
        """Return the verified claims (body minus ``signature``).

        Raises:
            InvalidSignature: malformed body, missing signature, unknown
                key, bad signature or a payload that differs from the body.
            SigningKeysUnavailable: the JWKS could not be fetched; the
                signature was never checked.
        """
        body = parse_body(raw_body)
        signature = body.get(SIGNATURE_FIELD)
        if not isinstance(signature, str) or not signature:
            logger.warning("webhook.signature_missing")
            raise InvalidSignature("Missing webhook signature.")

        claims = {key: value for key, value in body.items() if key != SIGNATURE_FIELD}
        expected = canonical_json(claims)

        try:
            header = jwt.get_unverified_header(signature)
            key = self._keys.get_signing_key_from_jwt(signature).key
            token, detached = _prepare(signature, header, expected)
            decoded = self._jws.decode_complete(
                token,
                key=key,
                algorithms=self._algorithms,
                detached_payload=detached,
            )
        except jwt.PyJWKClientConnectionError as exc:
            logger.error("webhook.signing_keys_unavailable", error=str(exc))
            raise SigningKeysUnavailable() from exc
        except jwt.PyJWTError as exc:
            logger.warning("webhook.signature_invalid", reason=type(exc).__name__)
            raise InvalidSignature() from exc

        if detached is None and not _same_document(decoded["payload"], expected):
            logger.warning("webhook.signature_invalid", reason="payload_mismatch")
            raise InvalidSignature()
        return claims


def _prepare(signature: str, header: Dict[str, Any], expected: bytes) -> tuple[str, bytes | None]:
    if header.get("b64") is False:
        return signature, expected
    parts = signature.split(".")
    if len(parts) == 3 and parts[1] == "":
        encoded = base64.urlsafe_b64encode(expected).rstrip(b"=").decode("ascii")
        return f"{parts[0]}.{encoded}.{parts[2]}", None
    return signature, None


def _same_document(payload: bytes, expected: bytes) -> bool:
    try:
        signed = json.loads(payload)
    except (ValueError, UnicodeDecodeError):
        return False
    return canonical_json(signed) == expected
