"""Payment gateway and webhook exceptions."""

from __future__ import annotations

from typing import Optional

from modules.core.exceptions import DomainError


class GatewayError(DomainError):
    """The payment gateway could not be reached or refused the request."""

    code = "gateway_error"
    message = "Payment gateway error."


class GatewayTokenError(GatewayError):
    """Fetching the gateway bearer token failed."""

    code = "gateway_token_error"
    message = "Could not obtain payment gateway credentials."


class IntentionCreationError(GatewayError):
    """The gateway answered the intention request with an error."""

    code = "gateway_error"
    message = "Could not create payment intention."

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class SigningKeysUnavailable(GatewayError):
    """The gateway's JWKS endpoint could not be fetched."""

    code = "signing_keys_unavailable"
    message = "Payment gateway signing keys are unavailable."


class InvalidSignature(DomainError):
    """The webhook signature does not verify against the gateway keys."""

    code = "invalid_signature"
    message = "Invalid webhook signature."


class MissingIntentionId(DomainError):
    code = "missing_intention_id"
    message = "external_intention_id is required."


class UnrecognizedPaymentStatus(DomainError):
    code = "unrecognized_payment_status"
    message = "Unrecognized payment status."
