"""Payment webhook endpoint.

Anonymous: authenticity comes from the JWS in the body, which is verified
on the raw request bytes before the body is interpreted.
"""

from __future__ import annotations

import structlog
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from modules.core.exceptions import error_response
from modules.orders.exceptions import OrderNotFound
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.payments.context import get_payments_context
from modules.payments.exceptions import (
    InvalidSignature,
    MissingIntentionId,
    SigningKeysUnavailable,
    UnrecognizedPaymentStatus,
)
from modules.payments.webhooks import WebhookReconciler
from modules.products.repositories.django_repository import ProductDjangoRepository

logger = structlog.get_logger(__name__)


class PaymentWebhookView(APIView):
    """POST /api/v1/payments/webhook/"""

    authentication_classes: list = []
    permission_classes = [AllowAny]
    throttle_classes: list = []

    def _reconciler(self) -> WebhookReconciler:
        orders = OrderDjangoRepository()
        service = OrderService(
            order_repository=orders,
            product_repository=ProductDjangoRepository(),
        )
        return WebhookReconciler(
            verifier=get_payments_context().signature_verifier,
            order_service=service,
            order_repository=orders,
        )

    @extend_schema(request=None, responses={200: None})
    def post(self, request: Request) -> Response:
        # Read the exact bytes before DRF parses anything.
        raw_body = request.body
        try:
            result = self._reconciler().reconcile(raw_body)
        except SigningKeysUnavailable as exc:
            return error_response(str(exc), exc.code, status.HTTP_503_SERVICE_UNAVAILABLE)
        except InvalidSignature as exc:
            logger.warning("webhook.rejected", code=exc.code)
            return error_response(str(exc), exc.code, status.HTTP_400_BAD_REQUEST)
        except (MissingIntentionId, UnrecognizedPaymentStatus) as exc:
            return error_response(str(exc), exc.code, status.HTTP_400_BAD_REQUEST)
        except OrderNotFound as exc:
            return error_response(str(exc), exc.code, status.HTTP_404_NOT_FOUND)
        return Response(result.to_response(), status=status.HTTP_200_OK)
