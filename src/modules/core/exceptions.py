"""Error taxonomy and the uniform error wire format.

Every error leaving the API has the shape::

    {"error": "<human readable>", "code": "<machine checkable>", "details": ...}

``details`` is present only when there is structured context to report
(e.g. the per-item stock shortfalls of a rejected checkout).  Internal
exception text, stack traces and query details never reach the client.
"""

from __future__ import annotations

from typing import Any, Optional

import structlog
from django.core.exceptions import PermissionDenied
from django.http import Http404
from rest_framework import exceptions as drf_exceptions
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = structlog.get_logger(__name__)


class DomainError(Exception):
    """Base class for business-rule violations raised by the service layer."""

    code = "domain_error"
    message = "The request could not be processed."

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.message)


def error_response(
    message: str,
    code: str,
    http_status: int,
    details: Any = None,
    headers: Optional[dict] = None,
) -> Response:
    body: dict[str, Any] = {"error": message, "code": code}
    if details is not None:
        body["details"] = details
    return Response(body, status=http_status, headers=headers)


def api_exception_handler(exc: Exception, context: dict) -> Response:
    """DRF ``EXCEPTION_HANDLER`` producing the uniform error format."""
    view = context.get("view")
    view_name = type(view).__name__ if view is not None else None

    if isinstance(exc, Http404):
        exc = drf_exceptions.NotFound()
    elif isinstance(exc, PermissionDenied):
        exc = drf_exceptions.PermissionDenied()

    if isinstance(exc, drf_exceptions.APIException):
        response = exception_handler(exc, context)
        if response is None:  # pragma: no cover - DRF always handles APIException
            response = Response(status=exc.status_code)
        headers = {
            key: value
            for key, value in response.items()
            if key in {"Retry-After", "WWW-Authenticate"}
        }
        details = exc.detail if isinstance(exc, drf_exceptions.ValidationError) else None
        message = (
            "Invalid request." if details is not None else _flatten_detail(exc.detail)
        )
        codes = exc.get_codes()
        code = codes if isinstance(codes, str) else exc.default_code
        return error_response(message, code, response.status_code, details, headers)

    if isinstance(exc, DomainError):
        logger.warning("api.unhandled_domain_error", view=view_name, code=exc.code)
        return error_response(str(exc), exc.code, status.HTTP_400_BAD_REQUEST)

    logger.exception("api.internal_error", view=view_name)
    return error_response(
        "Internal server error.",
        "internal_error",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def _flatten_detail(detail: Any) -> str:
    if isinstance(detail, (list, tuple)) and detail:
        return _flatten_detail(detail[0])
    if isinstance(detail, dict) and detail:
        return _flatten_detail(next(iter(detail.values())))
    return str(detail)
