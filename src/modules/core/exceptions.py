"""Domain error base class and the DRF exception handler.

Every business-rule violation raised by the service layer derives from
``DomainError`` and carries the HTTP status it maps to.  Views let these
propagate; ``envelope_exception_handler`` (wired through
``REST_FRAMEWORK["EXCEPTION_HANDLER"]``) renders them, DRF's own errors and
pydantic validation errors as ``{"status": "error", "message": ...}``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import structlog
from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.http import Http404
from pydantic import ValidationError as PydanticValidationError
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = structlog.get_logger(__name__)


class DomainError(Exception):
    """Base class for errors raised by the service layer."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Request could not be processed."

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


def error_response(
    message: str, status_code: int, errors: Optional[Any] = None
) -> Response:
    body: Dict[str, Any] = {"status": "error", "message": message}
    if errors is not None:
        body["errors"] = errors
    return Response(body, status=status_code)


def _flatten_message(detail: Any) -> str:
    """Pick the first human readable message out of a DRF error detail."""
    if isinstance(detail, dict):
        for key, value in detail.items():
            inner = _flatten_message(value)
            return inner if key == "non_field_errors" else f"{key}: {inner}"
        return "Invalid request."
    if isinstance(detail, (list, tuple)):
        return _flatten_message(detail[0]) if detail else "Invalid request."
    return str(detail)


def envelope_exception_handler(
    exc: Exception, context: Dict[str, Any]
) -> Optional[Response]:
    """Render every error raised below a DRF view as the error envelope."""
    view = context.get("view")
    view_name = type(view).__name__ if view is not None else None

    if isinstance(exc, DomainError):
        logger.info(
            "api.domain_error",
            error=type(exc).__name__,
            message=exc.message,
            status_code=exc.status_code,
            view=view_name,
        )
        return error_response(exc.message, exc.status_code)

    if isinstance(exc, PydanticValidationError):
        errors = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in exc.errors()
        ]
        message = errors[0]["message"] if errors else "Invalid request."
        return error_response(message, status.HTTP_400_BAD_REQUEST, errors)

    if isinstance(exc, (Http404, DjangoPermissionDenied)):
        exc = (
            exceptions.NotFound()
            if isinstance(exc, Http404)
            else exceptions.PermissionDenied()
        )

    response = exception_handler(exc, context)
    if response is not None:
        detail = response.data
        message = _flatten_message(detail)
        body: Dict[str, Any] = {"status": "error", "message": message}
        if isinstance(exc, exceptions.ValidationError):
            body["errors"] = detail
        response.data = body
        return response

    logger.exception("api.unhandled_error", error=type(exc).__name__, view=view_name)
    return error_response(
        str(exc) or "Internal server error.",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
