from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from rest_framework import status
from rest_framework.exceptions import (
    APIException,
    AuthenticationFailed,
    MethodNotAllowed,
    NotAuthenticated,
    NotFound,
    ParseError,
    PermissionDenied,
    Throttled,
    UnsupportedMediaType,
    ValidationError,
)
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)

GENERIC_SERVER_ERROR_MESSAGE = "An unexpected error occurred."


class Conflict(APIException):
    """The request clashes with the current state of a record (already returned, already linked, ...)."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = "The request conflicts with the current state of the resource."
    default_code = "conflict"


ERROR_CODES: dict[type[Exception], str] = {
    ValidationError: "validation_error",
    NotAuthenticated: "not_authenticated",
    AuthenticationFailed: "authentication_failed",
    PermissionDenied: "permission_denied",
    NotFound: "not_found",
    Conflict: "conflict",
    MethodNotAllowed: "method_not_allowed",
    UnsupportedMediaType: "unsupported_media_type",
    ParseError: "parse_error",
    Throttled: "throttled",
}


def error_payload(*, code: str, message: str, errors: Any = None, status_code: int) -> dict[str, Any]:
    # `error` and `message` carry the same text; the counter UI reads `error`.
    return {
        "error": message,
        "code": code,
        "message": message,
        "errors": errors,
        "status": status_code,
    }


def custom_exception_handler(exc: Exception, context: dict[str, Any]) -> Response:
    response = drf_exception_handler(exc, context)

    if response is None:
        view = context.get("view")
        logger.exception("Unhandled API exception in %s", view.__class__.__name__ if view else "unknown")
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        return Response(
            error_payload(code="internal_server_error", message=GENERIC_SERVER_ERROR_MESSAGE, status_code=status_code),
            status=status_code,
        )

    data = response.data
    response.data = error_payload(
        code=error_code(exc),
        message=error_message(exc, data),
        errors=None if isinstance(data, Mapping) and set(data) == {"detail"} else data,
        status_code=response.status_code,
    )
    return response


def error_code(exc: Exception) -> str:
    for exception_type, code in ERROR_CODES.items():
        if isinstance(exc, exception_type):
            return code
    return str(getattr(exc, "default_code", "api_error"))


def first_error(data: Any) -> str | None:
    """
    Pick the first human-readable message out of a DRF error structure.

    Field errors are prefixed with the field name unless the message already
    names its subject (e.g. "Tube: expected 2 but received 1").
    """
    if isinstance(data, Mapping):
        for key, value in data.items():
            message = first_error(value)
            if message is None:
                continue
            if key in ("detail", "non_field_errors") or ":" in message:
                return message
            return f"{key}: {message}"
        return None
    if isinstance(data, Sequence) and not isinstance(data, str):
        return next((message for message in map(first_error, data) if message is not None), None)
    if data in (None, ""):
        return None
    return str(data)


def error_message(exc: Exception, data: Any) -> str:
    if isinstance(exc, ValidationError):
        return first_error(data) or "Validation failed."
    if isinstance(data, Mapping) and data.get("detail"):
        return str(data["detail"])
    if isinstance(exc, Throttled):
        return "Request was throttled."
    return str(getattr(exc, "detail", "Request failed."))
