"""API exceptions and the project-wide DRF exception handler."""
import logging

from rest_framework import status
from rest_framework.exceptions import APIException, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from core.exceptions import ConflictError

logger = logging.getLogger("circleops")

STATUS_CODES = {
    status.HTTP_400_BAD_REQUEST: "BAD_REQUEST",
    status.HTTP_401_UNAUTHORIZED: "UNAUTHORIZED",
    status.HTTP_403_FORBIDDEN: "FORBIDDEN",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
    status.HTTP_409_CONFLICT: "CONFLICT",
    status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: "PAYLOAD_TOO_LARGE",
    status.HTTP_429_TOO_MANY_REQUESTS: "TOO_MANY_REQUESTS",
}


class Conflict(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "The request conflicts with the current state of the resource."
    default_code = "conflict"


def exception_handler(exc, context):
    """DRF handler that tags every error body with an upper-case ``code``.

    Unhandled exceptions are logged and turned into a 500 response
    instead of Django's HTML error page.
    """
    response = drf_exception_handler(exc, context)
    if response is None:
        view = context.get("view")
        logger.error(
            "Unhandled API error in %s",
            view.__class__.__name__ if view is not None else "unknown view",
            exc_info=(type(exc), exc, exc.__traceback__),
        )
        return Response(
            {"detail": "Internal server error.", "code": "INTERNAL_SERVER_ERROR"},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    code = STATUS_CODES.get(response.status_code, "INTERNAL_SERVER_ERROR")
    if isinstance(response.data, dict):
        response.data["code"] = code
    else:
        response.data = {"detail": response.data, "code": code}
    return response


def to_api_error(exc):
    """Translate a service-layer ``ValueError`` into the matching DRF exception.

    ``ConflictError`` becomes a 409, any other ``ValueError`` a 400 with
    the message under ``detail``.
    """
    if isinstance(exc, ConflictError):
        return Conflict(str(exc))
    return ValidationError({"detail": str(exc)})
