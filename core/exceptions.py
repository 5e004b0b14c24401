import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError
from rest_framework import status
from rest_framework.exceptions import APIException, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class Conflict(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Resource conflict."
    default_code = "conflict"


class ServerError(APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Internal server error"
    default_code = "error"


def exception_handler(exc, context):
    """
    DRF handler plus translation of model-level errors.

    Model validation errors become 400, integrity errors 409 and anything
    unhandled is logged and answered with a bare 500.
    """
    if isinstance(exc, DjangoValidationError):
        detail = exc.message_dict if hasattr(exc, "error_dict") else exc.messages
        exc = ValidationError(detail)
    elif isinstance(exc, IntegrityError):
        logger.warning("Integrity error in %s: %s", _view_name(context), exc)
        exc = Conflict("Record conflicts with an existing one.")

    response = drf_exception_handler(exc, context)
    if response is not None:
        return response

    logger.exception("Unhandled error in %s", _view_name(context), exc_info=exc)
    return Response(
        {"detail": "Internal server error"},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def _view_name(context):
    view = context.get("view") if context else None
    return view.__class__.__name__ if view is not None else "unknown view"
