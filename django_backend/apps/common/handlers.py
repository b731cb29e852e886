"""
DRF exception handler that renders every API failure inside the standard
response envelope.

``apps.common.auth`` must not import this module: importing
``rest_framework.views`` resolves the configured authentication classes.
"""
import logging
import math

from django.core.exceptions import PermissionDenied
from django.db import DatabaseError
from django.http import Http404
from pymongo.errors import PyMongoError
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from .exceptions import (
    AuthenticationMissing,
    AuthorizationDenied,
    InfrastructureFailure,
    ResourceNotFound,
    ValidationFailed,
    first_error_message,
)
from .responses import envelope

logger = logging.getLogger(__name__)


def _identity(request):
    user = getattr(request, "user", None)
    return getattr(user, "external_id", None) or "anonymous"


def api_exception_handler(exc, context):
    request = context.get("request")
    view = context.get("view")
    operation = f"{type(view).__name__}.{getattr(view, 'action', None) or getattr(request, 'method', '')}"

    if isinstance(exc, exceptions.NotAuthenticated) and not isinstance(exc, AuthenticationMissing):
        original, exc = exc, AuthenticationMissing()
        exc.status_code = original.status_code
        exc.auth_header = getattr(original, "auth_header", None)
    elif isinstance(exc, exceptions.ValidationError):
        exc = ValidationFailed(first_error_message(exc.detail))
    elif isinstance(exc, Http404):
        exc = ResourceNotFound()
    elif isinstance(exc, PermissionDenied):
        exc = AuthorizationDenied()
    elif isinstance(exc, (PyMongoError, DatabaseError)):
        logger.error(
            "Infrastructure failure in %s for %s on %s",
            operation, _identity(request), getattr(request, "path", "?"),
            exc_info=exc,
        )
        exc = InfrastructureFailure()

    response = drf_exception_handler(exc, context)
    if response is None:
        logger.error(
            "Unhandled exception in %s for %s on %s",
            operation, _identity(request), getattr(request, "path", "?"),
            exc_info=exc,
        )
        return Response(
            envelope(success=False, error=InfrastructureFailure.default_detail),
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    detail = exc.detail if isinstance(exc, exceptions.APIException) else response.data
    if isinstance(detail, (dict, list)):
        detail = first_error_message(detail)

    body = envelope(success=False, error=str(detail))
    if isinstance(exc, exceptions.Throttled) and exc.wait is not None:
        body["retry_after"] = math.ceil(exc.wait)
    response.data = body
    return response
