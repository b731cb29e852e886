"""
API error taxonomy. Rendered into the response envelope by
``apps.common.handlers.api_exception_handler``.
"""
import math

from rest_framework import exceptions, status


class AuthenticationMissing(exceptions.NotAuthenticated):
    default_detail = "Unauthorized"


class AuthorizationDenied(exceptions.PermissionDenied):
    default_detail = "Insufficient permissions"


class ResourceNotFound(exceptions.NotFound):
    default_detail = "Not found"


class ValidationFailed(exceptions.APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid input"
    default_code = "invalid"


class RateLimited(exceptions.Throttled):
    default_detail = "Rate limit exceeded. Please try again later."

    def __init__(self, wait=None, detail=None):
        exceptions.APIException.__init__(self, detail or self.default_detail)
        self.wait = None if wait is None else math.ceil(wait)


class InfrastructureFailure(exceptions.APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Internal server error"
    default_code = "infrastructure"


def first_error_message(detail, field=None):
    """Flatten DRF validation detail into one message naming the first bad field."""
    if isinstance(detail, dict):
        for key, value in detail.items():
            name = field if key in ("non_field_errors", "__all__") else key
            if field and name != field:
                name = f"{field}.{name}"
            return first_error_message(value, name)
        return "Invalid input"
    if isinstance(detail, (list, tuple)):
        for index, value in enumerate(detail):
            if isinstance(value, (dict, list)):
                return first_error_message(value, f"{field}[{index}]" if field else None)
            return first_error_message(value, field)
        return "Invalid input"
    return f"{field}: {detail}" if field else str(detail)
