from rest_framework.response import Response

from .authorization import get_request_access
from .exceptions import ValidationFailed
from .permissions import RequiresPermission
from .ratelimit import RateLimitMixin
from .responses import envelope

MAX_PAGE_SIZE = 100


def positive_int(params, name, default, maximum=None):
    raw = params.get(name)
    if raw in (None, ""):
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationFailed(f"{name}: must be a positive integer")
    if value < 1:
        raise ValidationFailed(f"{name}: must be a positive integer")
    if maximum is not None:
        value = min(value, maximum)
    return value


class ServiceViewMixin(RateLimitMixin):
    """
    Rate limiting, coarse permissions and resolved access for API views.
    Successful responses are wrapped in the standard envelope; errors are
    wrapped by the exception handler.
    """

    permission_classes = [RequiresPermission]
    required_permissions = {}

    @property
    def access(self):
        return get_request_access(self.request)

    def get_page_params(self):
        params = self.request.query_params
        return positive_int(params, "page", 1), positive_int(params, "limit", 10, MAX_PAGE_SIZE)

    def finalize_response(self, request, response, *args, **kwargs):
        if isinstance(response, Response) and response.status_code < 400:
            response.data = envelope(success=True, data=response.data)
        return super().finalize_response(request, response, *args, **kwargs)
