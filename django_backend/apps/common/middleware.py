import logging
import time
import uuid
from urllib.parse import urlencode

from django.conf import settings
from django.http import HttpResponseRedirect
from django.utils.deprecation import MiddlewareMixin

from .auth import authenticate_token, get_session_token

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(MiddlewareMixin):
    """Log one line per request and echo a request ID back to the caller."""

    header = "X-Request-ID"

    def process_request(self, request):
        request.request_id = request.META.get("HTTP_X_REQUEST_ID") or uuid.uuid4().hex
        request._started_at = time.monotonic()

    def process_response(self, request, response):
        started = getattr(request, "_started_at", None)
        elapsed = time.monotonic() - started if started is not None else 0.0
        request_id = getattr(request, "request_id", "-")
        logger.info(
            "%s %s -> %s (%.3fs) [rid=%s]",
            request.method, request.get_full_path(), response.status_code, elapsed, request_id,
        )
        response[self.header] = request_id
        return response


class ProviderSessionMiddleware(MiddlewareMixin):
    """
    Authenticate server-rendered pages from the provider session cookie or
    Authorization header. Requests without a valid session keep whatever user
    Django's own authentication middleware attached (admin sessions).
    """

    def process_request(self, request):
        token = get_session_token(request)
        if not token:
            return None
        principal = authenticate_token(token)
        if principal is not None:
            request.user = principal
        return None


class LoginRequiredMiddleware(MiddlewareMixin):
    """
    Redirect anonymous visitors of protected pages to the provider sign-in
    page, remembering where they were headed.
    """

    PROTECTED_PATHS = [
        "/dashboard/",
        "/analytics/",
    ]

    EXEMPT_PATHS = [
        "/api/",
        "/admin/",
        "/healthz/",
    ]

    def process_request(self, request):
        if hasattr(request, "user") and request.user.is_authenticated:
            return None

        if any(request.path.startswith(path) for path in self.EXEMPT_PATHS):
            return None

        if not any(request.path.startswith(path) for path in self.PROTECTED_PATHS):
            return None

        sign_in_url = settings.IDENTITY_PROVIDER["SIGN_IN_URL"]
        query = urlencode({"redirect_url": request.get_full_path()})
        return HttpResponseRedirect(f"{sign_in_url}?{query}")
