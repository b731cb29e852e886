import logging

from rest_framework.permissions import BasePermission

from .authorization import get_request_access
from .exceptions import AuthorizationDenied

logger = logging.getLogger(__name__)


class RequiresPermission(BasePermission):
    """
    Coarse permission gate. Views map actions (or HTTP methods) to the
    permission they need in ``required_permissions``; unmapped actions only
    need an authenticated caller.
    """

    message = AuthorizationDenied.default_detail

    def has_permission(self, request, view):
        if not (request.user and request.user.is_authenticated):
            return False
        required = view.required_permissions
        permission = required.get(getattr(view, "action", None)) or required.get(request.method)
        if permission is None:
            return True
        access = get_request_access(request)
        if access.has(permission):
            return True
        logger.info("Access denied: %s lacks %s for %s", access.identity, permission, request.path)
        return False
