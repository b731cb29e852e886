"""
Authorization decisions for every request.

An identity's role grants coarse permissions (``read:project``...). Access to
a specific project or task depends on the caller's relation to it, described
once in ``POLICIES``. Route handlers decide on that relation alone through
``authorize``. ``can_access_resource`` additionally requires the coarse
``<action>:<resource>`` permission. Global admins (the ``admin`` role with no
organization) bypass both checks.

Lookups fail soft: if the relational store cannot be read the caller is
treated as having no permissions, and the failure is logged as an
infrastructure error rather than a denial.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Optional, Tuple

from django.db import DatabaseError
from pymongo.errors import PyMongoError

from apps.projects.repositories import ProjectRepository, TaskRepository
from apps.users.models import RoleName, User

from .exceptions import AuthorizationDenied, ResourceNotFound

logger = logging.getLogger(__name__)

PROJECT = "project"
TASK = "task"
RESOURCE_TYPES = (PROJECT, TASK)

READ = "read"
WRITE = "write"
DELETE = "delete"
ACTIONS = (READ, WRITE, DELETE)

_ACTION_VERBS = {READ: "read", WRITE: "update", DELETE: "delete"}


@dataclass(frozen=True)
class ResolvedAccess:
    """What one identity may do, resolved once from its role."""

    identity: Optional[str]
    role: Optional[str] = None
    permissions: FrozenSet[str] = frozenset()
    role_organization_id: Optional[int] = None
    organization_id: Optional[int] = None
    registered: bool = False

    @property
    def is_global_admin(self):
        return self.role == RoleName.ADMIN and self.role_organization_id is None

    def has(self, permission):
        return self.is_global_admin or str(permission) in self.permissions


def identity_of(principal):
    """External ID from a principal, a User row, or a raw string."""
    if principal is None or isinstance(principal, str):
        return principal or None
    return getattr(principal, "external_id", None) or None


def resolve_permissions(principal):
    if isinstance(principal, ResolvedAccess):
        return principal

    external_id = identity_of(principal)
    if external_id is None:
        return ResolvedAccess(identity=None)

    try:
        user = User.objects.select_related("role").filter(external_id=external_id).first()
    except DatabaseError:
        logger.error(
            "Permission lookup failed for %s; continuing with no permissions",
            external_id, exc_info=True,
        )
        return ResolvedAccess(identity=external_id)

    if user is None:
        logger.debug("No local identity for %s", external_id)
        return ResolvedAccess(identity=external_id)

    if user.role is None:
        return ResolvedAccess(identity=external_id, organization_id=user.organization_id, registered=True)

    return ResolvedAccess(
        identity=external_id,
        role=user.role.name,
        permissions=user.role.permission_set(),
        role_organization_id=user.role.organization_id,
        organization_id=user.organization_id,
        registered=True,
    )


def get_request_access(request):
    """Resolve the caller's access once per request."""
    access = getattr(request, "_resolved_access", None)
    if access is None:
        access = resolve_permissions(request.user)
        request._resolved_access = access
    return access


def has_permission(principal, permission):
    return str(permission) in resolve_permissions(principal).permissions


def has_role(principal, role_name):
    return resolve_permissions(principal).role == role_name


def is_global_admin(principal):
    return resolve_permissions(principal).is_global_admin


def is_organization_admin(principal, organization_id=None):
    """
    Global admins administer every organization. Otherwise the identity must
    hold the ``admin`` role of ``organization_id`` (its own organization when
    omitted).
    """
    access = resolve_permissions(principal)
    if access.is_global_admin:
        return True
    if access.role != RoleName.ADMIN:
        return False
    target = organization_id if organization_id is not None else access.organization_id
    if target is None:
        return False
    return str(access.role_organization_id) == str(target)


def required_permission(resource_type, action):
    return f"{_ACTION_VERBS[action]}:{resource_type}"


def _is_project_member(identity, project):
    if not project:
        return False
    return project.get("owner_id") == identity or identity in project.get("team_members", [])


def _is_project_owner(identity, project):
    return bool(project) and project.get("owner_id") == identity


def _project_member(identity, resource, project):
    return _is_project_member(identity, resource)


def _project_owner(identity, resource, project):
    return _is_project_owner(identity, resource)


def _task_participant(identity, task, project):
    return (
        task.get("assignee_id") == identity
        or task.get("reporter_id") == identity
        or _is_project_member(identity, project)
    )


def _task_reporter_or_project_owner(identity, task, project):
    return task.get("reporter_id") == identity or _is_project_owner(identity, project)


Predicate = Callable[[str, dict, Optional[dict]], bool]

POLICIES: Dict[Tuple[str, str], Predicate] = {
    (PROJECT, READ): _project_member,
    (PROJECT, WRITE): _project_owner,
    (PROJECT, DELETE): _project_owner,
    (TASK, READ): _task_participant,
    (TASK, WRITE): _task_participant,
    (TASK, DELETE): _task_reporter_or_project_owner,
}


def permits(access, resource_type, action, resource, project=None):
    """Relation predicate for an already-loaded resource."""
    if access.identity is None or resource is None:
        return False
    if access.is_global_admin:
        return True
    return bool(POLICIES[(resource_type, action)](access.identity, resource, project))


def evaluate(access, resource_type, action, resource, project=None):
    """Coarse permission plus the relation predicate."""
    if not access.is_global_admin and required_permission(resource_type, action) not in access.permissions:
        return False
    return permits(access, resource_type, action, resource, project)


def load_resource(resource_type, resource_id):
    """(resource, parent project). Either may be None."""
    if resource_type == PROJECT:
        project = ProjectRepository().get(resource_id)
        return project, project
    task = TaskRepository().get(resource_id)
    if task is None:
        return None, None
    return task, ProjectRepository().get(task.get("project_id"))


def can_access_resource(principal, resource_type, resource_id, action=READ):
    if resource_type not in RESOURCE_TYPES or action not in ACTIONS:
        raise ValueError(f"Unknown resource check {resource_type}/{action}")

    access = resolve_permissions(principal)
    if access.identity is None:
        return False
    if access.is_global_admin:
        return True

    try:
        resource, project = load_resource(resource_type, resource_id)
    except PyMongoError:
        logger.error(
            "Could not load %s %s for access check by %s",
            resource_type, resource_id, access.identity, exc_info=True,
        )
        return False
    if resource is None:
        return False
    return evaluate(access, resource_type, action, resource, project)


def require_permission(access, permission):
    if not access.has(permission):
        logger.info("Access denied: %s lacks %s", access.identity, permission)
        raise AuthorizationDenied()


def authorize(access, resource_type, action, resource, project=None):
    """
    Raise unless ``access`` may perform ``action`` on ``resource``.

    Decided on the caller's relation to the resource. A resource the caller
    cannot even read is reported as missing (404) so its existence does not
    leak. A readable resource with the action itself denied is a 403.
    """
    if not permits(access, resource_type, READ, resource, project):
        raise ResourceNotFound(f"{resource_type.capitalize()} not found")

    if not permits(access, resource_type, action, resource, project):
        logger.info(
            "Access denied: %s may not %s %s %s",
            access.identity, action, resource_type, resource.get("_id"),
        )
        raise AuthorizationDenied()
