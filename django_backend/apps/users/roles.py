"""
Built-in roles and the permissions each one grants.
"""
from django.conf import settings
from django.db import transaction

from .models import Organization, Permission, Role, RoleName

ROLE_PERMISSIONS = {
    RoleName.ADMIN: list(Permission.values),
    RoleName.MANAGER: [
        Permission.CREATE_PROJECT,
        Permission.READ_PROJECT,
        Permission.UPDATE_PROJECT,
        Permission.CREATE_TASK,
        Permission.READ_TASK,
        Permission.UPDATE_TASK,
        Permission.ASSIGN_TASK,
        Permission.VIEW_ANALYTICS,
        Permission.MANAGE_USERS,
    ],
    RoleName.MEMBER: [
        Permission.READ_PROJECT,
        Permission.CREATE_TASK,
        Permission.READ_TASK,
        Permission.UPDATE_TASK,
        Permission.VIEW_ANALYTICS,
    ],
    RoleName.VIEWER: [
        Permission.READ_PROJECT,
        Permission.READ_TASK,
        Permission.VIEW_ANALYTICS,
    ],
}

ROLE_DESCRIPTIONS = {
    RoleName.ADMIN: "Full administrative access",
    RoleName.MANAGER: "Project and team management",
    RoleName.MEMBER: "Standard team member access",
    RoleName.VIEWER: "Read-only access",
}


def permissions_for(role_name):
    return [str(p) for p in ROLE_PERMISSIONS.get(role_name, [])]


@transaction.atomic
def create_default_roles(organization=None):
    """Create the four built-in roles globally or for one organization. Existing roles are kept."""
    roles = []
    for role_name in RoleName:
        role, _ = Role.objects.get_or_create(
            name=role_name.value,
            organization=organization,
            defaults={
                "description": ROLE_DESCRIPTIONS[role_name],
                "permissions": permissions_for(role_name),
            },
        )
        roles.append(role)
    return roles


def get_default_role():
    return Role.objects.filter(name=settings.DEFAULT_ROLE_NAME, organization__isnull=True).first()


def get_default_organization():
    return Organization.objects.filter(slug=settings.DEFAULT_ORGANIZATION_SLUG).first()


@transaction.atomic
def ensure_defaults():
    """Global seed roles plus the default organization. Returns (roles, organization)."""
    roles = create_default_roles()
    organization, _ = Organization.objects.get_or_create(
        slug=settings.DEFAULT_ORGANIZATION_SLUG,
        defaults={"name": "Default Organization"},
    )
    return roles, organization
