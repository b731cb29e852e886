import logging

from django.contrib.auth.models import AbstractUser
from django.core.validators import RegexValidator
from django.db import models
from django.db.models import Q

logger = logging.getLogger(__name__)


class Permission(models.TextChoices):
    CREATE_PROJECT = "create:project", "Create projects"
    READ_PROJECT = "read:project", "Read projects"
    UPDATE_PROJECT = "update:project", "Update projects"
    DELETE_PROJECT = "delete:project", "Delete projects"
    CREATE_TASK = "create:task", "Create tasks"
    READ_TASK = "read:task", "Read tasks"
    UPDATE_TASK = "update:task", "Update tasks"
    DELETE_TASK = "delete:task", "Delete tasks"
    ASSIGN_TASK = "assign:task", "Assign tasks"
    VIEW_ANALYTICS = "view:analytics", "View analytics"
    MANAGE_USERS = "manage:users", "Manage users"
    MANAGE_ROLES = "manage:roles", "Manage roles"


class RoleName(models.TextChoices):
    ADMIN = "admin", "Admin"
    MANAGER = "manager", "Manager"
    MEMBER = "member", "Member"
    VIEWER = "viewer", "Viewer"


slug_validator = RegexValidator(
    r"^[a-z0-9-]+$",
    "Slug can only contain lowercase letters, numbers, and hyphens",
)


class Organization(models.Model):
    name = models.CharField(max_length=100)
    slug = models.CharField(max_length=50, unique=True, validators=[slug_validator])
    settings = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return self.name


class Role(models.Model):
    name = models.CharField(max_length=50, choices=RoleName.choices)
    description = models.CharField(max_length=200, blank=True, default="")
    permissions = models.JSONField(default=list, blank=True)
    organization = models.ForeignKey(
        Organization,
        on_delete=models.CASCADE,
        related_name="roles",
        null=True,
        blank=True,
        help_text="Empty for global roles",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        constraints = [
            models.UniqueConstraint(fields=["name", "organization"], name="uq_role_name_per_organization"),
            models.UniqueConstraint(
                fields=["name"],
                condition=Q(organization__isnull=True),
                name="uq_global_role_name",
            ),
        ]

    def __str__(self):
        if self.organization_id:
            return f"{self.name} ({self.organization})"
        return self.name

    @property
    def is_global(self):
        return self.organization_id is None

    def permission_set(self):
        """Known permissions granted by this role. Unknown stored values are ignored."""
        granted = set()
        for value in self.permissions or []:
            if value in Permission.values:
                granted.add(value)
            else:
                logger.warning("Ignoring unknown permission %r on role %s", value, self.pk)
        return frozenset(granted)


class User(AbstractUser):
    external_id = models.CharField(
        max_length=191,
        unique=True,
        null=True,
        blank=True,
        help_text="User ID assigned by the identity provider",
    )
    display_name = models.CharField(max_length=150, blank=True, default="")
    avatar_url = models.URLField(max_length=500, blank=True, default="")
    role = models.ForeignKey(
        Role,
        on_delete=models.PROTECT,
        related_name="users",
        null=True,
        blank=True,
    )
    organization = models.ForeignKey(
        Organization,
        on_delete=models.PROTECT,
        related_name="users",
        null=True,
        blank=True,
    )
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.email or self.username

    @property
    def full_name(self):
        return " ".join(part for part in (self.first_name, self.last_name) if part)
