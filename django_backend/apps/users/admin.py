from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import Organization, Role, User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ("email", "external_id", "display_name", "role", "organization", "is_staff")
    list_filter = ("role", "organization", "is_staff")
    search_fields = ("email", "external_id", "display_name")
    fieldsets = BaseUserAdmin.fieldsets + (
        ("Identity provider", {"fields": ("external_id", "display_name", "avatar_url", "role", "organization")}),
    )


@admin.register(Role)
class RoleAdmin(admin.ModelAdmin):
    list_display = ("name", "organization", "description")
    list_filter = ("organization",)


@admin.register(Organization)
class OrganizationAdmin(admin.ModelAdmin):
    list_display = ("name", "slug", "created_at")
    search_fields = ("name", "slug")
