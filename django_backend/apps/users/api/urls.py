from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import IdentityWebhookView, OrganizationViewSet, RoleViewSet, SyncUsersView, UserViewSet

router = DefaultRouter()
router.register(r"organizations", OrganizationViewSet, basename="organizations")
router.register(r"roles", RoleViewSet, basename="roles")
router.register(r"users", UserViewSet, basename="users")

urlpatterns = [
    path("", include(router.urls)),
    path("webhooks/identity/", IdentityWebhookView.as_view(), name="identity-webhook"),
    path("sync-users/", SyncUsersView.as_view(), name="sync-users"),
]
