import json
import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Count, ProtectedError, Q
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.common.api import ServiceViewMixin
from apps.common.authorization import is_organization_admin
from apps.common.exceptions import (
    AuthorizationDenied,
    InfrastructureFailure,
    ResourceNotFound,
    ValidationFailed,
)
from apps.common.ratelimit import RateLimitMixin
from apps.common.responses import envelope, paginated
from apps.users.models import Organization, Permission, Role
from apps.users.provider import ProviderClient, ProviderError
from apps.users.roles import create_default_roles, get_default_organization, get_default_role
from apps.users.sync import SyncConfigurationError, apply_provider_event, sync_identities
from apps.users.webhooks import WebhookVerificationError, verify_signature

from ..producer import publish_identity_created, publish_role_assigned
from .serializers import (
    OrganizationDetailSerializer,
    OrganizationSerializer,
    OrganizationUpdateSerializer,
    RegistrationSerializer,
    RoleSerializer,
    UserAssignmentSerializer,
    UserSerializer,
)

logger = logging.getLogger(__name__)

User = get_user_model()


class OrganizationViewSet(ServiceViewMixin, viewsets.ModelViewSet):
    rate_limit_scope = "organizations"
    rate_limits = {"list": 30, "retrieve": 30, "create": 5, "update": 10, "partial_update": 10, "destroy": 5}
    http_method_names = ["get", "post", "put", "patch", "delete", "head", "options"]

    def get_queryset(self):
        qs = Organization.objects.all()
        access = self.access
        if self.action == "list" and not access.is_global_admin:
            return qs.filter(pk=access.organization_id) if access.organization_id else qs.none()
        if self.action == "retrieve":
            qs = qs.prefetch_related("users__role", "roles")
        return qs

    def get_serializer_class(self):
        if self.action == "retrieve":
            return OrganizationDetailSerializer
        if self.action in ("update", "partial_update"):
            return OrganizationUpdateSerializer
        return OrganizationSerializer

    def get_object(self):
        organization = super().get_object()
        if not is_organization_admin(self.access, organization.pk):
            raise AuthorizationDenied()
        return organization

    def create(self, request, *args, **kwargs):
        if not self.access.is_global_admin:
            raise AuthorizationDenied()
        return super().create(request, *args, **kwargs)

    def update(self, request, *args, **kwargs):
        kwargs["partial"] = True
        return super().update(request, *args, **kwargs)

    @transaction.atomic
    def perform_create(self, serializer):
        organization = serializer.save()
        create_default_roles(organization)
        logger.info(f"Organization {organization.slug} created by {self.access.identity}")

    def destroy(self, request, *args, **kwargs):
        if not self.access.is_global_admin:
            raise AuthorizationDenied()
        organization = self.get_object()
        if organization.users.exists():
            raise ValidationFailed("Cannot delete organization with users. Please transfer users first.")
        try:
            organization.delete()
        except ProtectedError:
            raise ValidationFailed("Cannot delete organization whose roles are still assigned to users.")
        logger.info(f"Organization {organization.slug} deleted by {self.access.identity}")
        return Response({"message": "Organization deleted successfully"})


class RoleViewSet(ServiceViewMixin, viewsets.ModelViewSet):
    serializer_class = RoleSerializer
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ["organization"]
    rate_limit_scope = "roles"
    rate_limits = {"list": 30, "retrieve": 30, "create": 10, "update": 10, "partial_update": 10, "destroy": 10}
    required_permissions = {
        "list": Permission.MANAGE_ROLES,
        "create": Permission.MANAGE_ROLES,
        "update": Permission.MANAGE_ROLES,
        "partial_update": Permission.MANAGE_ROLES,
        "destroy": Permission.MANAGE_ROLES,
    }

    def get_queryset(self):
        qs = (
            Role.objects.select_related("organization")
            .annotate(user_count=Count("users"))
            .order_by("organization_id", "name")
        )
        access = self.access
        if not access.is_global_admin:
            # Global roles plus the caller's own organization
            qs = qs.filter(Q(organization__isnull=True) | Q(organization_id=access.organization_id))
        return qs

    def check_scope(self, organization_id):
        """Organization admins manage their own organization's roles only."""
        access = self.access
        if access.is_global_admin:
            return
        if organization_id is None or organization_id != access.organization_id:
            raise AuthorizationDenied()

    def perform_create(self, serializer):
        organization = serializer.validated_data.get("organization")
        self.check_scope(organization.pk if organization else None)
        serializer.save()

    def update(self, request, *args, **kwargs):
        kwargs["partial"] = True
        return super().update(request, *args, **kwargs)

    def perform_update(self, serializer):
        self.check_scope(serializer.instance.organization_id)
        serializer.save()

    def destroy(self, request, *args, **kwargs):
        role = self.get_object()
        self.check_scope(role.organization_id)
        if role.users.exists():
            raise ValidationFailed("Cannot delete role with assigned users. Please reassign users first.")
        role.delete()
        logger.info(f"Role {role.name} deleted by {self.access.identity}")
        return Response({"message": "Role deleted successfully"})


class UserViewSet(ServiceViewMixin, viewsets.GenericViewSet):
    serializer_class = UserSerializer
    rate_limit_scope = "users"
    rate_limits = {"list": 100, "me": 100, "create": 10, "partial_update": 10}
    required_permissions = {
        "list": Permission.MANAGE_USERS,
        "partial_update": Permission.MANAGE_USERS,
    }

    def get_queryset(self):
        qs = User.objects.select_related("role", "organization").order_by("-date_joined")
        if not self.access.is_global_admin:
            # Organization administrators and managers see their own organization only
            qs = qs.filter(organization_id=self.access.organization_id)
        return qs

    def list(self, request):
        page, limit = self.get_page_params()
        qs = self.get_queryset()
        search = request.query_params.get("search")
        if search:
            qs = qs.filter(Q(email__icontains=search) | Q(display_name__icontains=search))
        total = qs.count()
        users = qs[(page - 1) * limit: page * limit]
        return Response(paginated(UserSerializer(users, many=True).data, total, page, limit))

    def create(self, request):
        """Register the caller when the provider webhook has not created them yet."""
        external_id = self.access.identity
        if User.objects.filter(external_id=external_id).exists():
            raise ValidationFailed("User already exists")

        serializer = RegistrationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        user = User(
            external_id=external_id,
            username=external_id,
            email=data["email"],
            first_name=data["first_name"],
            last_name=data["last_name"],
            display_name=f"{data['first_name']} {data['last_name']}",
            role=get_default_role(),
            organization=get_default_organization(),
        )
        user.set_unusable_password()
        user.save()
        publish_identity_created(external_id, user.email, "registration")
        return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        user = self.get_queryset().filter(pk=pk).first()
        if user is None:
            raise ResourceNotFound("User not found")

        serializer = UserAssignmentSerializer(user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        target_org = serializer.validated_data.get("organization", user.organization)
        role = serializer.validated_data.get("role", user.role)

        if not self.access.is_global_admin:
            # Only global admins move people between organizations or hand out global roles
            if target_org is None or target_org.pk != self.access.organization_id:
                raise AuthorizationDenied()
            if role is not None and role.organization_id != target_org.pk:
                raise AuthorizationDenied()
            if "role" in serializer.validated_data and role != user.role:
                self.check_role_grant(role, target_org)

        user = serializer.save()
        publish_role_assigned(self.access.identity, user.external_id, user.role_id, user.organization_id)
        return Response(UserSerializer(user).data)

    def check_role_grant(self, role, organization):
        """Role changes need an organization admin, who cannot grant more than they hold."""
        access = self.access
        if not is_organization_admin(access, organization.pk):
            logger.info(f"Role change in {organization.slug} denied to {access.identity}")
            raise AuthorizationDenied()
        if role is not None and not role.permission_set() <= access.permissions:
            logger.info(f"{access.identity} may not grant role {role.pk}")
            raise AuthorizationDenied()

    @action(detail=False, methods=["get"])
    def me(self, request):
        user = (
            User.objects.select_related("role", "organization")
            .filter(external_id=self.access.identity)
            .first()
        )
        if user is None:
            raise ResourceNotFound("User not found in database")
        return Response(UserSerializer(user).data)


class IdentityWebhookView(RateLimitMixin, APIView):
    """Push events from the identity provider."""

    authentication_classes = []
    permission_classes = [permissions.AllowAny]
    rate_limit_scope = "identity-webhook"

    def post(self, request):
        body = request.body
        conf = settings.IDENTITY_PROVIDER
        if conf["WEBHOOK_SECRET"]:
            try:
                verify_signature(
                    conf["WEBHOOK_SECRET"], request.headers, body,
                    tolerance=conf["WEBHOOK_TOLERANCE_SECONDS"],
                )
            except WebhookVerificationError as e:
                logger.warning(f"Rejected identity webhook: {e}")
                return Response(envelope(success=False, error="Invalid signature"), status=status.HTTP_400_BAD_REQUEST)

        try:
            event = json.loads(body or b"{}")
        except ValueError:
            raise ValidationFailed("Invalid JSON payload")
        if not isinstance(event, dict) or not event.get("type"):
            raise ValidationFailed("type: This field is required.")

        data = event.get("data") or {}
        outcome = apply_provider_event(event["type"], data)
        return Response(envelope(data={"type": event["type"], "outcome": outcome}))


class SyncUsersView(ServiceViewMixin, APIView):
    """Pull every provider user into the local identity store."""

    rate_limit_scope = "sync-users"
    rate_limits = {"GET": 30, "POST": 5}
    required_permissions = {"POST": Permission.MANAGE_USERS}

    def get(self, request):
        return Response({
            "message": "Send a POST request to synchronise identities from the identity provider",
            "endpoint": request.path,
            "method": "POST",
        })

    def post(self, request):
        try:
            with ProviderClient() as client:
                summary = sync_identities(client, actor_id=self.access.identity)
        except SyncConfigurationError as e:
            raise ValidationFailed(str(e))
        except ProviderError as e:
            logger.error(f"Identity sync failed: {e}")
            raise InfrastructureFailure("Failed to sync users")
        return Response({"message": "Users synced successfully", "summary": summary})
