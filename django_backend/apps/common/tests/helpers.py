from django.contrib.auth import get_user_model
from django.core.cache import cache
from rest_framework.test import APITestCase

from apps.common import mongo
from apps.common.auth import ProviderPrincipal
from apps.common.events import EventPublisherFactory
from apps.common.ratelimit import reset_rate_limiter
from apps.users.models import Organization, Role, RoleName
from apps.users.roles import create_default_roles

User = get_user_model()


def make_identity(external_id, role_name=RoleName.MEMBER, organization=None, role_organization=None):
    """Local identity with the named role (global unless ``role_organization`` is given)."""
    role = None
    if role_name is not None:
        role = Role.objects.get(name=role_name, organization=role_organization)
    return User.objects.create(
        username=external_id,
        external_id=external_id,
        email=f"{external_id}@example.com",
        role=role,
        organization=organization,
    )


class TaskflowTestMixin:
    """Fresh document store, cache, rate limiter and event publisher for every test."""

    def setUp(self):
        super().setUp()
        mongo.drop_database()
        cache.clear()
        reset_rate_limiter()
        EventPublisherFactory.reset_publisher()
        create_default_roles()
        self.organization = Organization.objects.create(name="Default Organization", slug="default")

    @property
    def events(self):
        return EventPublisherFactory.get_publisher()


class TaskflowAPITestCase(TaskflowTestMixin, APITestCase):
    def authenticate(self, external_id):
        """Act as the provider identity ``external_id`` for subsequent requests."""
        self.client.force_authenticate(user=ProviderPrincipal(external_id))

    def assertEnvelope(self, response, success=True):
        self.assertEqual(response.data["success"], success)
        self.assertIn("timestamp", response.data)
        if success:
            self.assertIsNone(response.data["error"])
        else:
            self.assertIsNone(response.data["data"])
            self.assertTrue(response.data["error"])
