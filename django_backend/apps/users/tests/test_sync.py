import base64
import json
import time
from unittest.mock import patch

import httpx
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.test import TestCase, override_settings
from django.urls import reverse
from rest_framework import status

from apps.common.kafka.topics import IDENTITY_EVENTS_TOPIC
from apps.common.tests.helpers import TaskflowAPITestCase, TaskflowTestMixin, make_identity
from apps.users.celery_tasks import sync_identities_task
from apps.users.models import Organization, Role, RoleName
from apps.users.provider import ProviderClient, ProviderError
from apps.users.sync import (
    SyncConfigurationError,
    apply_provider_event,
    primary_email,
    sync_identities,
    upsert_identity,
)
from apps.users.webhooks import WebhookVerificationError, sign, verify_signature

User = get_user_model()

WEBHOOK_SECRET = "whsec_" + base64.b64encode(b"super-secret-signing-key").decode()


def provider_user(external_id, email=None, first_name="Ada", last_name="Lovelace"):
    email = email if email is not None else f"{external_id}@example.com"
    addresses = [{"id": f"idn_{external_id}", "email_address": email}] if email else []
    return {
        "id": external_id,
        "first_name": first_name,
        "last_name": last_name,
        "image_url": "https://img.example.com/a.png",
        "primary_email_address_id": f"idn_{external_id}" if email else None,
        "email_addresses": addresses,
    }


def provider_transport(users, page_size=100, fail=False):
    """Serve ``users`` from GET /users with offset pagination."""
    calls = []

    def handler(request):
        calls.append(request)
        if fail:
            return httpx.Response(503, json={"errors": [{"message": "unavailable"}]})
        offset = int(request.url.params.get("offset", 0))
        limit = int(request.url.params.get("limit", page_size))
        return httpx.Response(200, json=users[offset:offset + limit])

    transport = httpx.MockTransport(handler)
    transport.calls = calls
    return transport


class PrimaryEmailTest(TestCase):
    def test_primary_address_preferred(self):
        data = {
            "primary_email_address_id": "b",
            "email_addresses": [{"id": "a", "email_address": "a@x.io"}, {"id": "b", "email_address": "b@x.io"}],
        }
        self.assertEqual(primary_email(data), "b@x.io")

    def test_first_address_fallback(self):
        self.assertEqual(primary_email({"email_addresses": [{"id": "a", "email_address": "a@x.io"}]}), "a@x.io")

    def test_no_address(self):
        self.assertEqual(primary_email({}), "")


class WebhookSignatureTest(TestCase):
    def setUp(self):
        self.body = b'{"type": "user.created"}'
        self.now = 1_700_000_000

    def headers(self, body=None, timestamp=None):
        timestamp = str(timestamp or self.now)
        return {
            "svix-id": "msg_1",
            "svix-timestamp": timestamp,
            "svix-signature": f"v1,{sign(WEBHOOK_SECRET, 'msg_1', timestamp, body or self.body)}",
        }

    def test_valid_signature(self):
        verify_signature(WEBHOOK_SECRET, self.headers(), self.body, now=self.now)

    def test_tampered_body(self):
        with self.assertRaises(WebhookVerificationError):
            verify_signature(WEBHOOK_SECRET, self.headers(), b'{"type": "user.deleted"}', now=self.now)

    def test_stale_timestamp(self):
        with self.assertRaises(WebhookVerificationError):
            verify_signature(WEBHOOK_SECRET, self.headers(), self.body, tolerance=300, now=self.now + 301)

    def test_missing_headers(self):
        with self.assertRaises(WebhookVerificationError):
            verify_signature(WEBHOOK_SECRET, {}, self.body, now=self.now)

    def test_one_of_several_signatures(self):
        headers = self.headers()
        headers["svix-signature"] = "v1,bogus " + headers["svix-signature"]
        verify_signature(WEBHOOK_SECRET, headers, self.body, now=self.now)


class ApplyProviderEventTest(TaskflowTestMixin, TestCase):
    def test_user_created(self):
        self.assertEqual(apply_provider_event("user.created", provider_user("user_1")), "created")
        user = User.objects.get(external_id="user_1")
        self.assertEqual(user.email, "user_1@example.com")
        self.assertEqual(user.display_name, "Ada Lovelace")
        self.assertEqual(user.role.name, RoleName.MEMBER)
        self.assertEqual(user.organization, self.organization)

    def test_user_updated_keeps_assignments(self):
        apply_provider_event("user.created", provider_user("user_1"))
        viewer = Role.objects.get(name=RoleName.VIEWER, organization__isnull=True)
        User.objects.filter(external_id="user_1").update(role=viewer)

        outcome = apply_provider_event("user.updated", provider_user("user_1", first_name="Grace"))
        self.assertEqual(outcome, "updated")
        user = User.objects.get(external_id="user_1")
        self.assertEqual(user.first_name, "Grace")
        self.assertEqual(user.role, viewer)

        events = self.events.get_events(IDENTITY_EVENTS_TOPIC)
        self.assertEqual([e["event_type"] for e in events], ["identity_created", "identity_updated"])
        self.assertEqual(events[-1]["data"]["changes"]["first_name"], "Grace")

    def test_created_event_for_existing_user_is_an_update(self):
        make_identity("user_1")
        self.assertEqual(apply_provider_event("user.created", provider_user("user_1")), "updated")
        self.assertEqual(User.objects.filter(external_id="user_1").count(), 1)

    def test_user_without_email_is_skipped(self):
        self.assertEqual(apply_provider_event("user.created", provider_user("user_1", email="")), "skipped")
        self.assertFalse(User.objects.filter(external_id="user_1").exists())

    def test_user_deleted(self):
        make_identity("user_1")
        self.assertEqual(apply_provider_event("user.deleted", {"id": "user_1", "deleted": True}), "deleted")
        self.assertFalse(User.objects.filter(external_id="user_1").exists())
        self.assertEqual(apply_provider_event("user.deleted", {"id": "user_1"}), "ignored")

    def test_unknown_event(self):
        self.assertEqual(apply_provider_event("session.created", {"id": "sess_1"}), "ignored")

    def test_missing_id(self):
        self.assertEqual(apply_provider_event("user.created", {}), "ignored")


class IdentityWebhookAPITest(TaskflowAPITestCase):
    def setUp(self):
        super().setUp()
        self.url = reverse("identity-webhook")

    def post_event(self, event, **headers):
        return self.client.generic(
            "POST", self.url, json.dumps(event), content_type="application/json", **headers
        )

    def test_unsigned_webhook_without_secret(self):
        response = self.post_event({"type": "user.created", "data": provider_user("user_1")})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["data"], {"type": "user.created", "outcome": "created"})
        self.assertTrue(User.objects.filter(external_id="user_1").exists())

    def test_missing_type(self):
        response = self.post_event({"data": {}})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"], "type: This field is required.")

    def test_signed_webhook(self):
        body = json.dumps({"type": "user.created", "data": provider_user("user_2")}).encode()
        timestamp = str(int(time.time()))
        conf = {**settings.IDENTITY_PROVIDER, "WEBHOOK_SECRET": WEBHOOK_SECRET}
        with override_settings(IDENTITY_PROVIDER=conf):
            response = self.client.generic(
                "POST", self.url, body, content_type="application/json",
                HTTP_SVIX_ID="msg_1",
                HTTP_SVIX_TIMESTAMP=timestamp,
                HTTP_SVIX_SIGNATURE=f"v1,{sign(WEBHOOK_SECRET, 'msg_1', timestamp, body)}",
            )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(User.objects.filter(external_id="user_2").exists())

    def test_bad_signature(self):
        conf = {**settings.IDENTITY_PROVIDER, "WEBHOOK_SECRET": WEBHOOK_SECRET}
        with override_settings(IDENTITY_PROVIDER=conf):
            response = self.post_event(
                {"type": "user.created", "data": provider_user("user_3")},
                HTTP_SVIX_ID="msg_1",
                HTTP_SVIX_TIMESTAMP=str(int(time.time())),
                HTTP_SVIX_SIGNATURE="v1,AAAA",
            )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"], "Invalid signature")
        self.assertFalse(User.objects.filter(external_id="user_3").exists())


class ProviderClientTest(TestCase):
    def test_pages_through_users(self):
        users = [provider_user(f"user_{i}") for i in range(5)]
        transport = provider_transport(users)
        client = ProviderClient(transport=transport)
        client.page_size = 2
        with client:
            listed = list(client.list_users())
        self.assertEqual([u["id"] for u in listed], [u["id"] for u in users])
        self.assertEqual(len(transport.calls), 3)
        self.assertEqual(transport.calls[0].headers["Authorization"], "Bearer sk_test")

    def test_data_envelope(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"data": [provider_user("u1")]}))
        with ProviderClient(transport=transport) as client:
            self.assertEqual(len(list(client.list_users())), 1)

    def test_http_error(self):
        with ProviderClient(transport=provider_transport([], fail=True)) as client:
            with self.assertRaises(ProviderError):
                list(client.list_users())

    def test_secret_key_required(self):
        with self.assertRaises(ProviderError):
            ProviderClient(secret_key="")


class SyncIdentitiesTest(TaskflowTestMixin, TestCase):
    def client_for(self, users):
        return ProviderClient(transport=provider_transport(users))

    def test_summary(self):
        make_identity("user_existing")
        users = [
            provider_user("user_new"),
            provider_user("user_existing"),
            provider_user("user_noemail", email=""),
        ]
        summary = sync_identities(self.client_for(users), actor_id="user_root")
        self.assertEqual(summary, {"total": 3, "created": 1, "updated": 1, "skipped": 1})
        self.assertTrue(User.objects.filter(external_id="user_new").exists())

        events = self.events.get_events(IDENTITY_EVENTS_TOPIC)
        self.assertEqual(events[-1]["event_type"], "identities_synced")
        self.assertEqual(events[-1]["data"]["created"], 1)

    def test_requires_defaults(self):
        Organization.objects.filter(slug="default").delete()
        with self.assertRaises(SyncConfigurationError):
            sync_identities(self.client_for([]))

    def test_upsert_with_explicit_assignment(self):
        acme = Organization.objects.create(name="Acme", slug="acme")
        viewer = Role.objects.get(name=RoleName.VIEWER, organization__isnull=True)
        user, created = upsert_identity(provider_user("user_1"), role=viewer, organization=acme)
        self.assertTrue(created)
        self.assertEqual((user.role, user.organization), (viewer, acme))

    def test_management_command(self):
        with patch("apps.users.management.commands.sync_identities.ProviderClient",
                   side_effect=lambda: self.client_for([provider_user("user_cmd")])):
            call_command("sync_identities")
        self.assertTrue(User.objects.filter(external_id="user_cmd").exists())

    def test_scheduled_task(self):
        with patch("apps.users.celery_tasks.ProviderClient",
                   side_effect=lambda: self.client_for([provider_user("user_beat")])):
            summary = sync_identities_task.apply().get()
        self.assertEqual(summary["created"], 1)


class SyncUsersAPITest(TaskflowAPITestCase):
    def setUp(self):
        super().setUp()
        make_identity("user_manager", RoleName.MANAGER, organization=self.organization)
        make_identity("user_member", RoleName.MEMBER, organization=self.organization)

    def test_usage(self):
        self.authenticate("user_member")
        response = self.client.get(reverse("sync-users"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["data"]["method"], "POST")

    def test_requires_manage_users(self):
        self.authenticate("user_member")
        response = self.client.post(reverse("sync-users"))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_sync(self):
        transport = provider_transport([provider_user("user_a"), provider_user("user_b")])
        self.authenticate("user_manager")
        with patch("apps.users.api.views.ProviderClient", side_effect=lambda: ProviderClient(transport=transport)):
            response = self.client.post(reverse("sync-users"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["data"]["summary"]["created"], 2)

    def test_provider_failure(self):
        transport = provider_transport([], fail=True)
        self.authenticate("user_manager")
        with patch("apps.users.api.views.ProviderClient", side_effect=lambda: ProviderClient(transport=transport)):
            response = self.client.post(reverse("sync-users"))
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data["error"], "Failed to sync users")
