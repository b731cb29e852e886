"""
Keep local identities in line with the identity provider.

Identities arrive through push webhooks (one user at a time) or a bulk sync
that walks the provider's user list. Both paths share ``upsert_identity``.
"""
import logging
from typing import Any, Dict, Optional, Tuple

from django.db import DatabaseError, transaction

from .models import User
from .producer import (
    publish_identities_synced,
    publish_identity_created,
    publish_identity_deleted,
    publish_identity_updated,
)
from .roles import get_default_organization, get_default_role

logger = logging.getLogger(__name__)

USER_CREATED = "user.created"
USER_UPDATED = "user.updated"
USER_DELETED = "user.deleted"

PROFILE_FIELDS = ("email", "first_name", "last_name", "display_name", "avatar_url")


class SyncConfigurationError(Exception):
    """Bulk sync needs the default role and organization to exist."""


def primary_email(data: Dict[str, Any]) -> str:
    addresses = data.get("email_addresses") or []
    primary_id = data.get("primary_email_address_id")
    for address in addresses:
        if primary_id and address.get("id") == primary_id:
            return address.get("email_address") or ""
    if addresses:
        return addresses[0].get("email_address") or ""
    return ""


def profile_from_provider(data: Dict[str, Any]) -> Dict[str, str]:
    first_name = (data.get("first_name") or "")[:150]
    last_name = (data.get("last_name") or "")[:150]
    return {
        "email": primary_email(data),
        "first_name": first_name,
        "last_name": last_name,
        "display_name": " ".join(p for p in (first_name, last_name) if p)[:150],
        "avatar_url": (data.get("image_url") or data.get("profile_image_url") or "")[:500],
    }


def upsert_identity(data: Dict[str, Any], source: str = "webhook", role=None,
                    organization=None) -> Tuple[User, bool]:
    """
    Create or update the identity described by a provider user object.

    New identities get ``role`` / ``organization`` when given, otherwise the
    configured defaults. Existing identities only have their profile updated;
    role and organization assignments are left alone.
    """
    external_id = data["id"]
    profile = profile_from_provider(data)

    with transaction.atomic():
        user = User.objects.select_for_update().filter(external_id=external_id).first()
        if user is None:
            user = User(
                external_id=external_id,
                username=external_id,
                role=role or get_default_role(),
                organization=organization or get_default_organization(),
                **profile,
            )
            user.set_unusable_password()
            user.save()
            created, changes = True, profile
        else:
            changes = {field: value for field, value in profile.items() if getattr(user, field) != value}
            for field, value in changes.items():
                setattr(user, field, value)
            if changes:
                user.save(update_fields=[*changes, "updated_at"])
            created = False

    if created:
        logger.info(f"Identity {external_id} created from {source}")
        publish_identity_created(external_id, user.email, source)
    elif changes:
        logger.info(f"Identity {external_id} updated from {source}: {sorted(changes)}")
        publish_identity_updated(external_id, changes, source)
    return user, created


def delete_identity(external_id: str) -> bool:
    deleted, _ = User.objects.filter(external_id=external_id).delete()
    if deleted:
        logger.info(f"Identity {external_id} deleted")
        publish_identity_deleted(external_id)
    return bool(deleted)


def apply_provider_event(event_type: str, data: Dict[str, Any]) -> str:
    """Apply one webhook event and return what happened to the local identity."""
    if event_type in (USER_CREATED, USER_UPDATED):
        if not data.get("id"):
            logger.warning(f"Ignoring {event_type} event without a user id")
            return "ignored"
        if not primary_email(data):
            logger.warning(f"Skipping {event_type} for {data['id']}: no email address")
            return "skipped"
        _, created = upsert_identity(data, source="webhook")
        return "created" if created else "updated"

    if event_type == USER_DELETED:
        if not data.get("id"):
            return "ignored"
        return "deleted" if delete_identity(data["id"]) else "ignored"

    logger.info(f"Unhandled identity provider event type: {event_type}")
    return "ignored"


def sync_identities(client, actor_id: Optional[str] = None) -> Dict[str, int]:
    """Create or update a local identity for every provider user."""
    role = get_default_role()
    organization = get_default_organization()
    if role is None or organization is None:
        raise SyncConfigurationError("Default role or organization not found. Please run setup first.")

    summary = {"total": 0, "created": 0, "updated": 0, "skipped": 0}
    for data in client.list_users():
        summary["total"] += 1
        if not data.get("id") or not primary_email(data):
            summary["skipped"] += 1
            continue
        try:
            _, created = upsert_identity(data, source="sync", role=role, organization=organization)
        except DatabaseError:
            logger.exception(f"Failed to sync identity {data.get('id')}")
            summary["skipped"] += 1
            continue
        summary["created" if created else "updated"] += 1

    logger.info(
        "Identity sync finished: %(total)d total, %(created)d created, %(updated)d updated, %(skipped)d skipped",
        summary,
    )
    publish_identities_synced(actor_id, summary)
    return summary
