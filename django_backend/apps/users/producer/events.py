from enum import Enum
from typing import Dict, Any, Optional

from apps.common.events import publish_event
from apps.common.kafka.topics import IDENTITY_EVENTS_TOPIC


class IdentityEventType(Enum):
    """Identity event types"""
    IDENTITY_CREATED = "identity_created"
    IDENTITY_UPDATED = "identity_updated"
    IDENTITY_DELETED = "identity_deleted"
    IDENTITIES_SYNCED = "identities_synced"
    ROLE_ASSIGNED = "role_assigned"


def publish_identity_event(
    event_type: IdentityEventType,
    actor_id: Optional[str],
    data: Dict[str, Any],
    metadata: Optional[Dict[str, Any]] = None
) -> bool:
    """Publish an identity event keyed by the acting identity."""
    return publish_event(IDENTITY_EVENTS_TOPIC, event_type.value, actor_id, data, metadata=metadata)


def publish_identity_created(external_id: str, email: str, source: str):
    return publish_identity_event(
        IdentityEventType.IDENTITY_CREATED, external_id, {'email': email, 'source': source}
    )


def publish_identity_updated(external_id: str, changes: Dict[str, Any], source: str):
    return publish_identity_event(
        IdentityEventType.IDENTITY_UPDATED, external_id, {'changes': changes, 'source': source}
    )


def publish_identity_deleted(external_id: str):
    return publish_identity_event(IdentityEventType.IDENTITY_DELETED, external_id, {})


def publish_identities_synced(actor_id: Optional[str], summary: Dict[str, int]):
    return publish_identity_event(IdentityEventType.IDENTITIES_SYNCED, actor_id, summary)


def publish_role_assigned(actor_id: str, external_id: str, role_id: Optional[int], organization_id: Optional[int]):
    """Publishes a role or organization assignment made by an administrator"""
    data = {
        'external_id': external_id,
        'role_id': role_id,
        'organization_id': organization_id,
    }
    return publish_identity_event(IdentityEventType.ROLE_ASSIGNED, actor_id, data)
