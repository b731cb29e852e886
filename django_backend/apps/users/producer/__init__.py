from .events import (
    IdentityEventType,
    publish_identity_event,
    publish_identity_created,
    publish_identity_updated,
    publish_identity_deleted,
    publish_identities_synced,
    publish_role_assigned,
)

__all__ = [
    "IdentityEventType",
    "publish_identity_event",
    "publish_identity_created",
    "publish_identity_updated",
    "publish_identity_deleted",
    "publish_identities_synced",
    "publish_role_assigned",
]
