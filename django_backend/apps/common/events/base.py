"""
Domain event publishing.

Identity, project and task changes are announced on topics after the change
is stored. Delivery is best effort: the document store and the relational
store are the source of truth, and a failed publish never fails the request
that caused it.
"""
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from django.conf import settings
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)

EVENT_SOURCE = "taskflow"

PUBLISHERS = {
    "kafka": "apps.common.events.kafka_publisher.KafkaEventPublisher",
    "memory": "apps.common.events.memory_publisher.MemoryEventPublisher",
}


class EventPayload:
    """One domain event as it goes on the wire."""

    def __init__(self, event_type: str, actor_id: Optional[str], timestamp: datetime = None,
                 data: Dict[str, Any] = None, metadata: Dict[str, Any] = None, event_id: str = None):
        self.event_id = event_id or uuid.uuid4().hex
        self.event_type = event_type
        self.actor_id = actor_id
        self.timestamp = timestamp or datetime.now(timezone.utc)
        self.data = data or {}
        self.metadata = {"source": EVENT_SOURCE, **(metadata or {})}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "actor_id": self.actor_id,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
            "metadata": self.metadata,
        }


class EventPublisher(ABC):
    @abstractmethod
    def publish(self, topic: str, event: EventPayload, key: str = None) -> bool:
        """Send ``event`` to ``topic``; ``key`` selects the partition. True when the broker accepted it."""

    @abstractmethod
    def close(self):
        """Release the broker connection."""


class EventPublisherFactory:
    """Process-wide publisher chosen by ``EVENT_PUBLISHER_TYPE``."""

    _publisher = None
    _lock = threading.Lock()

    @classmethod
    def get_publisher(cls) -> EventPublisher:
        if cls._publisher is None:
            with cls._lock:
                if cls._publisher is None:
                    publisher_type = getattr(settings, "EVENT_PUBLISHER_TYPE", "kafka")
                    if publisher_type not in PUBLISHERS:
                        raise ValueError(f"Unknown event publisher type: {publisher_type}")
                    cls._publisher = import_string(PUBLISHERS[publisher_type])()
                    logger.info("Using %s event publisher", publisher_type)
        return cls._publisher

    @classmethod
    def reset_publisher(cls):
        with cls._lock:
            if cls._publisher is not None:
                cls._publisher.close()
                cls._publisher = None


def publish_event(topic: str, event_type: str, actor_id: Optional[str], data: Dict[str, Any],
                  key: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None) -> bool:
    """Build a payload and hand it to the configured publisher. Never raises."""
    try:
        payload = EventPayload(event_type=event_type, actor_id=actor_id, data=data, metadata=metadata)
        publisher = EventPublisherFactory.get_publisher()
        success = publisher.publish(topic=topic, event=payload, key=key or actor_id)
    except Exception:
        logger.exception("Error publishing %s event to %s", event_type, topic)
        return False

    if not success:
        logger.error("Failed to publish %s event to %s", event_type, topic)
    return success
