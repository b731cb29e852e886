from .base import EventPayload, EventPublisher, EventPublisherFactory, publish_event

__all__ = [
    "EventPayload",
    "EventPublisher",
    "EventPublisherFactory",
    "publish_event",
]
