import logging
from typing import Dict, List

from .base import EventPayload, EventPublisher

logger = logging.getLogger(__name__)


class MemoryEventPublisher(EventPublisher):
    """Keeps published events per topic, in order. Used by tests and local runs without a broker."""

    def __init__(self):
        self.events: Dict[str, List[Dict]] = {}

    def publish(self, topic: str, event: EventPayload, key: str = None) -> bool:
        record = event.to_dict()
        record["key"] = key
        self.events.setdefault(topic, []).append(record)
        logger.debug(f"Recorded {event.event_type} on {topic}")
        return True

    def get_events(self, topic: str, event_type: str = None) -> List[Dict]:
        events = self.events.get(topic, [])
        if event_type is not None:
            events = [e for e in events if e["event_type"] == event_type]
        return events

    def clear_events(self, topic: str = None):
        if topic:
            self.events.pop(topic, None)
        else:
            self.events.clear()

    def close(self):
        self.clear_events()
