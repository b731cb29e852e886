import logging

from kafka.errors import KafkaError

from apps.common.kafka.config import KafkaConnection

from .base import EventPayload, EventPublisher

logger = logging.getLogger(__name__)


class KafkaEventPublisher(EventPublisher):
    """Sends each event to its topic and waits for the broker acknowledgement."""

    def __init__(self):
        self.producer = KafkaConnection.get_producer()

    def publish(self, topic: str, event: EventPayload, key: str = None) -> bool:
        if self.producer is None:
            logger.warning(f"Kafka producer unavailable, dropping {event.event_type} event for {topic}")
            return False

        try:
            self.producer.send(topic, value=event.to_dict(), key=key).get(timeout=10)
        except KafkaError as e:
            logger.error(f"Failed to publish {event.event_type} to {topic}: {e}")
            return False

        logger.debug(f"Published {event.event_type} to {topic}")
        return True

    def close(self):
        KafkaConnection.close_producer()
        self.producer = None
