"""
Shared Kafka producer for domain events.

Event values are JSON objects and keys are the UTF-8 encoded identity or
project id, so every event about one project lands in the same partition.
"""
import json
import logging
import threading

from django.conf import settings
from kafka import KafkaProducer
from kafka.errors import KafkaError

logger = logging.getLogger(__name__)


def encode_value(value):
    return json.dumps(value, default=str).encode("utf-8")


def encode_key(key):
    return str(key).encode("utf-8") if key else None


class KafkaConnection:
    _producer = None
    _lock = threading.Lock()

    @classmethod
    def producer_options(cls):
        return {
            "bootstrap_servers": settings.KAFKA_BOOTSTRAP_SERVERS.split(","),
            "client_id": settings.KAFKA_CLIENT_ID,
            "value_serializer": encode_value,
            "key_serializer": encode_key,
            "acks": "all",
            "retries": 3,
            "retry_backoff_ms": 300,
            "request_timeout_ms": settings.KAFKA_REQUEST_TIMEOUT_MS,
        }

    @classmethod
    def get_producer(cls):
        """The process-wide producer, or None when Kafka is disabled or unreachable."""
        if not settings.KAFKA_ENABLED:
            return None
        with cls._lock:
            if cls._producer is None:
                try:
                    cls._producer = KafkaProducer(**cls.producer_options())
                except KafkaError as e:
                    logger.error(f"Kafka producer unavailable at {settings.KAFKA_BOOTSTRAP_SERVERS}: {e}")
                    return None
                logger.info("Kafka producer connected to %s", settings.KAFKA_BOOTSTRAP_SERVERS)
        return cls._producer

    @classmethod
    def close_producer(cls):
        with cls._lock:
            if cls._producer is not None:
                cls._producer.close()
                cls._producer = None
