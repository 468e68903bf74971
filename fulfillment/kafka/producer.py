import json, logging
from typing import Optional
from kafka import KafkaProducer
from fulfillment.core.config import settings

logger = logging.getLogger(__name__)

_producer: Optional[KafkaProducer] = None

def _get_producer() -> KafkaProducer:
    global _producer
    if _producer is None:
        _producer = KafkaProducer(
            bootstrap_servers=[settings.KAFKA_BOOTSTRAP],
            value_serializer=lambda v: json.dumps(v, default=str).encode("utf-8"),
            key_serializer=lambda v: (v.encode("utf-8") if isinstance(v, str) else v),
            linger_ms=10,
            retries=5,
        )
    return _producer

def emit(event: dict, topic: Optional[str] = None):
    """Publish a fulfillment event keyed by order id, so one order's events stay ordered.

    Broker errors are raised to the caller (the notifier logs them).
    """
    p = _get_producer()
    future = p.send(topic or settings.TOPIC_SHIPPING_EVENTS, key=str(event.get("order_id", "")), value=event)
    p.flush(5)
    metadata = future.get(timeout=5)
    logger.debug("Emitted %s to %s[%s]", event.get("type"), metadata.topic, metadata.partition)

def close():
    global _producer
    if _producer is not None:
        _producer.close(timeout=5)
        _producer = None
