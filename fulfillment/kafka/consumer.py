import json, logging, threading
from kafka import KafkaConsumer
from pydantic import ValidationError
from fulfillment.core.config import settings
from fulfillment.notifications.notifier import (
    STATUS_CHANGED_EVENT, EmailNotifier, Notifier, TrackingNotification, notify_safely,
)

logger = logging.getLogger(__name__)

_stop = threading.Event()
_thread = None

def handle_event(ev: dict, notifier: Notifier) -> bool:
    """Deliver a shipping.status_changed event; anything else is ignored."""
    if ev.get("type") != STATUS_CHANGED_EVENT:
        return False
    try:
        notification = TrackingNotification.model_validate({k: v for k, v in ev.items() if k != "type"})
    except ValidationError:
        logger.warning("Dropping malformed %s event: %s", STATUS_CHANGED_EVENT, ev)
        return False
    return notify_safely(notifier, notification)

def _run():
    consumer = KafkaConsumer(
        settings.TOPIC_SHIPPING_EVENTS,
        bootstrap_servers=[settings.KAFKA_BOOTSTRAP],
        group_id="fulfillment-notifications",
        value_deserializer=lambda v: json.loads(v.decode("utf-8")),
        enable_auto_commit=True,
        auto_offset_reset="earliest",
    )
    notifier = EmailNotifier()
    try:
        for msg in consumer:
            if _stop.is_set():
                break
            handle_event(msg.value, notifier)
    finally:
        consumer.close()

def start():
    global _thread
    if _thread and _thread.is_alive():
        return
    _stop.clear()
    _thread = threading.Thread(target=_run, daemon=True)
    _thread.start()

def stop():
    _stop.set()
