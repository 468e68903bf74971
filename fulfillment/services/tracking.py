"""Carrier tracking updates: the Shippo ``track_updated`` webhook and manual
updates made from the admin tracking screen.

Carrier status vocabulary is mapped onto the order's canonical status and a
notification type. The latest event wins: an out-of-order event can move an
order backwards, which is logged but still applied.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from fulfillment.core.errors import OrchestrationError, OrchestrationErrorKind, WebhookError, WebhookErrorKind
from fulfillment.db.models import OrderStatus
from fulfillment.db.store import OrderStore
from fulfillment.notifications.notifier import Notifier, build_notification, notify_safely

logger = logging.getLogger(__name__)

TRACK_UPDATED = "track_updated"

# carrier status -> (canonical status, notification type)
STATUS_MAP: Dict[str, Tuple[OrderStatus, str]] = {
    "DELIVERED": (OrderStatus.DELIVERED, "delivered"),
    "IN_TRANSIT": (OrderStatus.IN_TRANSIT, "shipped"),
    "SHIPPED": (OrderStatus.SHIPPED, "shipped"),
    "OUT_FOR_DELIVERY": (OrderStatus.OUT_FOR_DELIVERY, "out_for_delivery"),
    "PICKUP_AVAILABLE": (OrderStatus.OUT_FOR_DELIVERY, "out_for_delivery"),
}
FALLBACK = (OrderStatus.SHIPPED, "shipped")

PROGRESSION = [
    OrderStatus.PENDING,
    OrderStatus.IN_TRANSIT,
    OrderStatus.SHIPPED,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
]


def _text(value: Any) -> Optional[str]:
    # carriers occasionally send numeric tracking numbers
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class TrackingHistoryEntry(BaseModel):
    status: Optional[str] = None
    status_details: Optional[str] = None
    status_date: Optional[str] = None
    location: Optional[Any] = None


class TrackingEvent(BaseModel):
    event: Optional[str] = None
    tracking_number: Optional[str] = None
    status: Optional[str] = None
    history: List[TrackingHistoryEntry] = Field(default_factory=list)

    @classmethod
    def from_payload(cls, body: Dict[str, Any]) -> "TrackingEvent":
        data = body.get("data") or {}
        if not isinstance(data, dict):
            data = {}
        tracking_status = data.get("tracking_status") or {}
        if not isinstance(tracking_status, dict):
            tracking_status = {}
        history = tracking_status.get("tracking_history") or []
        return cls(
            event=_text(body.get("event")),
            tracking_number=_text(data.get("tracking_number")),
            status=_text(tracking_status.get("status")),
            history=[h for h in history if isinstance(h, dict)] if isinstance(history, list) else [],
        )


class WebhookAck(BaseModel):
    success: bool = True
    order_id: Optional[int] = None
    status: Optional[str] = None
    notified: bool = False


def map_carrier_status(carrier_status: Optional[str]) -> Tuple[OrderStatus, str]:
    return STATUS_MAP.get((carrier_status or "").strip().upper(), FALLBACK)


def _rank(status: Optional[str]) -> int:
    try:
        return PROGRESSION.index(OrderStatus(status))
    except ValueError:
        return -1


def _timestamps(new_status: OrderStatus, previous: Optional[str], order) -> Dict[str, datetime]:
    now = datetime.utcnow()
    stamps = {}
    if new_status == OrderStatus.SHIPPED and previous != OrderStatus.SHIPPED.value and order.shipped_at is None:
        stamps["shipped_at"] = now
    if new_status == OrderStatus.DELIVERED and previous != OrderStatus.DELIVERED.value and order.delivered_at is None:
        stamps["delivered_at"] = now
    return stamps


def handle_tracking_event(body: Dict[str, Any], store: OrderStore, notifier: Notifier,
                          default_carrier: str = "USPS") -> Optional[WebhookAck]:
    """Apply one carrier webhook delivery.

    Returns None for event kinds other than ``track_updated`` (acknowledged
    without side effects). Database errors propagate so the carrier retries.
    """
    event = TrackingEvent.from_payload(body)
    if event.event != TRACK_UPDATED:
        logger.info("Ignoring non-tracking webhook event %r", event.event)
        return None

    if not event.tracking_number:
        raise WebhookError(WebhookErrorKind.MISSING_TRACKING_NUMBER, "No tracking number provided")

    new_status, notification_type = map_carrier_status(event.status)
    logger.info(
        "Tracking update %s: carrier status %s -> %s (%d history entries)",
        event.tracking_number, event.status, new_status.value, len(event.history),
    )

    order = store.find_by_tracking_number(event.tracking_number)
    if order is None:
        # Unknown numbers happen: other accounts, or the label write has not landed yet.
        logger.info("No order found with tracking number %s", event.tracking_number)
        raise WebhookError(WebhookErrorKind.ORDER_NOT_FOUND, "Order not found")

    order_id = order.id
    previous = order.status
    if _rank(new_status.value) < _rank(previous):
        logger.warning(
            "Order %s moving backwards from %s to %s on tracking update", order_id, previous, new_status.value
        )

    store.update_status(event.tracking_number, new_status.value, **_timestamps(new_status, previous, order))

    if previous == new_status.value:
        logger.info("Order %s already %s; repeated tracking update", order_id, previous)

    ack = WebhookAck(order_id=order_id, status=new_status.value)
    notification = build_notification(
        order, notification_type, store.get_items(order_id), default_carrier=default_carrier
    )
    ack.notified = notify_safely(notifier, notification)
    return ack


def update_tracking(order_id: int, tracking_number: str, carrier: str, status: OrderStatus,
                    store: OrderStore, notifier: Notifier) -> Tuple[Any, bool]:
    """Manual tracking entry from the admin screen; always notifies the customer."""
    order = store.get_order(order_id)
    if order is None:
        raise OrchestrationError(OrchestrationErrorKind.ORDER_NOT_FOUND, f"Order {order_id} not found")

    stamps = _timestamps(status, None, order)
    store.update_tracking(order_id, tracking_number, carrier, status.value, **stamps)
    order = store.get_order(order_id)

    notification = build_notification(order, status.value, store.get_items(order_id), default_carrier=carrier)
    return order, notify_safely(notifier, notification)
