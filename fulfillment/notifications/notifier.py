"""Outgoing customer notifications for tracking status changes.

The fulfillment flow only needs something with ``notify(notification)``.
Delivery is either a direct email or a ``shipping.status_changed`` event on
Kafka that the consumer thread turns into an email.
"""
import logging
from abc import ABC, abstractmethod
from typing import Callable, Iterable, List, Optional

from pydantic import BaseModel, Field

from fulfillment.core.config import Settings
from fulfillment.notifications.emails import build_tracking_email, send_email

logger = logging.getLogger(__name__)

STATUS_CHANGED_EVENT = "shipping.status_changed"


class NotificationItem(BaseModel):
    title: str = ""
    qty: int = 0
    unit_price_cents: int = 0


class TrackingNotification(BaseModel):
    order_id: int
    order_number: str = ""
    tracking_number: str
    carrier: str
    status: str
    customer_email: str
    items: List[NotificationItem] = Field(default_factory=list)


def build_notification(order, status: str, items: Iterable = (), default_carrier: str = "USPS",
                       tracking_number: Optional[str] = None) -> TrackingNotification:
    return TrackingNotification(
        order_id=order.id,
        order_number=order.order_number or "",
        tracking_number=tracking_number or order.tracking_number or "",
        carrier=order.carrier or default_carrier,
        status=status,
        customer_email=order.user_email,
        items=[
            NotificationItem(title=it.title_snapshot or "", qty=it.qty, unit_price_cents=it.unit_price_cents)
            for it in items
        ],
    )


class Notifier(ABC):
    @abstractmethod
    def notify(self, notification: TrackingNotification) -> None:
        ...


class EmailNotifier(Notifier):
    def __init__(self, send: Callable[[str, str, str], None] = send_email):
        self._send = send

    def notify(self, notification: TrackingNotification) -> None:
        subject, body = build_tracking_email(notification)
        self._send(notification.customer_email, subject, body)
        logger.info("Tracking email (%s) sent for order %s", notification.status, notification.order_id)


class EventNotifier(Notifier):
    def __init__(self, emit: Optional[Callable[[dict], None]] = None):
        if emit is None:
            from fulfillment.kafka.producer import emit
        self._emit = emit

    def notify(self, notification: TrackingNotification) -> None:
        self._emit({"type": STATUS_CHANGED_EVENT, **notification.model_dump()})


def get_notifier(settings: Settings) -> Notifier:
    if settings.NOTIFIER_BACKEND == "kafka":
        return EventNotifier()
    return EmailNotifier()


def notify_safely(notifier: Notifier, notification: TrackingNotification) -> bool:
    """Best-effort delivery: failures are logged and reported as False."""
    try:
        notifier.notify(notification)
    except Exception:
        logger.exception(
            "Failed to send %s notification for order %s", notification.status, notification.order_id
        )
        return False
    return True
