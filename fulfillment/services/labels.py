"""Buy a shipping label for a stored order and record its tracking state."""
import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from fulfillment.core.errors import OrchestrationError, OrchestrationErrorKind
from fulfillment.db.models import OrderStatus
from fulfillment.db.store import OrderStore
from fulfillment.notifications.notifier import Notifier, build_notification, notify_safely
from fulfillment.services.addresses import Address, normalize_address
from fulfillment.services.parcel import Parcel, estimate_parcel
from fulfillment.services.shippo import Rate, ShippoClient

logger = logging.getLogger(__name__)


class LabelResult(BaseModel):
    tracking_number: str
    label_url: str
    shipment_id: Optional[str] = None
    rate: Rate
    transaction: Dict[str, Any] = Field(default_factory=dict)
    parcel: Parcel
    persisted: bool = True
    notified: bool = False


def create_label_for_order(order_id: int, store: OrderStore, carrier: ShippoClient, notifier: Notifier,
                           ship_from: Address, default_carrier: str = "USPS") -> LabelResult:
    order = store.get_order(order_id)
    if order is None:
        raise OrchestrationError(OrchestrationErrorKind.ORDER_NOT_FOUND, f"Order {order_id} not found")

    items = store.get_items(order_id)
    if not items:
        raise OrchestrationError(OrchestrationErrorKind.NO_ITEMS_FOUND, f"No order items found for order {order_id}")

    products = store.get_products(it.product_id for it in items)
    parcel = estimate_parcel(items, products)
    ship_to = normalize_address(order.shipping_address, email=order.user_email)
    logger.info("Creating label for order %s: %d items, parcel %s", order_id, len(items), parcel.to_carrier())

    purchase = carrier.purchase_label(ship_from, ship_to, parcel)

    result = LabelResult(
        tracking_number=purchase.tracking_number,
        label_url=purchase.label_url,
        shipment_id=purchase.shipment_id,
        rate=purchase.rate,
        transaction=purchase.transaction,
        parcel=parcel,
    )

    # The label is already paid for; a failed write is logged, never rolled back.
    try:
        store.record_label(order_id, purchase.tracking_number, purchase.label_url, purchase.status)
    except SQLAlchemyError:
        logger.exception(
            "Label %s purchased but order %s was not updated", purchase.tracking_number, order_id
        )
        result.persisted = False
        return result

    notification = build_notification(
        order, OrderStatus.IN_TRANSIT.value, items,
        default_carrier=default_carrier, tracking_number=purchase.tracking_number,
    )
    result.notified = notify_safely(notifier, notification)
    logger.info("Order %s labelled with tracking number %s", order_id, purchase.tracking_number)
    return result
