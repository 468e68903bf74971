import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, EmailStr, Field

from fulfillment.api.deps import (
    admin_or_internal, carrier_http_error, get_carrier, get_notifier, get_store, get_usps_client,
    orchestration_http_error,
)
from fulfillment.core.config import settings
from fulfillment.core.errors import CarrierError, OrchestrationError
from fulfillment.db.models import OrderStatus
from fulfillment.db.store import OrderStore
from fulfillment.notifications.notifier import Notifier, build_notification
from fulfillment.services.addresses import Address, ship_from_address
from fulfillment.services.labels import create_label_for_order
from fulfillment.services.parcel import Parcel
from fulfillment.services.shippo import ShippoClient
from fulfillment.services.tracking import update_tracking
from fulfillment.services.usps import UspsTrackingClient

logger = logging.getLogger(__name__)

router = APIRouter()

class LabelOut(BaseModel):
    tracking_number: str
    label_url: str
    shipment_id: Optional[str] = None
    rate: Dict[str, Any]
    transaction: Dict[str, Any] = {}

class CreateLabel(BaseModel):
    from_address: Address
    to_address: Address
    parcel: Parcel

class OrderTrackingOut(BaseModel):
    id: int
    order_number: str = ""
    user_email: str
    status: str
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    label_url: Optional[str] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    total_cents: int
    created_at: Optional[datetime] = None

class TrackingUpdate(BaseModel):
    tracking_number: str = Field(min_length=1)
    carrier: str = "USPS"
    status: OrderStatus = OrderStatus.SHIPPED

class TrackingLookup(BaseModel):
    tracking_number: str = Field(min_length=1)

class TrackingEmail(BaseModel):
    order_id: int
    tracking_number: str = Field(min_length=1)
    carrier: str = "USPS"
    status: str = OrderStatus.IN_TRANSIT.value
    customer_email: EmailStr

def _tracking_out(order) -> OrderTrackingOut:
    return OrderTrackingOut(
        id=order.id,
        order_number=order.order_number or "",
        user_email=order.user_email,
        status=order.status,
        tracking_number=order.tracking_number,
        carrier=order.carrier,
        label_url=order.label_url,
        shipped_at=order.shipped_at,
        delivered_at=order.delivered_at,
        total_cents=order.total_cents,
        created_at=order.created_at,
    )

@router.post("/shipping/v1/orders/{order_id}/label", response_model=LabelOut)
def create_order_label(order_id: int, _=Depends(admin_or_internal),
                       store: OrderStore = Depends(get_store),
                       carrier: ShippoClient = Depends(get_carrier),
                       notifier: Notifier = Depends(get_notifier)):
    try:
        result = create_label_for_order(
            order_id, store, carrier, notifier, ship_from_address(settings),
            default_carrier=settings.DEFAULT_CARRIER,
        )
    except OrchestrationError as e:
        raise orchestration_http_error(e)
    except CarrierError as e:
        raise carrier_http_error(e)
    return LabelOut(
        tracking_number=result.tracking_number,
        label_url=result.label_url,
        shipment_id=result.shipment_id,
        rate=result.rate.raw,
        transaction=result.transaction,
    )

@router.post("/shipping/v1/labels", response_model=LabelOut)
def create_label(payload: CreateLabel, _=Depends(admin_or_internal),
                 carrier: ShippoClient = Depends(get_carrier)):
    try:
        purchase = carrier.purchase_label(payload.from_address, payload.to_address, payload.parcel)
    except CarrierError as e:
        raise carrier_http_error(e)
    return LabelOut(
        tracking_number=purchase.tracking_number,
        label_url=purchase.label_url,
        shipment_id=purchase.shipment_id,
        rate=purchase.rate.raw,
        transaction=purchase.transaction,
    )

@router.get("/shipping/v1/orders", response_model=List[OrderTrackingOut])
def list_orders(limit: int = 100, store: OrderStore = Depends(get_store), _=Depends(admin_or_internal)):
    return [_tracking_out(o) for o in store.list_tracked_orders(limit=limit)]

@router.put("/shipping/v1/orders/{order_id}/tracking", response_model=OrderTrackingOut)
def put_tracking(order_id: int, payload: TrackingUpdate, store: OrderStore = Depends(get_store),
                 notifier: Notifier = Depends(get_notifier), _=Depends(admin_or_internal)):
    try:
        order, _notified = update_tracking(
            order_id, payload.tracking_number.strip(), payload.carrier, payload.status, store, notifier
        )
    except OrchestrationError as e:
        raise orchestration_http_error(e)
    return _tracking_out(order)

@router.post("/shipping/v1/track")
def track(payload: TrackingLookup, usps: UspsTrackingClient = Depends(get_usps_client)):
    try:
        data = usps.track(payload.tracking_number)
    except CarrierError as e:
        raise carrier_http_error(e)
    return {"data": data}

@router.post("/notifications/v1/tracking-email")
def tracking_email(payload: TrackingEmail, _=Depends(admin_or_internal),
                   store: OrderStore = Depends(get_store),
                   notifier: Notifier = Depends(get_notifier)):
    order = store.get_order(payload.order_id)
    if not order:
        raise HTTPException(404, "Order not found")
    notification = build_notification(
        order, payload.status, store.get_items(order.id), tracking_number=payload.tracking_number,
    )
    notification.carrier = payload.carrier
    notification.customer_email = payload.customer_email
    try:
        notifier.notify(notification)
    except Exception:
        logger.exception("Error sending tracking email for order %s", payload.order_id)
        raise HTTPException(500, "Error sending tracking email")
    return {"success": True}
