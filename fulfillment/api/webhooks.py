import logging

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from fulfillment.api.deps import get_notifier, get_store
from fulfillment.core.config import settings
from fulfillment.core.errors import WebhookError, WebhookErrorKind
from fulfillment.db.store import OrderStore
from fulfillment.notifications.notifier import Notifier
from fulfillment.services.tracking import handle_tracking_event

logger = logging.getLogger(__name__)

router = APIRouter()

WEBHOOK_STATUS = {
    WebhookErrorKind.MISSING_TRACKING_NUMBER: 400,
    WebhookErrorKind.ORDER_NOT_FOUND: 404,
}

@router.post("/shipping/v1/webhooks/shippo")
def shippo_webhook(body: dict = Body(...), store: OrderStore = Depends(get_store),
                   notifier: Notifier = Depends(get_notifier)):
    try:
        ack = handle_tracking_event(body, store, notifier, default_carrier=settings.DEFAULT_CARRIER)
    except WebhookError as e:
        raise HTTPException(status_code=WEBHOOK_STATUS[e.kind], detail=e.message)
    except ValidationError as e:
        logger.warning("Malformed tracking webhook payload: %s", e)
        raise HTTPException(status_code=400, detail="Malformed tracking payload")
    except SQLAlchemyError:
        # non-2xx makes the carrier redeliver
        logger.exception("Failed to apply tracking webhook")
        raise HTTPException(status_code=500, detail="Failed to update order status")
    if ack is None:
        return {"received": True}
    return ack.model_dump()
