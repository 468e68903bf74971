from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from fulfillment.core.config import settings
from fulfillment.core.errors import CarrierError, CarrierErrorKind, ConfigurationError, OrchestrationError
from fulfillment.db.session import SessionLocal
from fulfillment.db.store import OrderStore
from fulfillment.notifications.notifier import Notifier, get_notifier as build_notifier
from fulfillment.services.shippo import ShippoClient
from fulfillment.services.usps import UspsTrackingClient

CARRIER_STATUS = {
    CarrierErrorKind.TIMEOUT: 504,
    CarrierErrorKind.UNAVAILABLE: 503,
    CarrierErrorKind.TRACKING_LOOKUP_FAILED: 502,
}

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def get_store(db: Session = Depends(get_db)) -> OrderStore:
    return OrderStore(db)

def get_carrier() -> ShippoClient:
    try:
        return ShippoClient.from_settings(settings)
    except ConfigurationError as e:
        raise HTTPException(status_code=500, detail=str(e))

def get_notifier() -> Notifier:
    return build_notifier(settings)

def get_usps_client(request: Request) -> UspsTrackingClient:
    # One client (and token cache) per app instance
    client = getattr(request.app.state, "usps_client", None)
    if client is None:
        try:
            client = UspsTrackingClient.from_settings(settings)
        except ConfigurationError as e:
            raise HTTPException(status_code=500, detail=str(e))
        request.app.state.usps_client = client
    return client

def admin_or_internal(
    x_internal_key: Optional[str] = Header(default=None, alias="X-Internal-Key"),
    auth: Optional[str] = Header(default=None, alias="Authorization"),
):
    # 1) allow trusted internal calls
    if x_internal_key and x_internal_key == (settings.SVC_INTERNAL_KEY or ""):
        return True

    # 2) otherwise require admin JWT
    if not auth or not auth.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Unauthorized")

    token = auth.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid token")

    if payload.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin required")

    return True

def carrier_http_error(e: CarrierError) -> HTTPException:
    detail = {"error": e.kind.value, "message": e.message}
    if e.payload is not None:
        detail["carrier"] = e.payload
    return HTTPException(status_code=CARRIER_STATUS.get(e.kind, 400), detail=detail)

def orchestration_http_error(e: OrchestrationError) -> HTTPException:
    return HTTPException(status_code=404, detail={"error": e.kind.value, "message": e.message})
