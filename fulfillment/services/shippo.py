"""Client for the Shippo shipments/transactions API.

Buying a label is two synchronous calls: create a shipment (which returns the
candidate rates), then purchase one rate as a transaction. The carrier's async
job mode is always disabled so both calls block until the carrier is done.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

from fulfillment.core.config import Settings
from fulfillment.core.errors import CarrierError, CarrierErrorKind, ConfigurationError
from fulfillment.services.addresses import Address
from fulfillment.services.parcel import Parcel

logger = logging.getLogger(__name__)

LABEL_FILE_TYPE = "PDF"
TRANSACTION_SUCCESS = "SUCCESS"


class Rate(BaseModel):
    object_id: str
    amount: Optional[str] = None
    currency: Optional[str] = None
    provider: Optional[str] = None
    servicelevel_name: Optional[str] = None
    estimated_days: Optional[int] = None
    raw: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_carrier(cls, data: dict) -> "Rate":
        servicelevel = data.get("servicelevel") or {}
        amount = data.get("amount")
        return cls(
            object_id=str(data.get("object_id") or ""),
            amount=None if amount is None else str(amount),
            currency=data.get("currency"),
            provider=data.get("provider"),
            servicelevel_name=servicelevel.get("name"),
            estimated_days=data.get("estimated_days"),
            raw=data,
        )


class LabelPurchase(BaseModel):
    tracking_number: str
    label_url: str
    shipment_id: Optional[str] = None
    status: str = TRANSACTION_SUCCESS
    rate: Rate
    transaction: Dict[str, Any] = Field(default_factory=dict)


def select_rate(rates: List[dict]) -> dict:
    # Carrier ordering is kept as-is; no cost or speed policy is applied here.
    return rates[0]


def _body(resp: httpx.Response) -> dict:
    try:
        data = resp.json()
    except ValueError:
        return {"detail": resp.text}
    return data if isinstance(data, dict) else {"detail": data}


class ShippoClient:
    def __init__(self, api_key: str, base_url: str = "https://api.goshippo.com", timeout: float = 30.0,
                 transport: Optional[httpx.BaseTransport] = None):
        if not api_key:
            raise ConfigurationError("Shippo API key not configured")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings, transport: Optional[httpx.BaseTransport] = None) -> "ShippoClient":
        return cls(
            settings.require_carrier_key(),
            base_url=settings.SHIPPO_BASE,
            timeout=settings.CARRIER_TIMEOUT_SECONDS,
            transport=transport,
        )

    def _headers(self) -> dict:
        return {
            "Authorization": f"ShippoToken {self.api_key}",
            "Content-Type": "application/json",
        }

    def _post(self, path: str, payload: dict) -> httpx.Response:
        try:
            with httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=self._transport) as client:
                return client.post(path, json=payload, headers=self._headers())
        except httpx.TimeoutException as exc:
            raise CarrierError(CarrierErrorKind.TIMEOUT, f"Carrier timed out on {path}") from exc
        except httpx.RequestError as exc:
            raise CarrierError(CarrierErrorKind.UNAVAILABLE, f"Carrier unreachable: {exc}") from exc

    def create_shipment(self, address_from: Address, address_to: Address, parcel: Parcel) -> dict:
        payload = {
            "address_from": address_from.to_carrier(),
            "address_to": address_to.to_carrier(),
            "parcels": [parcel.to_carrier()],
            "async": False,
        }
        resp = self._post("/shipments/", payload)
        shipment = _body(resp)
        if resp.status_code >= 400:
            logger.error("Shipment creation failed (%s): %s", resp.status_code, shipment)
            raise CarrierError(CarrierErrorKind.SHIPMENT_REJECTED, "Shipment creation failed", payload=shipment)
        return shipment

    def purchase_rate(self, rate_id: str, label_file_type: str = LABEL_FILE_TYPE) -> dict:
        payload = {"rate": rate_id, "label_file_type": label_file_type, "async": False}
        logger.info("Buying label for rate %s", rate_id)
        resp = self._post("/transactions/", payload)
        transaction = _body(resp)
        if resp.status_code >= 400:
            logger.error("Transaction creation failed (%s): %s", resp.status_code, transaction)
            raise CarrierError(CarrierErrorKind.TRANSACTION_REJECTED, "Transaction creation failed", payload=transaction)
        return transaction

    def purchase_label(self, address_from: Address, address_to: Address, parcel: Parcel) -> LabelPurchase:
        shipment = self.create_shipment(address_from, address_to, parcel)
        rates = shipment.get("rates") or []
        if not rates:
            logger.error("No rates available for shipment %s", shipment.get("object_id"))
            raise CarrierError(CarrierErrorKind.NO_RATES_AVAILABLE, "No rates available for this shipment.")

        rate = Rate.from_carrier(select_rate(rates))
        transaction = self.purchase_rate(rate.object_id)
        status = str(transaction.get("status") or "")
        if status.upper() != TRANSACTION_SUCCESS:
            logger.error("Transaction status %s: %s", status, transaction.get("messages"))
            raise CarrierError(
                CarrierErrorKind.TRANSACTION_FAILED,
                f"Label purchase failed with status {status or 'unknown'}",
                payload=transaction.get("messages") or [],
            )

        return LabelPurchase(
            tracking_number=transaction.get("tracking_number") or "",
            label_url=transaction.get("label_url") or "",
            shipment_id=shipment.get("object_id"),
            status=status,
            rate=rate,
            transaction=transaction,
        )
