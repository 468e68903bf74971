import json
from typing import Any, Optional, Union

from pydantic import BaseModel

from fulfillment.core.config import Settings

# Stored order addresses were written by several checkout versions.
STREET_KEYS = ("street1", "address1", "line1")
STREET2_KEYS = ("street2", "address2", "line2")
POSTAL_KEYS = ("zip", "postal_code")
NAME_KEYS = ("name", "full_name")


class Address(BaseModel):
    name: str = ""
    street1: str = ""
    street2: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    country: str = "US"
    email: str = ""
    phone: str = ""

    def to_carrier(self) -> dict:
        return self.model_dump()


def _first(raw: dict, keys) -> Optional[Any]:
    for key in keys:
        if raw.get(key):
            return raw[key]
    return None


def normalize_address(raw: Union[dict, str, None], email: str = "") -> Address:
    """Fold the known spellings of a stored shipping address into one Address."""
    if isinstance(raw, str):
        raw = json.loads(raw) if raw.strip() else {}
    raw = raw or {}
    return Address(
        name=str(_first(raw, NAME_KEYS) or "Customer"),
        street1=str(_first(raw, STREET_KEYS) or ""),
        street2=str(_first(raw, STREET2_KEYS) or ""),
        city=str(raw.get("city") or ""),
        state=str(raw.get("state") or ""),
        zip=str(_first(raw, POSTAL_KEYS) or ""),
        country=str(raw.get("country") or "US"),
        email=email or str(raw.get("email") or ""),
        phone=str(raw.get("phone") or ""),
    )


def ship_from_address(settings: Settings) -> Address:
    return Address(
        name=settings.SHIP_FROM_NAME,
        street1=settings.SHIP_FROM_STREET1,
        city=settings.SHIP_FROM_CITY,
        state=settings.SHIP_FROM_STATE,
        zip=str(settings.SHIP_FROM_ZIP or ""),
        country=settings.SHIP_FROM_COUNTRY or "US",
        email=settings.SHIP_FROM_EMAIL,
        phone=settings.SHIP_FROM_PHONE,
    )
