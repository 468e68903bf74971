"""Derive the single parcel submitted to the carrier for an order.

Items are assumed to be boxed together: weight adds up, but each dimension is
the largest single product's, never a sum.
"""
import math
from typing import Any, Iterable

from pydantic import BaseModel

DEFAULT_WEIGHT = 16.0  # oz
DEFAULT_LENGTH = 12.0  # in
DEFAULT_WIDTH = 8.0
DEFAULT_HEIGHT = 6.0

DISTANCE_UNIT = "in"
MASS_UNIT = "oz"


class Parcel(BaseModel):
    weight: float = DEFAULT_WEIGHT
    length: float = DEFAULT_LENGTH
    width: float = DEFAULT_WIDTH
    height: float = DEFAULT_HEIGHT

    def to_carrier(self) -> dict:
        # Shippo accepts numeric fields as strings
        return {
            "length": _fmt(self.length),
            "width": _fmt(self.width),
            "height": _fmt(self.height),
            "distance_unit": DISTANCE_UNIT,
            "weight": _fmt(self.weight),
            "mass_unit": MASS_UNIT,
        }


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _number(value: Any) -> float:
    try:
        n = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(n) or math.isinf(n) or n < 0:
        return 0.0
    return n


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def estimate_parcel(items: Iterable[Any], products: Iterable[Any]) -> Parcel:
    """Total over any input: missing products or dimensions fall back to defaults."""
    by_id = {_field(p, "id"): p for p in products}

    weight = length = width = height = 0.0
    for item in items:
        product = by_id.get(_field(item, "product_id"))
        if product is None:
            continue
        qty = _number(_field(item, "qty"))
        weight += _number(_field(product, "weight")) * qty
        length = max(length, _number(_field(product, "length")))
        width = max(width, _number(_field(product, "width")))
        height = max(height, _number(_field(product, "height")))

    return Parcel(
        weight=weight or DEFAULT_WEIGHT,
        length=length or DEFAULT_LENGTH,
        width=width or DEFAULT_WIDTH,
        height=height or DEFAULT_HEIGHT,
    )
