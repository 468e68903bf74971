"""Error taxonomy for the fulfillment core.

Each error carries a ``kind`` so callers (route handlers, the Kafka consumer)
can branch on the failure without parsing messages, and an optional ``payload``
holding whatever the carrier sent back.
"""
from enum import Enum
from typing import Any, Optional


class CarrierErrorKind(str, Enum):
    SHIPMENT_REJECTED = "shipment_rejected"
    NO_RATES_AVAILABLE = "no_rates_available"
    TRANSACTION_REJECTED = "transaction_rejected"
    TRANSACTION_FAILED = "transaction_failed"
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"
    TRACKING_LOOKUP_FAILED = "tracking_lookup_failed"


class OrchestrationErrorKind(str, Enum):
    ORDER_NOT_FOUND = "order_not_found"
    NO_ITEMS_FOUND = "no_items_found"


class WebhookErrorKind(str, Enum):
    MISSING_TRACKING_NUMBER = "missing_tracking_number"
    ORDER_NOT_FOUND = "order_not_found"


class FulfillmentError(Exception):
    def __init__(self, kind: Enum, message: str = "", payload: Optional[Any] = None):
        self.kind = kind
        self.message = message or kind.value.replace("_", " ")
        self.payload = payload
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r})"


class CarrierError(FulfillmentError):
    kind: CarrierErrorKind


class OrchestrationError(FulfillmentError):
    kind: OrchestrationErrorKind


class WebhookError(FulfillmentError):
    kind: WebhookErrorKind


class ConfigurationError(RuntimeError):
    """A required setting (e.g. the carrier API key) is missing."""
