import logging
from typing import Optional, Tuple

import httpx

from fulfillment.core.config import Settings
from fulfillment.core.errors import CarrierError, CarrierErrorKind, ConfigurationError
from fulfillment.core.token_cache import TokenCache

logger = logging.getLogger(__name__)


class UspsTrackingClient:
    """Live tracking lookups against the USPS v3 API (OAuth client credentials)."""

    def __init__(self, consumer_key: str, consumer_secret: str, base_url: str = "https://apis-tem.usps.com",
                 timeout: float = 10.0, transport: Optional[httpx.BaseTransport] = None,
                 token_cache: Optional[TokenCache] = None):
        if not consumer_key or not consumer_secret:
            raise ConfigurationError("USPS consumer key/secret not configured")
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self.tokens = token_cache or TokenCache(self._fetch_token)

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "UspsTrackingClient":
        return cls(settings.USPS_CONSUMER_KEY, settings.USPS_CONSUMER_SECRET, base_url=settings.USPS_BASE, **kwargs)

    def _client(self) -> httpx.Client:
        return httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=self._transport)

    def _fetch_token(self) -> Tuple[str, float]:
        form = {
            "grant_type": "client_credentials",
            "client_id": self.consumer_key,
            "client_secret": self.consumer_secret,
        }
        try:
            with self._client() as client:
                resp = client.post("/oauth2/v3/token", data=form)
        except httpx.TimeoutException as exc:
            raise CarrierError(CarrierErrorKind.TIMEOUT, "USPS token request timed out") from exc
        except httpx.RequestError as exc:
            raise CarrierError(CarrierErrorKind.UNAVAILABLE, f"USPS unreachable: {exc}") from exc
        if resp.status_code >= 400:
            raise CarrierError(CarrierErrorKind.TRACKING_LOOKUP_FAILED, "Failed to fetch USPS OAuth token",
                               payload=resp.text)
        data = resp.json()
        return data["access_token"], float(data.get("expires_in", 0))

    def track(self, tracking_number: str) -> dict:
        token = self.tokens.get()
        try:
            with self._client() as client:
                resp = client.post(
                    "/track/v2/tracking",
                    json={"trackingNumber": [tracking_number]},
                    headers={"Authorization": f"Bearer {token}"},
                )
        except httpx.TimeoutException as exc:
            raise CarrierError(CarrierErrorKind.TIMEOUT, "USPS tracking request timed out") from exc
        except httpx.RequestError as exc:
            raise CarrierError(CarrierErrorKind.UNAVAILABLE, f"USPS unreachable: {exc}") from exc

        logger.debug("USPS raw response: %s", resp.text)
        try:
            data = resp.json()
        except ValueError:
            raise CarrierError(CarrierErrorKind.TRACKING_LOOKUP_FAILED, "USPS API did not return valid JSON",
                               payload=resp.text)
        if resp.status_code >= 400:
            if resp.status_code == 401:
                self.tokens.invalidate()
            raise CarrierError(CarrierErrorKind.TRACKING_LOOKUP_FAILED, "USPS tracking lookup failed", payload=data)
        return data
