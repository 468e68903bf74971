"""Tests for the USPS tracking lookup client."""

import json

import httpx
import pytest

from fulfillment.core.errors import CarrierError, CarrierErrorKind, ConfigurationError
from fulfillment.core.token_cache import TokenCache
from fulfillment.services.usps import UspsTrackingClient


class FakeUsps:
    def __init__(self):
        self.token_calls = 0
        self.track_requests = []
        self.track_status = 200
        self.track_text = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/oauth2/v3/token":
            self.token_calls += 1
            return httpx.Response(200, json={"access_token": f"tok{self.token_calls}", "expires_in": 3600})
        if request.url.path == "/track/v2/tracking":
            self.track_requests.append(request)
            if self.track_text is not None:
                return httpx.Response(self.track_status, text=self.track_text)
            return httpx.Response(self.track_status, json={"trackingNumber": "9400", "statusCategory": "Delivered"})
        return httpx.Response(404)


@pytest.fixture()
def usps():
    return FakeUsps()


@pytest.fixture()
def client(usps):
    return UspsTrackingClient("key", "secret", transport=httpx.MockTransport(usps))


class TestUspsTracking:
    def test_track_uses_bearer_token(self, client, usps):
        data = client.track("9400")
        assert data["statusCategory"] == "Delivered"
        req = usps.track_requests[0]
        assert req.headers["Authorization"] == "Bearer tok1"
        assert json.loads(req.content) == {"trackingNumber": ["9400"]}

    def test_token_is_cached_between_lookups(self, client, usps):
        client.track("9400")
        client.track("9401")
        assert usps.token_calls == 1

    def test_invalid_json(self, client, usps):
        usps.track_text = "<html>oops</html>"
        with pytest.raises(CarrierError) as exc:
            client.track("9400")
        assert exc.value.kind == CarrierErrorKind.TRACKING_LOOKUP_FAILED
        assert exc.value.payload == "<html>oops</html>"

    def test_unauthorized_drops_cached_token(self, client, usps):
        client.track("9400")
        usps.track_status = 401
        with pytest.raises(CarrierError):
            client.track("9400")
        usps.track_status = 200
        client.track("9400")
        assert usps.token_calls == 2

    def test_injected_cache(self, usps):
        cache = TokenCache(lambda: ("injected", 3600))
        client = UspsTrackingClient("key", "secret", transport=httpx.MockTransport(usps), token_cache=cache)
        client.track("9400")
        assert usps.token_calls == 0
        assert usps.track_requests[0].headers["Authorization"] == "Bearer injected"

    def test_requires_credentials(self):
        with pytest.raises(ConfigurationError):
            UspsTrackingClient("", "")
