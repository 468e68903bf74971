"""Tests for the Shippo shipment/transaction client."""

import httpx
import pytest

from fulfillment.core.config import Settings
from fulfillment.core.errors import CarrierError, CarrierErrorKind, ConfigurationError
from fulfillment.services.addresses import Address
from fulfillment.services.parcel import Parcel
from fulfillment.services.shippo import ShippoClient, select_rate

FROM = Address(name="Shop", street1="1 Dock", city="Austin", state="TX", zip="78701")
TO = Address(name="Jane", street1="500 Main St", city="Portland", state="OR", zip="97201")


class TestPurchaseLabel:
    def test_success_returns_tracking_and_first_rate(self, carrier, shippo):
        result = carrier.purchase_label(FROM, TO, Parcel())
        assert result.tracking_number == "9400100000000000000000"
        assert result.label_url == "https://labels.example.com/label.pdf"
        assert result.shipment_id == "shp_123"
        assert result.rate.object_id == "rate_1"
        assert result.rate.servicelevel_name == "Priority Mail"
        assert result.rate.estimated_days == 2
        assert shippo.paths() == ["/shipments/", "/transactions/"]

    def test_shipment_request_body(self, carrier, shippo):
        carrier.purchase_label(FROM, TO, Parcel(weight=20, length=12, width=6, height=4))
        body = shippo.body(0)
        assert body["async"] is False
        assert body["address_from"]["street1"] == "1 Dock"
        assert body["address_to"]["zip"] == "97201"
        assert body["parcels"] == [
            {"length": "12", "width": "6", "height": "4", "distance_unit": "in", "weight": "20", "mass_unit": "oz"}
        ]

    def test_transaction_request_body(self, carrier, shippo):
        carrier.purchase_label(FROM, TO, Parcel())
        assert shippo.body(1) == {"rate": "rate_1", "label_file_type": "PDF", "async": False}

    def test_authorization_header(self, carrier, shippo):
        carrier.purchase_label(FROM, TO, Parcel())
        assert all(r.headers["Authorization"] == "ShippoToken shippo_test_key" for r in shippo.requests)

    def test_shipment_rejected(self, carrier, shippo):
        shippo.shipment_status = 400
        shippo.shipment = {"address_to": ["Invalid zip"]}
        with pytest.raises(CarrierError) as exc:
            carrier.purchase_label(FROM, TO, Parcel())
        assert exc.value.kind == CarrierErrorKind.SHIPMENT_REJECTED
        assert exc.value.payload == {"address_to": ["Invalid zip"]}
        assert shippo.paths() == ["/shipments/"]

    def test_no_rates_makes_no_purchase(self, carrier, shippo):
        shippo.shipment = {"object_id": "shp_9", "rates": []}
        with pytest.raises(CarrierError) as exc:
            carrier.purchase_label(FROM, TO, Parcel())
        assert exc.value.kind == CarrierErrorKind.NO_RATES_AVAILABLE
        assert "/transactions/" not in shippo.paths()

    def test_transaction_rejected(self, carrier, shippo):
        shippo.transaction_status = 400
        shippo.transaction = {"rate": ["Rate expired"]}
        with pytest.raises(CarrierError) as exc:
            carrier.purchase_label(FROM, TO, Parcel())
        assert exc.value.kind == CarrierErrorKind.TRANSACTION_REJECTED
        assert exc.value.payload == {"rate": ["Rate expired"]}

    def test_transaction_failed_status(self, carrier, shippo):
        shippo.transaction = {"status": "ERROR", "messages": [{"text": "Address invalid"}]}
        with pytest.raises(CarrierError) as exc:
            carrier.purchase_label(FROM, TO, Parcel())
        assert exc.value.kind == CarrierErrorKind.TRANSACTION_FAILED
        assert exc.value.payload == [{"text": "Address invalid"}]

    def test_timeout_is_not_no_rates(self, carrier, shippo):
        shippo.timeout_on = "/shipments/"
        with pytest.raises(CarrierError) as exc:
            carrier.purchase_label(FROM, TO, Parcel())
        assert exc.value.kind == CarrierErrorKind.TIMEOUT

    def test_timeout_on_purchase(self, carrier, shippo):
        shippo.timeout_on = "/transactions/"
        with pytest.raises(CarrierError) as exc:
            carrier.purchase_label(FROM, TO, Parcel())
        assert exc.value.kind == CarrierErrorKind.TIMEOUT

    def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = ShippoClient("key", transport=httpx.MockTransport(handler))
        with pytest.raises(CarrierError) as exc:
            client.purchase_label(FROM, TO, Parcel())
        assert exc.value.kind == CarrierErrorKind.UNAVAILABLE

    def test_non_json_error_body(self):
        client = ShippoClient("key", transport=httpx.MockTransport(lambda r: httpx.Response(502, text="Bad gateway")))
        with pytest.raises(CarrierError) as exc:
            client.create_shipment(FROM, TO, Parcel())
        assert exc.value.payload == {"detail": "Bad gateway"}


class TestConfiguration:
    def test_missing_api_key_is_fatal(self):
        with pytest.raises(ConfigurationError):
            ShippoClient("")

    def test_from_settings_requires_key(self):
        with pytest.raises(ConfigurationError):
            ShippoClient.from_settings(Settings(SHIPPO_API_KEY=""))

    def test_from_settings(self):
        client = ShippoClient.from_settings(Settings(SHIPPO_API_KEY="abc", SHIPPO_BASE="https://shippo.test/", CARRIER_TIMEOUT_SECONDS=5))
        assert client.base_url == "https://shippo.test"
        assert client.timeout == 5


def test_select_rate_takes_first():
    assert select_rate([{"object_id": "a", "amount": "9"}, {"object_id": "b", "amount": "1"}])["object_id"] == "a"
