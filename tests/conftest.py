import json
import os

os.environ.setdefault("POSTGRES_DSN", "sqlite+pysqlite://")
os.environ.setdefault("SHIPPO_API_KEY", "shippo_test_key")
os.environ.setdefault("START_CONSUMER", "false")
os.environ.setdefault("SVC_INTERNAL_KEY", "test-internal-key")
os.environ.setdefault("SHIP_FROM_NAME", "Test Shop")
os.environ.setdefault("SHIP_FROM_STREET1", "1 Warehouse Way")
os.environ.setdefault("SHIP_FROM_CITY", "Austin")
os.environ.setdefault("SHIP_FROM_STATE", "TX")
os.environ.setdefault("SHIP_FROM_ZIP", "78701")

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fulfillment.db.models import Order, OrderItem, Product
from fulfillment.db.session import Base
from fulfillment.db.store import OrderStore
from fulfillment.notifications.notifier import Notifier
from fulfillment.services.shippo import ShippoClient

class FakeNotifier(Notifier):
    """Records notifications; optionally fails like a broken SMTP relay."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    def notify(self, notification):
        if self.fail:
            raise ConnectionError("smtp down")
        self.sent.append(notification)

class FakeShippo:
    """httpx.MockTransport handler standing in for the Shippo API."""

    def __init__(self):
        self.requests = []
        self.shipment_status = 201
        self.shipment = {
            "object_id": "shp_123",
            "rates": [
                {
                    "object_id": "rate_1",
                    "amount": "7.58",
                    "currency": "USD",
                    "provider": "USPS",
                    "servicelevel": {"name": "Priority Mail", "token": "usps_priority"},
                    "estimated_days": 2,
                },
                {"object_id": "rate_2", "amount": "5.10", "currency": "USD", "provider": "USPS"},
            ],
        }
        self.transaction_status = 201
        self.transaction = {
            "object_id": "txn_1",
            "status": "SUCCESS",
            "tracking_number": "9400100000000000000000",
            "label_url": "https://labels.example.com/label.pdf",
            "messages": [],
        }
        self.timeout_on = None

    def paths(self):
        return [r.url.path for r in self.requests]

    def body(self, index):
        return json.loads(self.requests[index].content)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.timeout_on and request.url.path == self.timeout_on:
            raise httpx.ReadTimeout("timed out", request=request)
        if request.url.path == "/shipments/":
            return httpx.Response(self.shipment_status, json=self.shipment)
        if request.url.path == "/transactions/":
            return httpx.Response(self.transaction_status, json=self.transaction)
        return httpx.Response(404, json={"detail": "Not found"})

@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()

@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)

@pytest.fixture()
def db(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.close()

@pytest.fixture()
def store(db):
    return OrderStore(db)

@pytest.fixture()
def notifier():
    return FakeNotifier()

@pytest.fixture()
def shippo():
    return FakeShippo()

@pytest.fixture()
def carrier(shippo):
    return ShippoClient("shippo_test_key", transport=httpx.MockTransport(shippo))

@pytest.fixture()
def make_order(db):
    def _make(items=(), products=(), **fields):
        for p in products:
            if db.get(Product, p["id"]) is None:
                db.add(Product(**p))
        values = {
            "order_number": "ORD-1001",
            "user_email": "customer@example.com",
            "total_cents": 2500,
            "shipping_address": {
                "name": "Jane Doe",
                "line1": "500 Main St",
                "city": "Portland",
                "state": "OR",
                "postal_code": "97201",
                "country": "US",
            },
        }
        values.update(fields)
        order = Order(**values)
        db.add(order)
        db.flush()
        for it in items:
            db.add(OrderItem(order_id=order.id, unit_price_cents=1000, title_snapshot="Item", **it))
        db.commit()
        return order
    return _make

@pytest.fixture()
def client(session_factory, carrier, notifier):
    from fulfillment.api import deps
    from fulfillment.main import app

    def _get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[deps.get_db] = _get_db
    app.dependency_overrides[deps.get_carrier] = lambda: carrier
    app.dependency_overrides[deps.get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()

@pytest.fixture()
def failing_notifier():
    return FakeNotifier(fail=True)
