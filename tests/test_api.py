"""End-to-end checks of the HTTP surface against an in-memory store."""

import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from portal.crud.devices import DeviceRepository
from portal.crud.orders import OrderLog
from portal.crud.storage import KeyValueStore
from portal.db.session import Base, build_engine
from portal.deps.services import get_order_log, get_repository
from portal.main import app

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)

DEVICE = {
    "name": "Pixel 8",
    "brand": "Google",
    "model": "GKWS6",
    "category": "phone",
    "image": "https://img.example.com/pixel8.png",
    "price": 4100,
    "marketPrice": 75999,
    "stock": 1,
    "specifications": {
        "processor": "Tensor G3",
        "ram": "8 GB",
        "storage": "128 GB",
        "display": "6.2in",
        "camera": "50 MP",
        "battery": "4575 mAh",
    },
    "isActive": True,
}


@pytest.fixture()
def client():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    store = KeyValueStore(sessionmaker(bind=engine, autocommit=False, autoflush=False), clock=lambda: NOW)
    repo = DeviceRepository(store, key="devices", clock=lambda: NOW, latency=0)
    orders = OrderLog(store, key="orders")
    app.dependency_overrides[get_repository] = lambda: repo
    app.dependency_overrides[get_order_log] = lambda: orders
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        engine.dispose()


def create_device(client, **overrides):
    response = client.post("/api/v1/devices", json={**DEVICE, **overrides})
    assert response.status_code == 201, response.text
    return response.json()


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_device_crud_round_trip(client):
    device = create_device(client)
    assert device["id"].startswith("dev_")
    assert device["marketPrice"] == 75999
    assert device["createdAt"] == "2024-06-15T12:00:00.000Z"

    listed = client.get("/api/v1/devices").json()
    assert [d["id"] for d in listed] == [device["id"]]

    patched = client.patch(f"/api/v1/devices/{device['id']}", json={"price": 3900})
    assert patched.status_code == 200
    assert patched.json()["price"] == 3900
    assert patched.json()["version"] == 2

    assert client.delete(f"/api/v1/devices/{device['id']}").status_code == 204
    assert client.get(f"/api/v1/devices/{device['id']}").status_code == 404


def test_listing_hides_inactive_devices_by_default(client):
    active = create_device(client)
    hidden = create_device(client, name="Pixel 7", isActive=False)

    default = client.get("/api/v1/devices").json()
    assert [d["id"] for d in default] == [active["id"]]

    everything = client.get("/api/v1/devices", params={"include_inactive": "true"}).json()
    assert [d["id"] for d in everything] == [active["id"], hidden["id"]]


def test_missing_device_uses_error_envelope(client):
    response = client.put("/api/v1/devices/dev_missing/stock", json={"quantity": 3})

    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


def test_stale_version_is_a_conflict(client):
    device = create_device(client)
    client.put(f"/api/v1/devices/{device['id']}/stock", json={"quantity": 8})

    response = client.patch(
        f"/api/v1/devices/{device['id']}",
        json={"price": 1, "expectedVersion": device["version"]},
    )

    assert response.status_code == 409
    assert response.json()["code"] == "stale_write"


def test_invalid_device_payload_is_rejected(client):
    response = client.post("/api/v1/devices", json={**DEVICE, "image": "not a url", "stock": -1})

    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "validation_error"
    assert body["details"]["fields"] == ["image", "stock"]
    assert body["message"] == "Invalid image, stock"


def test_unknown_device_and_route_share_not_found_code(client):
    device = client.get("/api/v1/devices/dev_missing")
    assert device.status_code == 404
    assert device.json() == {"code": "not_found", "message": "Device not found"}

    route = client.get("/api/v1/nothing-here")
    assert route.status_code == 404
    assert route.json() == {"code": "not_found", "message": "Not Found"}


def test_request_id_is_echoed_back(client):
    response = client.get("/api/v1/devices", headers={"X-Request-ID": "req-123"})

    assert response.headers["X-Request-ID"] == "req-123"
    assert response.headers["X-Response-Time"].endswith("ms")


def test_offer_flow_and_pricing(client):
    device = create_device(client)
    offer_body = {
        "type": "flat",
        "value": 500,
        "description": "Festive",
        "validFrom": "2024-06-01",
        "validTo": "2099-12-31",
    }

    added = client.post(f"/api/v1/devices/{device['id']}/offers", json=offer_body)
    assert added.status_code == 201
    offer_id = added.json()["offers"][0]["id"]

    sheet = client.get(f"/api/v1/devices/{device['id']}/offers").json()
    assert sheet["effectivePrice"] == 3600
    assert sheet["offers"][0]["status"] == "active"

    toggled = client.post(f"/api/v1/devices/{device['id']}/offers/{offer_id}/toggle").json()
    assert toggled["offers"][0]["isActive"] is False

    removed = client.delete(f"/api/v1/devices/{device['id']}/offers/{offer_id}").json()
    assert removed["offers"] == []


def test_lease_updates_stock_orders_and_dashboard(client):
    device = create_device(client)
    client.post(
        f"/api/v1/devices/{device['id']}/offers",
        json={"type": "flat", "value": 500, "description": "Festive", "validFrom": "2024-06-01", "validTo": "2099-12-31"},
    )

    listing = client.get("/api/v1/marketplace").json()
    assert listing["items"][0]["effectivePrice"] == 3600
    assert listing["items"][0]["hasDiscount"] is True

    before = client.get("/api/v1/sync").json()
    lease = client.post(f"/api/v1/marketplace/{device['id']}/lease")
    assert lease.status_code == 201
    order = lease.json()
    assert order["status"] == "pending"
    assert order["monthlyRental"] == 3600
    assert order["effectivePrice"] == 2520

    after = client.get("/api/v1/sync").json()
    assert after["devicesRevision"] == before["devicesRevision"] + 1
    assert after["ordersRevision"] == before["ordersRevision"] + 1
    assert after["pollIntervalSeconds"] > 0

    assert client.get(f"/api/v1/devices/{device['id']}").json()["stock"] == 0
    assert client.get("/api/v1/marketplace").json()["items"] == []
    assert [o["id"] for o in client.get("/api/v1/orders").json()] == [order["id"]]

    dashboard = client.get("/api/v1/dashboard").json()
    assert dashboard["totalLeases"] == 1
    assert dashboard["trend"][-1]["value"] == 2520
    assert dashboard["lowStock"] == 1

    stock = client.get("/api/v1/stock", params={"level": "out"}).json()
    assert stock["outOfStock"] == 1
    assert [d["id"] for d in stock["items"]] == [device["id"]]


def test_lease_unknown_device_is_not_found(client):
    response = client.post("/api/v1/marketplace/dev_missing/lease")
    assert response.status_code == 404
