"""Tests for lease confirmation: order recording plus stock decrement."""

import json
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from portal.core.errors import NotFoundError, StaleWriteError
from portal.crud.devices import DeviceRepository
from portal.crud.orders import OrderLog, lease_id
from portal.crud.storage import KeyValueStore, Write
from portal.db.session import Base, build_engine
from portal.schemas.device import DeviceCreate, DevicePatch, OfferCreate
from portal.services.leasing import LeaseRecorder
from portal.services.sync import ChangeFeed

# Ensure models are registered so metadata tables are created
from portal.models import storage as storage_model  # noqa: F401

pytestmark = pytest.mark.anyio

NOW = datetime(2024, 6, 15, 12, 30, tzinfo=timezone.utc)


class FlakyStore(KeyValueStore):
    """Fails the next ``failures`` multi-key writes as if another writer won."""

    failures = 0

    def set_many(self, writes):
        if len(writes) > 1 and self.failures:
            self.failures -= 1
            raise StaleWriteError("simulated conflict")
        return super().set_many(writes)


@pytest.fixture()
def anyio_backend():
    return "asyncio"


@pytest.fixture()
def store():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield FlakyStore(sessionmaker(bind=engine, autocommit=False, autoflush=False))
    engine.dispose()


@pytest.fixture()
def feed():
    return ChangeFeed()


@pytest.fixture()
def devices(store, feed):
    return DeviceRepository(store, key="devices", feed=feed, clock=lambda: NOW, latency=0)


@pytest.fixture()
def orders(store):
    return OrderLog(store, key="orders")


@pytest.fixture()
def recorder(devices, orders):
    return LeaseRecorder(devices, orders, enforce_valid_from=False)


async def add_device(devices, *, stock=1, price=3500, offers=()):
    return await devices.create(
        DeviceCreate.model_validate(
            {
                "name": "ThinkPad X1",
                "brand": "Lenovo",
                "model": "Gen 12",
                "category": "laptop",
                "image": "https://img.example.com/x1.png",
                "price": price,
                "marketPrice": 150000,
                "stock": stock,
                "specifications": {
                    "processor": "Core Ultra 7",
                    "ram": "32 GB",
                    "storage": "1 TB",
                    "display": "14in",
                    "camera": "5 MP",
                    "battery": "57 Wh",
                },
                "offers": list(offers),
            }
        )
    )


async def test_lease_takes_last_unit_and_records_pending_order(devices, orders, recorder):
    offer = OfferCreate(type="percentage", value=10, description="Launch", valid_from="2024-01-01", valid_to="2099-12-31")
    device = await add_device(devices, stock=1, offers=[offer])

    order = await recorder.record_lease(device.id)

    assert order.status.value == "pending"
    assert order.monthly_rental == 3150
    assert order.effective_price == 2205
    assert order.id == f"lease-{int(NOW.timestamp() * 1000)}"
    assert order.created_at == "2024-06-15T12:30:00.000Z"

    refreshed = await devices.get_by_id(device.id)
    assert refreshed.stock == 0
    assert refreshed.version == device.version + 1

    logged = await orders.list_orders()
    assert [o.id for o in logged] == [order.id]


async def test_lease_on_empty_stock_clamps_at_zero(devices, recorder):
    device = await add_device(devices, stock=0)

    await recorder.record_lease(device.id)

    assert (await devices.get_by_id(device.id)).stock == 0


async def test_order_keeps_snapshot_after_device_changes(devices, orders, recorder):
    device = await add_device(devices, stock=5)
    order = await recorder.record_lease(device.id)

    await devices.update(device.id, DevicePatch(name="Renamed", price=1))
    await devices.delete(device.id)

    logged = await orders.list_orders()
    assert logged[0].device_name == "ThinkPad X1"
    assert logged[0].device_brand == "Lenovo"
    assert logged[0].monthly_rental == order.monthly_rental == 3500


async def test_same_millisecond_leases_get_distinct_ids(devices, orders, recorder):
    device = await add_device(devices, stock=3)

    first = await recorder.record_lease(device.id)
    second = await recorder.record_lease(device.id)

    assert first.id != second.id
    assert len(await orders.list_orders()) == 2
    assert (await devices.get_by_id(device.id)).stock == 1


async def test_unknown_device_raises_and_writes_nothing(devices, orders, recorder, store):
    await add_device(devices)
    before = store.get("devices")

    with pytest.raises(NotFoundError):
        await recorder.record_lease("dev_missing")

    assert store.get("devices") == before
    assert await orders.list_orders() == []


async def test_failed_lease_leaves_stock_and_log_untouched(store, feed, orders):
    devices = DeviceRepository(store, key="devices", feed=feed, clock=lambda: NOW, latency=0, write_attempts=2)
    recorder = LeaseRecorder(devices, orders, enforce_valid_from=False)
    device = await add_device(devices, stock=4)
    store.failures = 2

    with pytest.raises(StaleWriteError):
        await recorder.record_lease(device.id)

    assert (await devices.get_by_id(device.id)).stock == 4
    assert await orders.list_orders() == []


async def test_lease_retries_after_a_conflict(devices, orders, recorder, store):
    device = await add_device(devices, stock=4)
    store.failures = 1

    await recorder.record_lease(device.id)

    assert (await devices.get_by_id(device.id)).stock == 3
    assert len(await orders.list_orders()) == 1


async def test_lease_publishes_stock_and_order_events(devices, recorder, feed):
    device = await add_device(devices, stock=2)
    events = []
    feed.subscribe(events.append)

    await recorder.record_lease(device.id)

    assert [(e.key, e.action) for e in events] == [
        ("devices", "stock_updated"),
        ("orders", "lease_recorded"),
    ]


async def test_corrupt_order_log_reads_as_empty(orders, store):
    store.set_many({"orders": Write("[{]")})
    assert await orders.list_orders() == []

    store.set("orders", json.dumps([{"id": "x"}]))
    assert await orders.list_orders() == []


async def test_lease_id_skips_taken_values():
    assert lease_id(1000, set()) == "lease-1000"
    assert lease_id(1000, {"lease-1000", "lease-1001"}) == "lease-1002"
