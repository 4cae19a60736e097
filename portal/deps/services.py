"""FastAPI dependencies handing out the process-wide portal services.

Each service is built once from settings. Tests swap them through
``app.dependency_overrides`` with instances backed by an in-memory store.
"""

from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from ..core.config import settings
from ..crud.devices import DeviceRepository
from ..crud.orders import OrderLog
from ..crud.storage import KeyValueStore
from ..db.session import SessionLocal
from ..services.leasing import LeaseRecorder
from ..services.sync import ChangeFeed


@lru_cache(maxsize=1)
def get_store() -> KeyValueStore:
    return KeyValueStore(SessionLocal)


@lru_cache(maxsize=1)
def get_feed() -> ChangeFeed:
    return ChangeFeed()


@lru_cache(maxsize=1)
def get_repository() -> DeviceRepository:
    return DeviceRepository(get_store(), key=settings.DEVICES_KEY, feed=get_feed())


@lru_cache(maxsize=1)
def get_order_log() -> OrderLog:
    return OrderLog(get_store(), key=settings.ORDERS_KEY)


def get_lease_recorder(
    devices: DeviceRepository = Depends(get_repository),
    orders: OrderLog = Depends(get_order_log),
) -> LeaseRecorder:
    return LeaseRecorder(devices, orders)
