"""Append-only log of lease orders, stored apart from the device catalog."""

from __future__ import annotations

import json
import logging

from pydantic import ValidationError

from ..core.config import settings
from ..schemas.order import LeaseOrder
from .storage import KeyValueStore

logger = logging.getLogger("portal.orders")


def load_orders(raw: str | None) -> list[LeaseOrder]:
    if not raw:
        return []
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("orders.corrupt_store", extra={"extra_data": {"reason": "invalid json"}})
        return []
    if not isinstance(payload, list):
        logger.warning("orders.corrupt_store", extra={"extra_data": {"reason": "not a list"}})
        return []
    orders: list[LeaseOrder] = []
    for item in payload:
        try:
            orders.append(LeaseOrder.model_validate(item))
        except ValidationError:
            logger.warning("orders.invalid_record", extra={"extra_data": {"record": item}})
    return orders


def dump_orders(orders: list[LeaseOrder]) -> str:
    return json.dumps([order.dump() for order in orders], separators=(",", ":"))


def lease_id(epoch_ms: int, taken: set[str]) -> str:
    """``lease-<epoch ms>``, nudged forward if two leases share a millisecond."""

    while f"lease-{epoch_ms}" in taken:
        epoch_ms += 1
    return f"lease-{epoch_ms}"


class OrderLog:
    def __init__(self, store: KeyValueStore, *, key: str | None = None) -> None:
        self.store = store
        self.key = key or settings.ORDERS_KEY

    def snapshot(self) -> tuple[list[LeaseOrder], int]:
        entry = self.store.get_entry(self.key)
        return load_orders(entry.value), entry.revision

    async def list_orders(self) -> list[LeaseOrder]:
        orders, _ = self.snapshot()
        return orders
