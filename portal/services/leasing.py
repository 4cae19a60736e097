"""Lease confirmation from the employee marketplace.

Confirming a lease takes one unit of stock from the device and appends a
pending order that snapshots the device and the price it was leased at. Both
changes are written in a single store transaction, so a failure leaves
neither behind.
"""

from __future__ import annotations

import logging

from ..core.clock import to_iso
from ..core.config import settings
from ..core.errors import NotFoundError
from ..crud.devices import DeviceRepository, dump_devices
from ..crud.orders import OrderLog, dump_orders, lease_id
from ..crud.storage import Write, retry_on_stale
from ..schemas.order import LeaseOrder, LeaseStatus
from .pricing import effective_price, employee_net
from .sync import ChangeEvent

logger = logging.getLogger("portal.leasing")


class LeaseRecorder:
    def __init__(
        self,
        devices: DeviceRepository,
        orders: OrderLog,
        *,
        enforce_valid_from: bool | None = None,
    ) -> None:
        self.devices = devices
        self.orders = orders
        if enforce_valid_from is None:
            enforce_valid_from = settings.OFFER_ENFORCE_VALID_FROM
        self.enforce_valid_from = enforce_valid_from

    async def record_lease(self, device_id: str) -> LeaseOrder:
        async def attempt() -> LeaseOrder:
            devices, device_revision = self.devices.snapshot()
            orders, order_revision = self.orders.snapshot()

            device = next((d for d in devices if d.id == device_id), None)
            if device is None:
                raise NotFoundError("Device not found", device_id=device_id)

            now = self.devices.clock()
            price = effective_price(device, now, enforce_valid_from=self.enforce_valid_from)
            order = LeaseOrder(
                id=lease_id(int(now.timestamp() * 1000), {o.id for o in orders}),
                device_id=device.id,
                device_name=device.name,
                device_brand=device.brand,
                monthly_rental=price,
                effective_price=employee_net(price),
                created_at=to_iso(now),
                status=LeaseStatus.PENDING,
            )
            device.stock = max(0, device.stock - 1)
            device.updated_at = order.created_at
            device.version += 1
            orders.append(order)

            revisions = self.devices.store.set_many(
                {
                    self.devices.key: Write(dump_devices(devices), device_revision),
                    self.orders.key: Write(dump_orders(orders), order_revision),
                }
            )
            logger.info(
                "lease.recorded",
                extra={
                    "extra_data": {
                        "order_id": order.id,
                        "device_id": device.id,
                        "monthly_rental": order.monthly_rental,
                        "stock": device.stock,
                    }
                },
            )
            feed = self.devices.feed
            feed.publish(ChangeEvent(self.devices.key, revisions[self.devices.key], "stock_updated", device.id))
            feed.publish(ChangeEvent(self.orders.key, revisions[self.orders.key], "lease_recorded", device.id))
            return order

        async with self.devices.lock:
            await self.devices.pause()
            return await retry_on_stale(attempt, attempts=self.devices.write_attempts)
