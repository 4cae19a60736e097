"""The device catalog: CRUD plus stock and offer mutations.

The whole collection is stored as one JSON array under ``DEVICES_KEY``.
Every mutation reloads that array, changes it, and writes it back with the
revision it loaded, so a write from another process is retried on top of the
newer data instead of being overwritten.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Callable, Iterable, TypeVar
from uuid import uuid4

from pydantic import ValidationError

from ..core.clock import Clock, to_iso, utcnow
from ..core.config import settings
from ..core.errors import NotFoundError, VersionConflictError
from ..schemas.device import Device, DeviceCreate, DevicePatch, Offer, OfferCreate
from ..services.sync import ChangeEvent, ChangeFeed
from .storage import KeyValueStore, retry_on_stale

logger = logging.getLogger("portal.devices")

T = TypeVar("T")


def new_id(prefix: str, taken: Iterable[str]) -> str:
    """Return ``prefix`` plus seven random hex characters not already in use."""

    used = set(taken)
    while True:
        candidate = f"{prefix}{uuid4().hex[:7]}"
        if candidate not in used:
            return candidate


def load_devices(raw: str | None) -> list[Device]:
    """Parse the stored collection, dropping anything that is not a device."""

    if not raw:
        return []
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("devices.corrupt_store", extra={"extra_data": {"reason": "invalid json"}})
        return []
    if not isinstance(payload, list):
        logger.warning("devices.corrupt_store", extra={"extra_data": {"reason": "not a list"}})
        return []
    devices: list[Device] = []
    for item in payload:
        try:
            devices.append(Device.model_validate(item))
        except ValidationError as exc:
            logger.warning(
                "devices.invalid_record",
                extra={"extra_data": {"id": item.get("id") if isinstance(item, dict) else None, "errors": exc.error_count()}},
            )
    return devices


def dump_devices(devices: list[Device]) -> str:
    return json.dumps([device.dump() for device in devices], separators=(",", ":"))


def _index_of(devices: list[Device], device_id: str) -> int:
    for index, device in enumerate(devices):
        if device.id == device_id:
            return index
    raise NotFoundError("Device not found", device_id=device_id)


def _check_version(device: Device, expected_version: int | None) -> None:
    if expected_version is not None and expected_version != device.version:
        raise VersionConflictError(
            "Device was changed by someone else",
            device_id=device.id,
            expected_version=expected_version,
            current_version=device.version,
        )


class DeviceRepository:
    def __init__(
        self,
        store: KeyValueStore,
        *,
        key: str | None = None,
        feed: ChangeFeed | None = None,
        clock: Clock = utcnow,
        latency: float | None = None,
        write_attempts: int | None = None,
    ) -> None:
        self.store = store
        self.key = key or settings.DEVICES_KEY
        self.feed = feed if feed is not None else ChangeFeed()
        self.clock = clock
        self.latency = settings.simulated_latency if latency is None else latency
        self.write_attempts = write_attempts or settings.STORE_WRITE_ATTEMPTS
        # Serializes read-modify-write cycles issued from this process.
        self.lock = asyncio.Lock()

    # ---- reads

    def snapshot(self) -> tuple[list[Device], int]:
        """Current devices plus the store revision they were read at."""

        entry = self.store.get_entry(self.key)
        return load_devices(entry.value), entry.revision

    async def get_all(self) -> list[Device]:
        await self.pause()
        devices, _ = self.snapshot()
        return devices

    async def get_by_id(self, device_id: str) -> Device | None:
        await self.pause()
        devices, _ = self.snapshot()
        return next((device for device in devices if device.id == device_id), None)

    # ---- writes

    async def create(self, data: DeviceCreate) -> Device:
        def apply(devices: list[Device]) -> Device:
            now = self._now()
            fields = data.model_dump(exclude={"offers"})
            offers: list[Offer] = []
            for offer in data.offers:
                offers.append(Offer(id=new_id("off_", (o.id for o in offers)), **offer.model_dump()))
            device = Device(
                id=new_id("dev_", (d.id for d in devices)),
                offers=offers,
                created_at=now,
                updated_at=now,
                version=1,
                **fields,
            )
            devices.append(device)
            return device

        return await self._mutate("created", apply, lambda device: device.id)

    async def update(
        self,
        device_id: str,
        patch: DevicePatch | None = None,
        *,
        expected_version: int | None = None,
    ) -> Device:
        changes = patch.changes() if patch is not None else {}

        def apply(devices: list[Device]) -> Device:
            index = _index_of(devices, device_id)
            current = devices[index]
            _check_version(current, expected_version)
            merged = Device.model_validate(
                {
                    **current.model_dump(),
                    **changes,
                    "updated_at": self._now(),
                    "version": current.version + 1,
                }
            )
            devices[index] = merged
            return merged

        return await self._mutate("updated", apply, lambda _: device_id)

    async def delete(self, device_id: str) -> None:
        def apply(devices: list[Device]) -> bool:
            before = len(devices)
            devices[:] = [device for device in devices if device.id != device_id]
            return len(devices) != before

        await self._mutate("deleted", apply, lambda _: device_id, skip_write=lambda removed: not removed)

    async def update_stock(
        self,
        device_id: str,
        quantity: int,
        *,
        expected_version: int | None = None,
    ) -> Device:
        def apply(devices: list[Device]) -> Device:
            device = devices[_index_of(devices, device_id)]
            _check_version(device, expected_version)
            device.stock = max(0, quantity)
            self._touch(device)
            return device

        return await self._mutate("stock_updated", apply, lambda _: device_id)

    async def add_offer(self, device_id: str, offer: OfferCreate) -> Device:
        def apply(devices: list[Device]) -> Device:
            device = devices[_index_of(devices, device_id)]
            device.offers.append(Offer(id=new_id("off_", (o.id for o in device.offers)), **offer.model_dump()))
            self._touch(device)
            return device

        return await self._mutate("offer_added", apply, lambda _: device_id)

    async def remove_offer(self, device_id: str, offer_id: str) -> Device:
        def apply(devices: list[Device]) -> Device:
            device = devices[_index_of(devices, device_id)]
            device.offers = [offer for offer in device.offers if offer.id != offer_id]
            self._touch(device)
            return device

        return await self._mutate("offer_removed", apply, lambda _: device_id)

    async def toggle_offer_status(self, device_id: str, offer_id: str) -> Device:
        def apply(devices: list[Device]) -> Device:
            device = devices[_index_of(devices, device_id)]
            offer = next((o for o in device.offers if o.id == offer_id), None)
            if offer is None:
                raise NotFoundError("Offer not found", device_id=device_id, offer_id=offer_id)
            offer.is_active = not offer.is_active
            self._touch(device)
            return device

        return await self._mutate("offer_toggled", apply, lambda _: device_id)

    # ---- internals

    def _now(self) -> str:
        return to_iso(self.clock())

    def _touch(self, device: Device) -> None:
        device.updated_at = self._now()
        device.version += 1

    async def pause(self) -> None:
        await asyncio.sleep(self.latency)

    async def _mutate(
        self,
        action: str,
        apply: Callable[[list[Device]], T],
        device_id_of: Callable[[T], str],
        *,
        skip_write: Callable[[T], bool] | None = None,
    ) -> T:
        async def attempt() -> T:
            devices, revision = self.snapshot()
            result = apply(devices)
            device_id = device_id_of(result)
            if skip_write is not None and skip_write(result):
                return result
            new_revision = self.store.set(self.key, dump_devices(devices), expected_revision=revision)
            logger.info(
                f"device.{action}",
                extra={"extra_data": {"device_id": device_id, "revision": new_revision}},
            )
            self.feed.publish(ChangeEvent(self.key, new_revision, action, device_id))
            return result

        async with self.lock:
            await self.pause()
            return await retry_on_stale(attempt, attempts=self.write_attempts)
