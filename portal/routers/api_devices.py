from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response

from ..core.config import settings
from ..crud.devices import DeviceRepository
from ..deps.services import get_repository
from ..schemas.device import Device, DeviceCreate, DeviceUpdate, OfferCreate, StockUpdate
from ..schemas.order import OfferSheet
from ..services.reporting import catalog_listing, offer_sheet

router = APIRouter(prefix="/api/v1/devices", tags=["devices"])


async def _require_device(repo: DeviceRepository, device_id: str) -> Device:
    device = await repo.get_by_id(device_id)
    if not device:
        raise HTTPException(status_code=404, detail="Device not found")
    return device


@router.get("", response_model=list[Device])
async def api_list(
    search: str = "",
    include_inactive: bool = False,
    repo: DeviceRepository = Depends(get_repository),
):
    return catalog_listing(await repo.get_all(), search=search, include_inactive=include_inactive)


@router.post("", response_model=Device, status_code=201)
async def api_create(payload: DeviceCreate, repo: DeviceRepository = Depends(get_repository)):
    return await repo.create(payload)


@router.get("/{device_id}", response_model=Device)
async def api_get(device_id: str, repo: DeviceRepository = Depends(get_repository)):
    return await _require_device(repo, device_id)


@router.patch("/{device_id}", response_model=Device)
async def api_update(device_id: str, payload: DeviceUpdate, repo: DeviceRepository = Depends(get_repository)):
    return await repo.update(device_id, payload.patch(), expected_version=payload.expected_version)


@router.delete("/{device_id}", status_code=204)
async def api_delete(device_id: str, repo: DeviceRepository = Depends(get_repository)):
    await repo.delete(device_id)
    return Response(status_code=204)


@router.put("/{device_id}/stock", response_model=Device)
async def api_update_stock(device_id: str, payload: StockUpdate, repo: DeviceRepository = Depends(get_repository)):
    return await repo.update_stock(device_id, payload.quantity, expected_version=payload.expected_version)


@router.get("/{device_id}/offers", response_model=OfferSheet)
async def api_offers(device_id: str, repo: DeviceRepository = Depends(get_repository)):
    device = await _require_device(repo, device_id)
    return offer_sheet(device, repo.clock(), enforce_valid_from=settings.OFFER_ENFORCE_VALID_FROM)


@router.post("/{device_id}/offers", response_model=Device, status_code=201)
async def api_add_offer(device_id: str, payload: OfferCreate, repo: DeviceRepository = Depends(get_repository)):
    return await repo.add_offer(device_id, payload)


@router.delete("/{device_id}/offers/{offer_id}", response_model=Device)
async def api_remove_offer(device_id: str, offer_id: str, repo: DeviceRepository = Depends(get_repository)):
    return await repo.remove_offer(device_id, offer_id)


@router.post("/{device_id}/offers/{offer_id}/toggle", response_model=Device)
async def api_toggle_offer(device_id: str, offer_id: str, repo: DeviceRepository = Depends(get_repository)):
    return await repo.toggle_offer_status(device_id, offer_id)
