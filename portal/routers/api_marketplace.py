from __future__ import annotations

from fastapi import APIRouter, Depends

from ..core.config import settings
from ..crud.devices import DeviceRepository
from ..deps.services import get_lease_recorder, get_repository
from ..schemas.order import LeaseOrder, MarketplaceListing
from ..services.leasing import LeaseRecorder
from ..services.marketplace import marketplace_listing

router = APIRouter(prefix="/api/v1/marketplace", tags=["marketplace"])


@router.get("", response_model=MarketplaceListing)
async def api_marketplace(search: str = "", brand: str = "", repo: DeviceRepository = Depends(get_repository)):
    return marketplace_listing(
        await repo.get_all(),
        repo.clock(),
        search=search,
        brand=brand,
        enforce_valid_from=settings.OFFER_ENFORCE_VALID_FROM,
    )


@router.post("/{device_id}/lease", response_model=LeaseOrder, status_code=201)
async def api_lease(device_id: str, recorder: LeaseRecorder = Depends(get_lease_recorder)):
    return await recorder.record_lease(device_id)
