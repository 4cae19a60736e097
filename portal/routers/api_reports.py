from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends

from ..core.config import settings
from ..crud.devices import DeviceRepository
from ..crud.orders import OrderLog
from ..deps.services import get_order_log, get_repository
from ..schemas.order import DashboardStats, LeaseOrder, StockOverview, SyncState
from ..services.reporting import dashboard_stats, stock_overview

router = APIRouter(prefix="/api/v1", tags=["reports"])


@router.get("/dashboard", response_model=DashboardStats)
async def api_dashboard(
    repo: DeviceRepository = Depends(get_repository),
    orders: OrderLog = Depends(get_order_log),
):
    return dashboard_stats(
        await repo.get_all(),
        await orders.list_orders(),
        repo.clock(),
        low_stock_threshold=settings.LOW_STOCK_THRESHOLD,
        days=settings.TREND_DAYS,
        tz=settings.TZ,
    )


@router.get("/stock", response_model=StockOverview)
async def api_stock(
    search: str = "",
    level: Literal["all", "low", "out"] = "all",
    sort: Literal["name", "stock", "stockAsc"] = "name",
    repo: DeviceRepository = Depends(get_repository),
):
    return stock_overview(
        await repo.get_all(),
        search=search,
        level=level,
        sort=sort,
        low_stock_threshold=settings.LOW_STOCK_THRESHOLD,
    )


@router.get("/orders", response_model=list[LeaseOrder])
async def api_orders(orders: OrderLog = Depends(get_order_log)):
    return await orders.list_orders()


@router.get("/sync", response_model=SyncState)
async def api_sync(
    repo: DeviceRepository = Depends(get_repository),
    orders: OrderLog = Depends(get_order_log),
):
    """Cheap change check for polling clients: refetch only when a revision moves."""

    return SyncState(
        devices_revision=repo.store.revision(repo.key),
        orders_revision=orders.store.revision(orders.key),
        poll_interval_seconds=settings.POLL_INTERVAL_SECONDS,
    )
