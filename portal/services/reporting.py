"""Derived figures for the supplier dashboard, stock pages and offer sheet."""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Iterable, Literal

from ..core.clock import local_date, parse_iso
from ..schemas.device import Device
from ..schemas.order import (
    DailyTotal,
    DashboardStats,
    LeaseOrder,
    OfferSheet,
    PricedOffer,
    StockOverview,
)
from .pricing import discounted_price, effective_price, offer_status, round_currency

StockLevel = Literal["all", "low", "out"]
StockSort = Literal["name", "stock", "stockAsc"]


def daily_lease_totals(
    orders: Iterable[LeaseOrder],
    today: date,
    *,
    days: int = 7,
    tz: str = "UTC",
) -> list[DailyTotal]:
    """Sum ``effectivePrice`` per calendar day for the last ``days`` days.

    Buckets run oldest first and end with ``today``. Days without orders are
    reported with zeros. Orders whose timestamp cannot be read are skipped.
    """

    values: dict[date, int] = defaultdict(int)
    counts: dict[date, int] = defaultdict(int)
    for order in orders:
        created = parse_iso(order.created_at)
        if created is None:
            continue
        day = local_date(created, tz)
        values[day] += order.effective_price
        counts[day] += 1

    buckets: list[DailyTotal] = []
    for offset in range(days - 1, -1, -1):
        day = today - timedelta(days=offset)
        buckets.append(
            DailyTotal(
                date=day.isoformat(),
                name=day.strftime("%a"),
                value=values.get(day, 0),
                rentals=counts.get(day, 0),
            )
        )
    return buckets


def dashboard_stats(
    devices: list[Device],
    orders: list[LeaseOrder],
    now: datetime,
    *,
    low_stock_threshold: int = 10,
    days: int = 7,
    tz: str = "UTC",
) -> DashboardStats:
    return DashboardStats(
        total_devices=len(devices),
        low_stock=sum(1 for d in devices if d.stock < low_stock_threshold),
        active_listings=sum(1 for d in devices if d.is_active),
        total_value=sum(d.price * d.stock for d in devices),
        total_leases=len(orders),
        trend=daily_lease_totals(orders, local_date(now, tz), days=days, tz=tz),
    )


def _matches(device: Device, search: str, *fields: str) -> bool:
    needle = search.strip().lower()
    if not needle:
        return True
    return any(needle in str(getattr(device, field)).lower() for field in fields)


def stock_overview(
    devices: list[Device],
    *,
    search: str = "",
    level: StockLevel = "all",
    sort: StockSort = "name",
    low_stock_threshold: int = 10,
) -> StockOverview:
    """Totals over the whole catalog plus the filtered, sorted rows.

    Unlike the dashboard, "low" here excludes devices that are already out.
    """

    def is_low(device: Device) -> bool:
        return 0 < device.stock < low_stock_threshold

    items = [d for d in devices if _matches(d, search, "name", "brand")]
    if level == "low":
        items = [d for d in items if is_low(d)]
    elif level == "out":
        items = [d for d in items if d.stock == 0]

    if sort == "stock":
        items.sort(key=lambda d: d.stock, reverse=True)
    elif sort == "stockAsc":
        items.sort(key=lambda d: d.stock)
    else:
        items.sort(key=lambda d: d.name.lower())

    return StockOverview(
        total_stock=sum(d.stock for d in devices),
        low_stock=sum(1 for d in devices if is_low(d)),
        out_of_stock=sum(1 for d in devices if d.stock == 0),
        items=items,
    )


def catalog_listing(devices: list[Device], *, search: str = "", include_inactive: bool = False) -> list[Device]:
    return [
        d
        for d in devices
        if _matches(d, search, "name", "brand") and (include_inactive or d.is_active)
    ]


def offer_sheet(device: Device, now: datetime, *, enforce_valid_from: bool = False) -> OfferSheet:
    return OfferSheet(
        device_id=device.id,
        base_price=device.price,
        effective_price=effective_price(device, now, enforce_valid_from=enforce_valid_from),
        offers=[
            PricedOffer(
                offer=offer,
                status=offer_status(offer, now),
                discounted_price=round_currency(discounted_price(device.price, offer)),
            )
            for offer in device.offers
        ],
    )
