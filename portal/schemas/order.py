from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import Field

from .device import CamelModel, Device, Offer


class LeaseStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    ACTIVE = "active"


class LeaseOrder(CamelModel):
    """A simulated lease request.

    The device fields are a snapshot taken when the lease was confirmed, so
    later catalog edits (or deleting the device) leave the order untouched.
    """

    id: str
    device_id: str
    device_name: str
    device_brand: str = ""
    monthly_rental: int = Field(ge=0)
    effective_price: int = Field(ge=0)
    created_at: str
    status: LeaseStatus = LeaseStatus.PENDING


class DailyTotal(CamelModel):
    date: str
    name: str
    value: int = 0
    rentals: int = 0


class DashboardStats(CamelModel):
    total_devices: int
    low_stock: int
    active_listings: int
    total_value: int
    total_leases: int
    trend: list[DailyTotal]


class StockOverview(CamelModel):
    total_stock: int
    low_stock: int
    out_of_stock: int
    items: list[Device]


class PricedOffer(CamelModel):
    offer: Offer
    status: str
    discounted_price: int


class OfferSheet(CamelModel):
    device_id: str
    base_price: int
    effective_price: int
    offers: list[PricedOffer]


class MarketplaceItem(CamelModel):
    device: Device
    effective_price: int
    has_discount: bool
    best_offer: Optional[Offer] = None


class MarketplaceListing(CamelModel):
    brands: list[str]
    items: list[MarketplaceItem]


class SyncState(CamelModel):
    devices_revision: int
    orders_revision: int
    poll_interval_seconds: float
