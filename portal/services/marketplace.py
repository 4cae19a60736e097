from __future__ import annotations

from datetime import datetime

from ..schemas.device import Device
from ..schemas.order import MarketplaceItem, MarketplaceListing
from .pricing import best_offer, effective_price


def is_leasable(device: Device) -> bool:
    return device.is_active and device.stock > 0


def marketplace_listing(
    devices: list[Device],
    now: datetime,
    *,
    search: str = "",
    brand: str = "",
    enforce_valid_from: bool = False,
) -> MarketplaceListing:
    """Active, in-stock devices priced for employees.

    ``brands`` lists every brand on offer before the search and brand filters
    apply, so the brand picker does not shrink as the user types.
    """

    available = [d for d in devices if is_leasable(d)]
    brands = sorted({d.brand for d in available})

    needle = search.strip().lower()
    items: list[MarketplaceItem] = []
    for device in available:
        if needle and not any(needle in value.lower() for value in (device.name, device.brand, device.model)):
            continue
        if brand and device.brand != brand:
            continue
        price = effective_price(device, now, enforce_valid_from=enforce_valid_from)
        items.append(
            MarketplaceItem(
                device=device,
                effective_price=price,
                has_discount=price < device.price,
                best_offer=best_offer(device, now, enforce_valid_from=enforce_valid_from),
            )
        )
    return MarketplaceListing(brands=brands, items=items)
