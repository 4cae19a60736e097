"""Effective rental price of a device given its discount offers.

An offer qualifies when it is switched on and has not expired. Each
qualifying offer yields a candidate price; the cheapest candidate wins and is
rounded half-up to a whole currency unit. ``validFrom`` is ignored unless the
caller passes ``enforce_valid_from=True``.
"""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from ..core.clock import parse_boundary
from ..schemas.device import Device, Offer, OfferType

HUNDRED = Decimal(100)
EMPLOYEE_NET_FACTOR = Decimal("0.7")


def round_currency(value: Decimal | float | int) -> int:
    """Round half-up to an integer, the way prices are shown to employees."""

    return int(Decimal(str(value)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def is_expired(offer: Offer, now: datetime) -> bool:
    valid_to = parse_boundary(offer.valid_to)
    return valid_to is None or valid_to < now


def has_started(offer: Offer, now: datetime) -> bool:
    valid_from = parse_boundary(offer.valid_from)
    return valid_from is None or valid_from <= now


def qualifies(offer: Offer, now: datetime, *, enforce_valid_from: bool = False) -> bool:
    if not offer.is_active or is_expired(offer, now):
        return False
    return has_started(offer, now) if enforce_valid_from else True


def qualifying_offers(device: Device, now: datetime, *, enforce_valid_from: bool = False) -> list[Offer]:
    return [offer for offer in device.offers if qualifies(offer, now, enforce_valid_from=enforce_valid_from)]


def discounted_price(base: int, offer: Offer) -> Decimal:
    """Unrounded price after applying ``offer`` alone, never below zero."""

    price = Decimal(base)
    value = Decimal(str(offer.value))
    if offer.type is OfferType.PERCENTAGE:
        candidate = price * (1 - value / HUNDRED)
    else:
        candidate = price - value
    return max(Decimal(0), candidate)


def _best(base: int, offers: Iterable[Offer]) -> tuple[Decimal, Offer | None]:
    best_price, best_offer = Decimal(base), None
    for offer in offers:
        candidate = discounted_price(base, offer)
        if candidate < best_price:
            best_price, best_offer = candidate, offer
    return best_price, best_offer


def effective_price(device: Device, now: datetime, *, enforce_valid_from: bool = False) -> int:
    offers = qualifying_offers(device, now, enforce_valid_from=enforce_valid_from)
    if not offers:
        return device.price
    price, _ = _best(device.price, offers)
    return round_currency(price)


def best_offer(device: Device, now: datetime, *, enforce_valid_from: bool = False) -> Offer | None:
    """The offer behind ``effective_price``; the first one listed wins ties."""

    _, offer = _best(device.price, qualifying_offers(device, now, enforce_valid_from=enforce_valid_from))
    return offer


def has_discount(device: Device, now: datetime, *, enforce_valid_from: bool = False) -> bool:
    return effective_price(device, now, enforce_valid_from=enforce_valid_from) < device.price


def employee_net(price: int) -> int:
    """Approximate after-tax cost to the employee, a fixed 30% below the rental."""

    return round_currency(Decimal(price) * EMPLOYEE_NET_FACTOR)


def offer_status(offer: Offer, now: datetime) -> str:
    if not offer.is_active:
        return "inactive"
    if is_expired(offer, now):
        return "expired"
    if not has_started(offer, now):
        return "scheduled"
    return "active"
