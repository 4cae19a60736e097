"""Device and offer records plus the payloads that create or change them.

Stored JSON and API payloads use camelCase names (``marketPrice``,
``validTo`` ...); Python code reads the snake_case attributes. Every model
accepts either spelling on input and ``dump`` always writes camelCase.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ..core.clock import parse_boundary

_URL = TypeAdapter(AnyHttpUrl)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def dump(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class DeviceCategory(str, Enum):
    PHONE = "phone"
    LAPTOP = "laptop"
    TABLET = "tablet"
    SMARTWATCH = "smartwatch"
    HEADPHONES = "headphones"
    OTHER = "other"


class OfferType(str, Enum):
    PERCENTAGE = "percentage"
    FLAT = "flat"


class Specifications(CamelModel):
    processor: str = ""
    ram: str = ""
    storage: str = ""
    display: str = ""
    camera: str = ""
    battery: str = ""


class Offer(CamelModel):
    """A discount rule embedded in its device. Expiry is not checked here."""

    id: str
    type: OfferType
    value: float = Field(ge=0)
    description: str = ""
    valid_from: str = ""
    valid_to: str = ""
    is_active: bool = True


class Device(CamelModel):
    id: str
    name: str
    brand: str
    model: str = ""
    category: DeviceCategory = DeviceCategory.OTHER
    image: str = ""
    price: int = Field(ge=0)
    market_price: int = Field(default=0, ge=0)
    stock: int = Field(default=0, ge=0)
    specifications: Specifications = Field(default_factory=Specifications)
    offers: list[Offer] = Field(default_factory=list)
    is_active: bool = True
    created_at: str
    updated_at: str
    version: int = Field(default=1, ge=1)


class OfferCreate(CamelModel):
    type: OfferType
    value: float = Field(ge=0)
    description: str = Field(min_length=1)
    valid_from: str
    valid_to: str
    is_active: bool = True

    @field_validator("valid_from", "valid_to")
    @classmethod
    def parseable_boundary(cls, value: str) -> str:
        value = value.strip()
        if parse_boundary(value) is None:
            raise ValueError("must be an ISO-8601 date or timestamp")
        return value

    @model_validator(mode="after")
    def check_value(self) -> "OfferCreate":
        if self.type is OfferType.PERCENTAGE and self.value > 100:
            raise ValueError("percentage offers cannot exceed 100")
        return self


def _check_url(value: str) -> str:
    value = value.strip()
    _URL.validate_python(value)
    return value


class DeviceCreate(CamelModel):
    name: str = Field(min_length=2)
    brand: str = Field(min_length=2)
    model: str = Field(min_length=1)
    category: DeviceCategory = DeviceCategory.PHONE
    image: str
    price: int = Field(ge=0)
    market_price: int = Field(ge=0)
    stock: int = Field(ge=0)
    specifications: Specifications
    offers: list[OfferCreate] = Field(default_factory=list)
    is_active: bool = True

    @field_validator("image")
    @classmethod
    def image_url(cls, value: str) -> str:
        return _check_url(value)


class DevicePatch(CamelModel):
    """The fields an update may change. Offers have their own operations."""

    name: Optional[str] = Field(default=None, min_length=2)
    brand: Optional[str] = Field(default=None, min_length=2)
    model: Optional[str] = Field(default=None, min_length=1)
    category: Optional[DeviceCategory] = None
    image: Optional[str] = None
    price: Optional[int] = Field(default=None, ge=0)
    market_price: Optional[int] = Field(default=None, ge=0)
    stock: Optional[int] = Field(default=None, ge=0)
    specifications: Optional[Specifications] = None
    is_active: Optional[bool] = None

    @field_validator("image")
    @classmethod
    def image_url(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _check_url(value)

    def changes(self) -> dict[str, Any]:
        """Only the fields the caller actually sent, keyed by attribute name."""

        data = self.model_dump(exclude_unset=True)
        return {key: value for key, value in data.items() if value is not None}


class StockUpdate(CamelModel):
    quantity: int
    expected_version: Optional[int] = None


class DeviceUpdate(DevicePatch):
    expected_version: Optional[int] = None

    def patch(self) -> DevicePatch:
        return DevicePatch.model_validate(self.model_dump(exclude_unset=True, exclude={"expected_version"}))
