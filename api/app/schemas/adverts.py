from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer

AdvertCategory = Literal["for_sale", "wanted"]
SortDir = Literal["asc", "desc"]


class AdvertOwnerOut(BaseModel):
    id: str
    name: str
    email: str | None = None


class AdvertOut(BaseModel):
    id: str
    title: str
    image_ref: str
    description: str
    price: Decimal
    category: AdvertCategory
    tags: list[str] = Field(default_factory=list)
    owner_id: str
    owner: AdvertOwnerOut | None = None
    published_at: datetime
    slug: str
    status: str

    @field_serializer("price")
    def _price_as_number(self, value: Decimal) -> int | float:
        return int(value) if value == value.to_integral_value() else float(value)


class AdvertPageOut(BaseModel):
    items: list[AdvertOut] = Field(default_factory=list)
    total: int
    page: int
    total_pages: int = Field(alias="totalPages")

    model_config = ConfigDict(populate_by_name=True)


class AdvertLookupOut(BaseModel):
    result: AdvertOut | None = None


class AdvertWriteOut(BaseModel):
    message: str
    advert: AdvertOut


class AdvertStatusPatchRequest(BaseModel):
    status: str | None = None


class AdvertStatusPatchOut(BaseModel):
    result: str


class AdvertStatusesOut(BaseModel):
    result: list[str]
