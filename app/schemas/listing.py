from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.clock import as_utc


Condition = Literal["Neuf", "Occasion"]


class ListingCreate(BaseModel):
    title: str = Field(min_length=1, max_length=100)
    description: str = Field(min_length=10, max_length=1000)
    price: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    location: str = Field(min_length=1, max_length=200)
    category: str | None = Field(default=None, max_length=100)
    condition: Condition | None = None
    # already-hosted image URIs, display order preserved
    images: list[str] = Field(default_factory=list, max_length=10)


class ListingUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, min_length=10, max_length=1000)
    price: Decimal | None = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    location: str | None = Field(default=None, min_length=1, max_length=200)
    category: str | None = Field(default=None, max_length=100)
    condition: Condition | None = None
    images: list[str] | None = Field(default=None, max_length=10)


class ListingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    seller_id: str
    title: str
    description: str
    price: Decimal
    location: str
    category: str | None
    condition: str | None
    images: list[str]
    status: str
    expires_at: datetime
    renewal_count: int
    boost_tier: str | None
    boosted_until: datetime | None
    views: int

    @field_validator("expires_at", "boosted_until")
    @classmethod
    def _utc(cls, v: datetime | None) -> datetime | None:
        return as_utc(v)


class ListingPageOut(BaseModel):
    items: list[ListingOut]
    total: int
    limit: int
    offset: int


class SweepOut(BaseModel):
    expired: int
