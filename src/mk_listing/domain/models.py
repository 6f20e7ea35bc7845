"""Domain models for mk_listing — pure dataclasses, no business logic."""

from dataclasses import dataclass
from datetime import datetime

from src.mk_common.enums import ListingStatus

# Validation bounds shared by service and schemas
MAX_TITLE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 1000
MAX_IMAGE_URL_LENGTH = 200
MAX_QUANTITY = 999
MAX_UNIT_PRICE = 999_999  # points


@dataclass
class Listing:
    id: str
    seller_id: str
    title: str
    description: str | None
    unit_price: int  # points
    total_quantity: int
    reserved_quantity: int
    sold_quantity: int
    status: str  # ListingStatus value
    image_url: str | None = None
    is_negotiable: bool = False
    expires_at: datetime | None = None
    sold_out_at: datetime | None = None
    removed_at: datetime | None = None
    version: int = 1
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def available_quantity(self) -> int:
        return self.total_quantity - self.reserved_quantity - self.sold_quantity

    @property
    def is_editable(self) -> bool:
        return self.status in (ListingStatus.ACTIVE, ListingStatus.SOLD_OUT)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


@dataclass
class ListingChanges:
    """Seller edits; None means leave the field unchanged."""

    title: str | None = None
    description: str | None = None
    unit_price: int | None = None
    total_quantity: int | None = None
    image_url: str | None = None
    is_negotiable: bool | None = None
    expires_at: datetime | None = None


@dataclass
class ListingFilter:
    status: str | None = ListingStatus.ACTIVE.value  # None = any status
    seller_id: str | None = None
    keyword: str | None = None
    min_price: int | None = None
    max_price: int | None = None
