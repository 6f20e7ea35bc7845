"""Pydantic schemas for mk_listing API."""

from datetime import datetime

from pydantic import AwareDatetime, BaseModel, Field

from src.mk_listing.domain.models import (
    MAX_DESCRIPTION_LENGTH,
    MAX_IMAGE_URL_LENGTH,
    MAX_QUANTITY,
    MAX_TITLE_LENGTH,
    MAX_UNIT_PRICE,
    Listing,
    ListingChanges,
)

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class CreateListingRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=MAX_TITLE_LENGTH)
    description: str | None = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    unit_price: int = Field(..., ge=1, le=MAX_UNIT_PRICE, description="Price per unit in points")
    quantity: int = Field(..., ge=1, le=MAX_QUANTITY)
    image_url: str | None = Field(None, max_length=MAX_IMAGE_URL_LENGTH)
    is_negotiable: bool = False
    expires_at: AwareDatetime | None = None


class UpdateListingRequest(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=MAX_TITLE_LENGTH)
    description: str | None = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    unit_price: int | None = Field(None, ge=1, le=MAX_UNIT_PRICE)
    total_quantity: int | None = Field(None, ge=1, le=MAX_QUANTITY)
    image_url: str | None = Field(None, max_length=MAX_IMAGE_URL_LENGTH)
    is_negotiable: bool | None = None
    expires_at: AwareDatetime | None = None
    expected_version: int | None = Field(
        None, ge=1, description="Reject with CONFLICT if the listing changed since this version"
    )

    def to_changes(self) -> ListingChanges:
        return ListingChanges(
            title=self.title,
            description=self.description,
            unit_price=self.unit_price,
            total_quantity=self.total_quantity,
            image_url=self.image_url,
            is_negotiable=self.is_negotiable,
            expires_at=self.expires_at,
        )


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class ListingDetail(BaseModel):
    id: str
    seller_id: str
    title: str
    description: str | None
    unit_price: int
    total_quantity: int
    reserved_quantity: int
    sold_quantity: int
    available_quantity: int
    status: str
    image_url: str | None
    is_negotiable: bool
    expires_at: str | None
    sold_out_at: str | None
    removed_at: str | None
    version: int
    created_at: str | None
    updated_at: str | None

    @classmethod
    def from_domain(cls, listing: Listing) -> "ListingDetail":
        return cls(
            id=listing.id,
            seller_id=listing.seller_id,
            title=listing.title,
            description=listing.description,
            unit_price=listing.unit_price,
            total_quantity=listing.total_quantity,
            reserved_quantity=listing.reserved_quantity,
            sold_quantity=listing.sold_quantity,
            available_quantity=listing.available_quantity,
            status=listing.status,
            image_url=listing.image_url,
            is_negotiable=listing.is_negotiable,
            expires_at=_iso(listing.expires_at),
            sold_out_at=_iso(listing.sold_out_at),
            removed_at=_iso(listing.removed_at),
            version=listing.version,
            created_at=_iso(listing.created_at),
            updated_at=_iso(listing.updated_at),
        )


class ListingListResponse(BaseModel):
    items: list[ListingDetail]
    next_cursor: str | None
    has_more: bool
