"""Pydantic schemas for mk_order API."""

from datetime import datetime

from pydantic import BaseModel, Field

from src.mk_listing.domain.models import MAX_QUANTITY
from src.mk_order.domain.models import MAX_NOTES_LENGTH, MAX_REQUEST_ID_LENGTH, Order

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class CreateOrderRequest(BaseModel):
    listing_id: str = Field(..., min_length=1, max_length=32)
    quantity: int = Field(..., ge=1, le=MAX_QUANTITY)
    notes: str | None = Field(None, max_length=MAX_NOTES_LENGTH)
    request_id: str | None = Field(
        None,
        min_length=1,
        max_length=MAX_REQUEST_ID_LENGTH,
        description="Client idempotency key; resending it never creates a second order",
    )


class ConfirmOrderRequest(BaseModel):
    notes: str | None = Field(None, max_length=MAX_NOTES_LENGTH)


class CancelOrderRequest(BaseModel):
    reason: str | None = Field(None, max_length=MAX_NOTES_LENGTH)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class OrderDetail(BaseModel):
    id: str
    listing_id: str
    buyer_id: str
    seller_id: str
    quantity: int
    unit_price: int
    total_amount: int
    platform_fee_bps: int
    status: str
    request_id: str | None
    buyer_notes: str | None
    seller_notes: str | None
    cancel_reason: str | None
    cancelled_by: str | None
    charged: bool
    created_at: str | None
    confirmed_at: str | None
    completed_at: str | None
    cancelled_at: str | None

    @classmethod
    def from_domain(cls, order: Order) -> "OrderDetail":
        return cls(
            id=order.id,
            listing_id=order.listing_id,
            buyer_id=order.buyer_id,
            seller_id=order.seller_id,
            quantity=order.quantity,
            unit_price=order.unit_price,
            total_amount=order.total_amount,
            platform_fee_bps=order.platform_fee_bps,
            status=order.status,
            request_id=order.request_id,
            buyer_notes=order.buyer_notes,
            seller_notes=order.seller_notes,
            cancel_reason=order.cancel_reason,
            cancelled_by=order.cancelled_by,
            charged=order.is_charged,
            created_at=_iso(order.created_at),
            confirmed_at=_iso(order.confirmed_at),
            completed_at=_iso(order.completed_at),
            cancelled_at=_iso(order.cancelled_at),
        )


class OrderListResponse(BaseModel):
    items: list[OrderDetail]
    next_cursor: str | None
    has_more: bool
