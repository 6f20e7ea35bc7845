"""Order domain model — pure dataclass, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime

from src.mk_common.enums import OrderStatus

MAX_NOTES_LENGTH = 500
MAX_REQUEST_ID_LENGTH = 64


@dataclass
class Order:
    id: str
    listing_id: str
    buyer_id: str
    seller_id: str  # frozen from the listing at creation
    quantity: int
    unit_price: int  # points, frozen at creation
    total_amount: int  # quantity * unit_price, immutable
    platform_fee_bps: int  # frozen at creation
    status: str = OrderStatus.PENDING.value
    request_id: str | None = None
    buyer_notes: str | None = None
    seller_notes: str | None = None
    cancel_reason: str | None = None
    cancelled_by: str | None = None
    created_at: datetime | None = None
    confirmed_at: datetime | None = None
    charged_at: datetime | None = None  # escrow hold taken
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_charged(self) -> bool:
        return self.charged_at is not None

    @property
    def is_terminal(self) -> bool:
        return self.status in (OrderStatus.COMPLETED, OrderStatus.CANCELLED)
