"""Trade session domain models.

A session is keyed by its order id (1:1 with a confirmed order) and only
refers to the order, buyer and seller by id.
"""

from dataclasses import dataclass, field
from datetime import datetime

from src.mk_common.enums import TradeSessionStatus

MAX_MESSAGE_LENGTH = 1000
MAX_ATTACHMENT_REF_LENGTH = 500

OPEN_STATUSES = frozenset(
    {
        TradeSessionStatus.AWAITING_SELLER_TRANSFER.value,
        TradeSessionStatus.AWAITING_BUYER_RECEIPT.value,
    }
)


@dataclass
class TradeMessage:
    id: str
    order_id: str
    sender_role: str  # SenderRole value
    sender_id: str
    text: str
    attachment_ref: str | None = None
    created_at: datetime | None = None
    read_at: datetime | None = None


@dataclass
class TradeSession:
    order_id: str
    buyer_id: str
    seller_id: str
    status: str  # TradeSessionStatus value
    seller_transferred_at: datetime | None = None
    buyer_received_at: datetime | None = None
    seller_notes: str | None = None
    buyer_notes: str | None = None
    deadline_at: datetime | None = None  # counter-confirmation due by
    completed_at: datetime | None = None
    disputed_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    messages: list[TradeMessage] = field(default_factory=list)

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    def is_overdue(self, now: datetime) -> bool:
        return self.is_open and self.deadline_at is not None and self.deadline_at <= now
