"""Pydantic schemas for mk_escrow API."""

from datetime import datetime

from pydantic import BaseModel, Field

from src.mk_escrow.domain.models import (
    MAX_ATTACHMENT_REF_LENGTH,
    MAX_MESSAGE_LENGTH,
    TradeMessage,
    TradeSession,
)
from src.mk_order.domain.models import MAX_NOTES_LENGTH

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class ConfirmTradeRequest(BaseModel):
    notes: str | None = Field(None, max_length=MAX_NOTES_LENGTH)


class PostMessageRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)
    attachment_ref: str | None = Field(None, max_length=MAX_ATTACHMENT_REF_LENGTH)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class TradeMessageItem(BaseModel):
    id: str
    sender_role: str
    sender_id: str
    text: str
    attachment_ref: str | None
    created_at: str | None
    read_at: str | None

    @classmethod
    def from_domain(cls, message: TradeMessage) -> "TradeMessageItem":
        return cls(
            id=message.id,
            sender_role=message.sender_role,
            sender_id=message.sender_id,
            text=message.text,
            attachment_ref=message.attachment_ref,
            created_at=_iso(message.created_at),
            read_at=_iso(message.read_at),
        )


class TradeSessionDetail(BaseModel):
    order_id: str
    buyer_id: str
    seller_id: str
    status: str
    seller_transferred_at: str | None
    buyer_received_at: str | None
    seller_notes: str | None
    buyer_notes: str | None
    deadline_at: str | None
    completed_at: str | None
    disputed_at: str | None
    cancelled_at: str | None
    messages: list[TradeMessageItem]

    @classmethod
    def from_domain(cls, session: TradeSession) -> "TradeSessionDetail":
        return cls(
            order_id=session.order_id,
            buyer_id=session.buyer_id,
            seller_id=session.seller_id,
            status=session.status,
            seller_transferred_at=_iso(session.seller_transferred_at),
            buyer_received_at=_iso(session.buyer_received_at),
            seller_notes=session.seller_notes,
            buyer_notes=session.buyer_notes,
            deadline_at=_iso(session.deadline_at),
            completed_at=_iso(session.completed_at),
            disputed_at=_iso(session.disputed_at),
            cancelled_at=_iso(session.cancelled_at),
            messages=[TradeMessageItem.from_domain(m) for m in session.messages],
        )


class TradeMessageListResponse(BaseModel):
    items: list[TradeMessageItem]
    next_cursor: str | None
    has_more: bool


class MarkReadResponse(BaseModel):
    order_id: str
    marked: int
