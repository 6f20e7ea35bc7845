"""Pydantic schemas for mk_wallet API."""

from pydantic import BaseModel, Field

from src.mk_wallet.domain.models import WalletTransaction

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class AdminAdjustRequest(BaseModel):
    delta: int = Field(..., description="Signed points; negative debits the wallet")
    note: str = Field(..., min_length=1, max_length=200)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class BalanceResponse(BaseModel):
    user_id: str
    balance: int


class WalletTransactionItem(BaseModel):
    id: int
    tx_type: str
    delta: int
    balance_after: int
    related_order_id: str | None
    note: str | None
    created_at: str  # ISO8601 string

    @classmethod
    def from_domain(cls, tx: WalletTransaction) -> "WalletTransactionItem":
        return cls(
            id=tx.id,
            tx_type=tx.tx_type,
            delta=tx.delta,
            balance_after=tx.balance_after,
            related_order_id=tx.related_order_id,
            note=tx.note,
            created_at=tx.created_at.isoformat() if tx.created_at else "",
        )


class WalletHistoryResponse(BaseModel):
    items: list[WalletTransactionItem]
    next_cursor: str | None
    has_more: bool


class AdjustmentResponse(BaseModel):
    user_id: str
    delta: int
    balance: int
    transaction_id: int
