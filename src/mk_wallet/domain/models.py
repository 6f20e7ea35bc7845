"""Domain models for mk_wallet — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class WalletAccount:
    user_id: str
    balance: int  # points; cached projection of SUM(wallet_transactions.delta)
    version: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class WalletTransaction:
    id: int  # BIGSERIAL
    user_id: str
    delta: int  # points, positive=credit negative=debit
    balance_after: int
    tx_type: str  # WalletTransactionType value
    related_order_id: str | None = None
    note: str | None = None
    created_at: datetime | None = None


@dataclass
class ProjectionMismatch:
    """A wallet whose cached balance disagrees with its transaction log."""

    user_id: str
    cached_balance: int
    ledger_balance: int
