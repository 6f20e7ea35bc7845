"""Settlement intent — the write-ahead record of a settlement.

Written in the same transaction that completes the trade session, before
any wallet mutation. Applying it moves PENDING → APPLIED exactly once.
"""

from dataclasses import dataclass
from datetime import datetime

from src.mk_common.enums import SettlementStatus


@dataclass
class SettlementIntent:
    order_id: str
    buyer_id: str
    seller_id: str
    listing_id: str
    quantity: int
    total_amount: int
    platform_fee: int
    seller_amount: int
    status: str = SettlementStatus.PENDING.value
    attempts: int = 0
    last_error: str | None = None
    created_at: datetime | None = None
    applied_at: datetime | None = None


@dataclass
class RecoveryReport:
    applied: int = 0
    skipped: int = 0
    failed: int = 0
