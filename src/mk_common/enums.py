"""Global enums — must match DB CHECK constraints exactly.

Ref: alembic/versions/00[1-6]_*.py
"""

from enum import Enum


class ListingStatus(str, Enum):
    ACTIVE = "ACTIVE"
    SOLD_OUT = "SOLD_OUT"
    EXPIRED = "EXPIRED"
    REMOVED = "REMOVED"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class TradeSessionStatus(str, Enum):
    AWAITING_SELLER_TRANSFER = "AWAITING_SELLER_TRANSFER"
    AWAITING_BUYER_RECEIPT = "AWAITING_BUYER_RECEIPT"
    COMPLETED = "COMPLETED"
    DISPUTED = "DISPUTED"
    # Owning order was cancelled; row kept for audit
    CANCELLED = "CANCELLED"


class SenderRole(str, Enum):
    BUYER = "BUYER"
    SELLER = "SELLER"


class WalletTransactionType(str, Enum):
    # Buyer -> escrow at order confirmation (paired)
    ESCROW_HOLD = "ESCROW_HOLD"
    # Escrow -> seller + platform at settlement
    ESCROW_RELEASE = "ESCROW_RELEASE"
    MARKET_SALE = "MARKET_SALE"
    PLATFORM_FEE = "PLATFORM_FEE"
    # Escrow -> buyer on cancel of a charged order (paired)
    REFUND = "REFUND"
    ADMIN_ADJUSTMENT = "ADMIN_ADJUSTMENT"


class SettlementStatus(str, Enum):
    PENDING = "PENDING"
    APPLIED = "APPLIED"


class PeriodType(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


class RankingMetric(str, Enum):
    AMOUNT = "AMOUNT"
    VOLUME = "VOLUME"
