"""Pydantic schemas for settlement results."""

from pydantic import BaseModel

from src.mk_settlement.domain.models import RecoveryReport, SettlementIntent


class SettlementResponse(BaseModel):
    order_id: str
    status: str
    applied: bool  # False when this call found the intent already applied
    total_amount: int
    platform_fee: int
    seller_amount: int

    @classmethod
    def from_intent(cls, intent: SettlementIntent, applied: bool) -> "SettlementResponse":
        return cls(
            order_id=intent.order_id,
            status=intent.status,
            applied=applied,
            total_amount=intent.total_amount,
            platform_fee=intent.platform_fee,
            seller_amount=intent.seller_amount,
        )


class RecoveryResponse(BaseModel):
    applied: int
    skipped: int
    failed: int

    @classmethod
    def from_report(cls, report: RecoveryReport) -> "RecoveryResponse":
        return cls(applied=report.applied, skipped=report.skipped, failed=report.failed)
