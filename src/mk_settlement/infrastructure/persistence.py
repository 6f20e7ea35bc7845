"""SettlementRepository — raw SQL for settlement_intents.

`claim` is the exactly-once gate: a compare-and-set PENDING → APPLIED inside
the transaction that moves the money. If that transaction rolls back the
intent goes back to PENDING with it.
"""

from datetime import datetime

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_settlement.domain.models import SettlementIntent

_COLUMNS = """
    order_id, buyer_id, seller_id, listing_id, quantity, total_amount,
    platform_fee, seller_amount, status, attempts, last_error, created_at, applied_at
"""

_INSERT_SQL = text(f"""
    INSERT INTO settlement_intents
        (order_id, buyer_id, seller_id, listing_id, quantity, total_amount,
         platform_fee, seller_amount, status)
    VALUES
        (:order_id, :buyer_id, :seller_id, :listing_id, :quantity, :total_amount,
         :platform_fee, :seller_amount, 'PENDING')
    ON CONFLICT (order_id) DO NOTHING
    RETURNING {_COLUMNS}
""")

_GET_SQL = text(f"SELECT {_COLUMNS} FROM settlement_intents WHERE order_id = :order_id")

_CLAIM_SQL = text(f"""
    UPDATE settlement_intents
    SET status = 'APPLIED',
        applied_at = :now,
        attempts = attempts + 1,
        last_error = NULL
    WHERE order_id = :order_id AND status = 'PENDING'
    RETURNING {_COLUMNS}
""")

_RECORD_FAILURE_SQL = text("""
    UPDATE settlement_intents
    SET attempts = attempts + 1,
        last_error = :error
    WHERE order_id = :order_id AND status = 'PENDING'
""")

_LIST_PENDING_SQL = text("""
    SELECT order_id FROM settlement_intents
    WHERE status = 'PENDING'
    ORDER BY created_at ASC, order_id ASC
    LIMIT :limit
""")


def _row_to_intent(row: object) -> SettlementIntent:
    return SettlementIntent(
        order_id=row.order_id,  # type: ignore[attr-defined]
        buyer_id=row.buyer_id,  # type: ignore[attr-defined]
        seller_id=row.seller_id,  # type: ignore[attr-defined]
        listing_id=row.listing_id,  # type: ignore[attr-defined]
        quantity=row.quantity,  # type: ignore[attr-defined]
        total_amount=row.total_amount,  # type: ignore[attr-defined]
        platform_fee=row.platform_fee,  # type: ignore[attr-defined]
        seller_amount=row.seller_amount,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        attempts=row.attempts,  # type: ignore[attr-defined]
        last_error=row.last_error,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        applied_at=row.applied_at,  # type: ignore[attr-defined]
    )


class SettlementRepository:
    async def insert_intent(
        self, db: AsyncSession, intent: SettlementIntent
    ) -> SettlementIntent | None:
        result = await db.execute(
            _INSERT_SQL,
            {
                "order_id": intent.order_id,
                "buyer_id": intent.buyer_id,
                "seller_id": intent.seller_id,
                "listing_id": intent.listing_id,
                "quantity": intent.quantity,
                "total_amount": intent.total_amount,
                "platform_fee": intent.platform_fee,
                "seller_amount": intent.seller_amount,
            },
        )
        row = result.fetchone()
        return _row_to_intent(row) if row else None

    async def get_intent(
        self, db: AsyncSession, order_id: str
    ) -> SettlementIntent | None:
        result = await db.execute(_GET_SQL, {"order_id": order_id})
        row = result.fetchone()
        return _row_to_intent(row) if row else None

    async def claim(
        self, db: AsyncSession, order_id: str, now: datetime
    ) -> SettlementIntent | None:
        result = await db.execute(_CLAIM_SQL, {"order_id": order_id, "now": now})
        row = result.fetchone()
        return _row_to_intent(row) if row else None

    async def record_failure(
        self, db: AsyncSession, order_id: str, error: str
    ) -> None:
        await db.execute(_RECORD_FAILURE_SQL, {"order_id": order_id, "error": error[:500]})

    async def list_pending(self, db: AsyncSession, limit: int) -> list[str]:
        result = await db.execute(_LIST_PENDING_SQL, {"limit": limit})
        return [row.order_id for row in result.fetchall()]
