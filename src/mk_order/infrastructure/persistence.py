"""OrderRepository — raw SQL persistence for marketplace orders.

Status changes are compare-and-set UPDATEs guarded on the current status,
so two writers racing on one order cannot both apply a transition.
"""

from datetime import datetime

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_order.domain.models import Order

_COLUMNS = """
    id, listing_id, buyer_id, seller_id, quantity, unit_price, total_amount,
    platform_fee_bps, status, request_id, buyer_notes, seller_notes,
    cancel_reason, cancelled_by, created_at, confirmed_at, charged_at,
    completed_at, cancelled_at, updated_at
"""

# A concurrent insert with the same (buyer_id, request_id) makes this return no row
_INSERT_SQL = text(f"""
    INSERT INTO orders
        (id, listing_id, buyer_id, seller_id, quantity, unit_price, total_amount,
         platform_fee_bps, status, request_id, buyer_notes)
    VALUES
        (:id, :listing_id, :buyer_id, :seller_id, :quantity, :unit_price, :total_amount,
         :platform_fee_bps, :status, :request_id, :buyer_notes)
    ON CONFLICT (buyer_id, request_id) DO NOTHING
    RETURNING {_COLUMNS}
""")

_GET_SQL = text(f"SELECT {_COLUMNS} FROM orders WHERE id = :order_id")

_GET_BY_REQUEST_ID_SQL = text(f"""
    SELECT {_COLUMNS} FROM orders
    WHERE buyer_id = :buyer_id AND request_id = :request_id
""")

# Confirmation takes the escrow hold in the same transaction, hence charged_at
_MARK_CONFIRMED_SQL = text(f"""
    UPDATE orders
    SET status = 'CONFIRMED',
        confirmed_at = :now,
        charged_at = :now,
        seller_notes = COALESCE(:seller_notes, seller_notes),
        updated_at = NOW()
    WHERE id = :order_id AND status = 'PENDING'
    RETURNING {_COLUMNS}
""")

_MARK_COMPLETED_SQL = text(f"""
    UPDATE orders
    SET status = 'COMPLETED',
        completed_at = :now,
        updated_at = NOW()
    WHERE id = :order_id AND status = 'CONFIRMED'
    RETURNING {_COLUMNS}
""")

_MARK_CANCELLED_SQL = text(f"""
    UPDATE orders
    SET status = 'CANCELLED',
        cancelled_at = :now,
        cancelled_by = :cancelled_by,
        cancel_reason = :reason,
        updated_at = NOW()
    WHERE id = :order_id AND status = :expected_status
    RETURNING {_COLUMNS}
""")

_LIST_AS_BUYER_SQL = text(f"""
    SELECT {_COLUMNS} FROM orders
    WHERE buyer_id = :user_id
      AND (CAST(:status AS TEXT) IS NULL OR status = CAST(:status AS TEXT))
      AND (CAST(:cursor_id AS TEXT) IS NULL OR id < CAST(:cursor_id AS TEXT))
    ORDER BY id DESC
    LIMIT :limit
""")

_LIST_AS_SELLER_SQL = text(f"""
    SELECT {_COLUMNS} FROM orders
    WHERE seller_id = :user_id
      AND (CAST(:status AS TEXT) IS NULL OR status = CAST(:status AS TEXT))
      AND (CAST(:cursor_id AS TEXT) IS NULL OR id < CAST(:cursor_id AS TEXT))
    ORDER BY id DESC
    LIMIT :limit
""")


def _row_to_order(row: object) -> Order:
    return Order(
        id=row.id,  # type: ignore[attr-defined]
        listing_id=row.listing_id,  # type: ignore[attr-defined]
        buyer_id=row.buyer_id,  # type: ignore[attr-defined]
        seller_id=row.seller_id,  # type: ignore[attr-defined]
        quantity=row.quantity,  # type: ignore[attr-defined]
        unit_price=row.unit_price,  # type: ignore[attr-defined]
        total_amount=row.total_amount,  # type: ignore[attr-defined]
        platform_fee_bps=row.platform_fee_bps,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        request_id=row.request_id,  # type: ignore[attr-defined]
        buyer_notes=row.buyer_notes,  # type: ignore[attr-defined]
        seller_notes=row.seller_notes,  # type: ignore[attr-defined]
        cancel_reason=row.cancel_reason,  # type: ignore[attr-defined]
        cancelled_by=row.cancelled_by,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        confirmed_at=row.confirmed_at,  # type: ignore[attr-defined]
        charged_at=row.charged_at,  # type: ignore[attr-defined]
        completed_at=row.completed_at,  # type: ignore[attr-defined]
        cancelled_at=row.cancelled_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


class OrderRepository:
    async def insert(self, db: AsyncSession, order: Order) -> Order | None:
        result = await db.execute(
            _INSERT_SQL,
            {
                "id": order.id,
                "listing_id": order.listing_id,
                "buyer_id": order.buyer_id,
                "seller_id": order.seller_id,
                "quantity": order.quantity,
                "unit_price": order.unit_price,
                "total_amount": order.total_amount,
                "platform_fee_bps": order.platform_fee_bps,
                "status": order.status,
                "request_id": order.request_id,
                "buyer_notes": order.buyer_notes,
            },
        )
        row = result.fetchone()
        return _row_to_order(row) if row else None

    async def get(self, db: AsyncSession, order_id: str) -> Order | None:
        result = await db.execute(_GET_SQL, {"order_id": order_id})
        row = result.fetchone()
        return _row_to_order(row) if row else None

    async def get_by_request_id(
        self, db: AsyncSession, buyer_id: str, request_id: str
    ) -> Order | None:
        result = await db.execute(
            _GET_BY_REQUEST_ID_SQL, {"buyer_id": buyer_id, "request_id": request_id}
        )
        row = result.fetchone()
        return _row_to_order(row) if row else None

    async def mark_confirmed(
        self, db: AsyncSession, order_id: str, now: datetime, seller_notes: str | None
    ) -> Order | None:
        result = await db.execute(
            _MARK_CONFIRMED_SQL,
            {"order_id": order_id, "now": now, "seller_notes": seller_notes},
        )
        row = result.fetchone()
        return _row_to_order(row) if row else None

    async def mark_completed(
        self, db: AsyncSession, order_id: str, now: datetime
    ) -> Order | None:
        result = await db.execute(_MARK_COMPLETED_SQL, {"order_id": order_id, "now": now})
        row = result.fetchone()
        return _row_to_order(row) if row else None

    async def mark_cancelled(
        self,
        db: AsyncSession,
        order_id: str,
        expected_status: str,
        now: datetime,
        cancelled_by: str,
        reason: str | None,
    ) -> Order | None:
        result = await db.execute(
            _MARK_CANCELLED_SQL,
            {
                "order_id": order_id,
                "expected_status": expected_status,
                "now": now,
                "cancelled_by": cancelled_by,
                "reason": reason,
            },
        )
        row = result.fetchone()
        return _row_to_order(row) if row else None

    async def list_for_party(
        self,
        db: AsyncSession,
        role: str,
        user_id: str,
        status: str | None,
        cursor_id: str | None,
        limit: int,
    ) -> list[Order]:
        sql = _LIST_AS_SELLER_SQL if role == "seller" else _LIST_AS_BUYER_SQL
        result = await db.execute(
            sql,
            {"user_id": user_id, "status": status, "cursor_id": cursor_id, "limit": limit},
        )
        return [_row_to_order(row) for row in result.fetchall()]
