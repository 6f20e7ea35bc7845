"""TradeSessionRepository — raw SQL for trade_sessions and trade_messages.

Confirmations are single compare-and-set UPDATEs. When the second
confirmation lands, the same statement flips the session to COMPLETED, so
of two parties confirming at the same instant exactly one sees the
COMPLETED row come back from its own UPDATE.
"""

from datetime import datetime

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.errors import InternalError
from src.mk_escrow.domain.models import TradeMessage, TradeSession

_SESSION_COLUMNS = """
    order_id, buyer_id, seller_id, status,
    seller_transferred_at, buyer_received_at, seller_notes, buyer_notes,
    deadline_at, completed_at, disputed_at, cancelled_at, created_at, updated_at
"""

_MESSAGE_COLUMNS = """
    id, order_id, sender_role, sender_id, text, attachment_ref, created_at, read_at
"""

# ---------------------------------------------------------------------------
# SQL: sessions
# ---------------------------------------------------------------------------

_INSERT_SESSION_SQL = text(f"""
    INSERT INTO trade_sessions (order_id, buyer_id, seller_id, status, created_at)
    VALUES (:order_id, :buyer_id, :seller_id, :status, :now)
    RETURNING {_SESSION_COLUMNS}
""")

_GET_SESSION_SQL = text(f"""
    SELECT {_SESSION_COLUMNS} FROM trade_sessions WHERE order_id = :order_id
""")

_CONFIRM_SELLER_SQL = text(f"""
    UPDATE trade_sessions
    SET seller_transferred_at = :now,
        seller_notes = COALESCE(:notes, seller_notes),
        status = CASE WHEN buyer_received_at IS NOT NULL
                      THEN 'COMPLETED' ELSE 'AWAITING_BUYER_RECEIPT' END,
        completed_at = CASE WHEN buyer_received_at IS NOT NULL
                            THEN :now ELSE completed_at END,
        deadline_at = CASE WHEN buyer_received_at IS NOT NULL
                           THEN NULL ELSE :deadline END,
        updated_at = NOW()
    WHERE order_id = :order_id
      AND seller_transferred_at IS NULL
      AND status IN ('AWAITING_SELLER_TRANSFER', 'AWAITING_BUYER_RECEIPT')
      AND (deadline_at IS NULL OR deadline_at > :now)
    RETURNING {_SESSION_COLUMNS}
""")

_CONFIRM_BUYER_SQL = text(f"""
    UPDATE trade_sessions
    SET buyer_received_at = :now,
        buyer_notes = COALESCE(:notes, buyer_notes),
        status = CASE WHEN seller_transferred_at IS NOT NULL
                      THEN 'COMPLETED' ELSE 'AWAITING_SELLER_TRANSFER' END,
        completed_at = CASE WHEN seller_transferred_at IS NOT NULL
                            THEN :now ELSE completed_at END,
        deadline_at = CASE WHEN seller_transferred_at IS NOT NULL
                           THEN NULL ELSE :deadline END,
        updated_at = NOW()
    WHERE order_id = :order_id
      AND buyer_received_at IS NULL
      AND status IN ('AWAITING_SELLER_TRANSFER', 'AWAITING_BUYER_RECEIPT')
      AND (deadline_at IS NULL OR deadline_at > :now)
    RETURNING {_SESSION_COLUMNS}
""")

_MARK_DISPUTED_SQL = text(f"""
    UPDATE trade_sessions
    SET status = 'DISPUTED',
        disputed_at = :now,
        updated_at = NOW()
    WHERE order_id = :order_id
      AND status IN ('AWAITING_SELLER_TRANSFER', 'AWAITING_BUYER_RECEIPT')
      AND deadline_at IS NOT NULL
      AND deadline_at <= :now
    RETURNING {_SESSION_COLUMNS}
""")

_DISPUTE_OVERDUE_SQL = text("""
    UPDATE trade_sessions
    SET status = 'DISPUTED',
        disputed_at = :now,
        updated_at = NOW()
    WHERE status IN ('AWAITING_SELLER_TRANSFER', 'AWAITING_BUYER_RECEIPT')
      AND deadline_at IS NOT NULL
      AND deadline_at <= :now
    RETURNING order_id
""")

_MARK_CANCELLED_SQL = text(f"""
    UPDATE trade_sessions
    SET status = 'CANCELLED',
        cancelled_at = :now,
        deadline_at = NULL,
        updated_at = NOW()
    WHERE order_id = :order_id
      AND status IN ('AWAITING_SELLER_TRANSFER', 'AWAITING_BUYER_RECEIPT')
    RETURNING {_SESSION_COLUMNS}
""")

# ---------------------------------------------------------------------------
# SQL: messages
# ---------------------------------------------------------------------------

_INSERT_MESSAGE_SQL = text(f"""
    INSERT INTO trade_messages
        (id, order_id, sender_role, sender_id, text, attachment_ref)
    VALUES
        (:id, :order_id, :sender_role, :sender_id, :text, :attachment_ref)
    RETURNING {_MESSAGE_COLUMNS}
""")

_LIST_MESSAGES_SQL = text(f"""
    SELECT {_MESSAGE_COLUMNS}
    FROM trade_messages
    WHERE order_id = :order_id
      AND (CAST(:after_id AS TEXT) IS NULL OR id > CAST(:after_id AS TEXT))
    ORDER BY id ASC
    LIMIT :limit
""")

_MARK_READ_SQL = text("""
    UPDATE trade_messages
    SET read_at = :now
    WHERE order_id = :order_id
      AND sender_role <> :reader_role
      AND read_at IS NULL
    RETURNING id
""")


def _row_to_session(row: object) -> TradeSession:
    return TradeSession(
        order_id=row.order_id,  # type: ignore[attr-defined]
        buyer_id=row.buyer_id,  # type: ignore[attr-defined]
        seller_id=row.seller_id,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        seller_transferred_at=row.seller_transferred_at,  # type: ignore[attr-defined]
        buyer_received_at=row.buyer_received_at,  # type: ignore[attr-defined]
        seller_notes=row.seller_notes,  # type: ignore[attr-defined]
        buyer_notes=row.buyer_notes,  # type: ignore[attr-defined]
        deadline_at=row.deadline_at,  # type: ignore[attr-defined]
        completed_at=row.completed_at,  # type: ignore[attr-defined]
        disputed_at=row.disputed_at,  # type: ignore[attr-defined]
        cancelled_at=row.cancelled_at,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


def _row_to_message(row: object) -> TradeMessage:
    return TradeMessage(
        id=row.id,  # type: ignore[attr-defined]
        order_id=row.order_id,  # type: ignore[attr-defined]
        sender_role=row.sender_role,  # type: ignore[attr-defined]
        sender_id=row.sender_id,  # type: ignore[attr-defined]
        text=row.text,  # type: ignore[attr-defined]
        attachment_ref=row.attachment_ref,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        read_at=row.read_at,  # type: ignore[attr-defined]
    )


class TradeSessionRepository:
    async def insert_session(
        self, db: AsyncSession, session: TradeSession
    ) -> TradeSession:
        result = await db.execute(
            _INSERT_SESSION_SQL,
            {
                "order_id": session.order_id,
                "buyer_id": session.buyer_id,
                "seller_id": session.seller_id,
                "status": session.status,
                "now": session.created_at,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Trade session insert returned no rows")
        return _row_to_session(row)

    async def get_session(
        self, db: AsyncSession, order_id: str
    ) -> TradeSession | None:
        result = await db.execute(_GET_SESSION_SQL, {"order_id": order_id})
        row = result.fetchone()
        return _row_to_session(row) if row else None

    async def confirm_seller(
        self,
        db: AsyncSession,
        order_id: str,
        now: datetime,
        deadline: datetime,
        notes: str | None,
    ) -> TradeSession | None:
        result = await db.execute(
            _CONFIRM_SELLER_SQL,
            {"order_id": order_id, "now": now, "deadline": deadline, "notes": notes},
        )
        row = result.fetchone()
        return _row_to_session(row) if row else None

    async def confirm_buyer(
        self,
        db: AsyncSession,
        order_id: str,
        now: datetime,
        deadline: datetime,
        notes: str | None,
    ) -> TradeSession | None:
        result = await db.execute(
            _CONFIRM_BUYER_SQL,
            {"order_id": order_id, "now": now, "deadline": deadline, "notes": notes},
        )
        row = result.fetchone()
        return _row_to_session(row) if row else None

    async def mark_disputed(
        self, db: AsyncSession, order_id: str, now: datetime
    ) -> TradeSession | None:
        result = await db.execute(_MARK_DISPUTED_SQL, {"order_id": order_id, "now": now})
        row = result.fetchone()
        return _row_to_session(row) if row else None

    async def dispute_overdue(self, db: AsyncSession, now: datetime) -> list[str]:
        result = await db.execute(_DISPUTE_OVERDUE_SQL, {"now": now})
        return [row.order_id for row in result.fetchall()]

    async def mark_cancelled(
        self, db: AsyncSession, order_id: str, now: datetime
    ) -> TradeSession | None:
        result = await db.execute(_MARK_CANCELLED_SQL, {"order_id": order_id, "now": now})
        row = result.fetchone()
        return _row_to_session(row) if row else None

    async def insert_message(
        self, db: AsyncSession, message: TradeMessage
    ) -> TradeMessage:
        result = await db.execute(
            _INSERT_MESSAGE_SQL,
            {
                "id": message.id,
                "order_id": message.order_id,
                "sender_role": message.sender_role,
                "sender_id": message.sender_id,
                "text": message.text,
                "attachment_ref": message.attachment_ref,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Trade message insert returned no rows")
        return _row_to_message(row)

    async def list_messages(
        self, db: AsyncSession, order_id: str, after_id: str | None, limit: int
    ) -> list[TradeMessage]:
        result = await db.execute(
            _LIST_MESSAGES_SQL,
            {"order_id": order_id, "after_id": after_id, "limit": limit},
        )
        return [_row_to_message(row) for row in result.fetchall()]

    async def mark_read(
        self, db: AsyncSession, order_id: str, reader_role: str, now: datetime
    ) -> int:
        result = await db.execute(
            _MARK_READ_SQL,
            {"order_id": order_id, "reader_role": reader_role, "now": now},
        )
        return len(result.fetchall())
