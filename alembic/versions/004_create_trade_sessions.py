"""004: create trade_sessions and trade_messages tables

Revision ID: 004
Revises: 003
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE trade_sessions (
            order_id                VARCHAR(32)     PRIMARY KEY REFERENCES orders (id),
            buyer_id                VARCHAR(64)     NOT NULL,
            seller_id               VARCHAR(64)     NOT NULL,
            status                  VARCHAR(30)     NOT NULL DEFAULT 'AWAITING_SELLER_TRANSFER',
            seller_transferred_at   TIMESTAMPTZ,
            buyer_received_at       TIMESTAMPTZ,
            seller_notes            VARCHAR(500),
            buyer_notes             VARCHAR(500),
            deadline_at             TIMESTAMPTZ,
            completed_at            TIMESTAMPTZ,
            disputed_at             TIMESTAMPTZ,
            cancelled_at            TIMESTAMPTZ,
            created_at              TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at              TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_trade_sessions_status CHECK (
                status IN ('AWAITING_SELLER_TRANSFER', 'AWAITING_BUYER_RECEIPT',
                           'COMPLETED', 'DISPUTED', 'CANCELLED')
            ),
            CONSTRAINT ck_trade_sessions_completed_iff_both CHECK (
                (status = 'COMPLETED') = (seller_transferred_at IS NOT NULL
                                          AND buyer_received_at IS NOT NULL)
            )
        );
    """)
    op.execute("""
        CREATE INDEX idx_trade_sessions_deadline
        ON trade_sessions (deadline_at)
        WHERE status IN ('AWAITING_SELLER_TRANSFER', 'AWAITING_BUYER_RECEIPT');
    """)
    op.execute("""
        CREATE TRIGGER trg_trade_sessions_updated_at
            BEFORE UPDATE ON trade_sessions
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("""
        CREATE TABLE trade_messages (
            id              VARCHAR(32)     PRIMARY KEY,
            order_id        VARCHAR(32)     NOT NULL REFERENCES trade_sessions (order_id),
            sender_role     VARCHAR(10)     NOT NULL,
            sender_id       VARCHAR(64)     NOT NULL,
            text            VARCHAR(1000)   NOT NULL,
            attachment_ref  VARCHAR(500),
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            read_at         TIMESTAMPTZ,
            CONSTRAINT ck_trade_messages_role CHECK (sender_role IN ('BUYER', 'SELLER'))
        );
    """)
    op.execute("CREATE INDEX idx_trade_messages_order ON trade_messages (order_id, id);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS trade_messages CASCADE;")
    op.execute("DROP TABLE IF EXISTS trade_sessions CASCADE;")
