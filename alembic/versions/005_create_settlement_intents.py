"""005: create settlement_intents table

Revision ID: 005
Revises: 004
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "005"
down_revision: Union[str, None] = "004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE settlement_intents (
            order_id        VARCHAR(32)     PRIMARY KEY REFERENCES orders (id),
            buyer_id        VARCHAR(64)     NOT NULL,
            seller_id       VARCHAR(64)     NOT NULL,
            listing_id      VARCHAR(32)     NOT NULL,
            quantity        INT             NOT NULL,
            total_amount    BIGINT          NOT NULL,
            platform_fee    BIGINT          NOT NULL,
            seller_amount   BIGINT          NOT NULL,
            status          VARCHAR(10)     NOT NULL DEFAULT 'PENDING',
            attempts        INT             NOT NULL DEFAULT 0,
            last_error      TEXT,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            applied_at      TIMESTAMPTZ,
            CONSTRAINT ck_settlement_split    CHECK (
                platform_fee >= 0 AND seller_amount >= 0
                AND platform_fee + seller_amount = total_amount
            ),
            CONSTRAINT ck_settlement_status   CHECK (status IN ('PENDING', 'APPLIED'))
        );
    """)
    op.execute("""
        CREATE INDEX idx_settlement_pending
        ON settlement_intents (created_at, order_id)
        WHERE status = 'PENDING';
    """)
    op.execute("COMMENT ON TABLE settlement_intents IS 'Durable settlement record written before any wallet mutation; replayed by the recovery sweep';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS settlement_intents CASCADE;")
