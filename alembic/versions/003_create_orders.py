"""003: create orders table

Revision ID: 003
Revises: 002
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE orders (
            id                  VARCHAR(32)     PRIMARY KEY,
            listing_id          VARCHAR(32)     NOT NULL REFERENCES listings (id),
            buyer_id            VARCHAR(64)     NOT NULL,
            seller_id           VARCHAR(64)     NOT NULL,
            quantity            INT             NOT NULL,
            unit_price          BIGINT          NOT NULL,
            total_amount        BIGINT          NOT NULL,
            platform_fee_bps    INT             NOT NULL,
            status              VARCHAR(20)     NOT NULL DEFAULT 'PENDING',
            request_id          VARCHAR(64),
            buyer_notes         VARCHAR(500),
            seller_notes        VARCHAR(500),
            cancel_reason       VARCHAR(500),
            cancelled_by        VARCHAR(64),
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            confirmed_at        TIMESTAMPTZ,
            charged_at          TIMESTAMPTZ,
            completed_at        TIMESTAMPTZ,
            cancelled_at        TIMESTAMPTZ,
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_orders_buyer_request_id   UNIQUE (buyer_id, request_id),
            CONSTRAINT ck_orders_quantity           CHECK (quantity > 0),
            CONSTRAINT ck_orders_unit_price         CHECK (unit_price > 0),
            CONSTRAINT ck_orders_total_amount       CHECK (total_amount = quantity * unit_price),
            CONSTRAINT ck_orders_fee_bps            CHECK (platform_fee_bps BETWEEN 0 AND 10000),
            CONSTRAINT ck_orders_no_self_trade      CHECK (buyer_id <> seller_id),
            CONSTRAINT ck_orders_status             CHECK (
                status IN ('PENDING', 'CONFIRMED', 'COMPLETED', 'CANCELLED')
            )
        );
    """)
    op.execute("CREATE INDEX idx_orders_buyer ON orders (buyer_id, id DESC);")
    op.execute("CREATE INDEX idx_orders_seller ON orders (seller_id, id DESC);")
    op.execute("""
        CREATE INDEX idx_orders_completed
        ON orders (completed_at)
        WHERE status = 'COMPLETED';
    """)
    op.execute("""
        CREATE TRIGGER trg_orders_updated_at
            BEFORE UPDATE ON orders
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("COMMENT ON TABLE orders IS 'Buyer claims against listings; price, seller and fee rate frozen at creation';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS orders CASCADE;")
