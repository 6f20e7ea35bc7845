"""002: create listings table

Revision ID: 002
Revises: 001
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE listings (
            id                  VARCHAR(32)     PRIMARY KEY,
            seller_id           VARCHAR(64)     NOT NULL,
            title               VARCHAR(100)    NOT NULL,
            description         VARCHAR(1000),
            unit_price          BIGINT          NOT NULL,
            total_quantity      INT             NOT NULL,
            reserved_quantity   INT             NOT NULL DEFAULT 0,
            sold_quantity       INT             NOT NULL DEFAULT 0,
            status              VARCHAR(20)     NOT NULL DEFAULT 'ACTIVE',
            image_url           VARCHAR(200),
            is_negotiable       BOOLEAN         NOT NULL DEFAULT FALSE,
            expires_at          TIMESTAMPTZ,
            sold_out_at         TIMESTAMPTZ,
            removed_at          TIMESTAMPTZ,
            version             BIGINT          NOT NULL DEFAULT 0,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_listings_unit_price_gt_0    CHECK (unit_price > 0),
            CONSTRAINT ck_listings_total_quantity     CHECK (total_quantity > 0),
            CONSTRAINT ck_listings_reserved_gte_0     CHECK (reserved_quantity >= 0),
            CONSTRAINT ck_listings_sold_gte_0         CHECK (sold_quantity >= 0),
            CONSTRAINT ck_listings_no_overcommit      CHECK (
                reserved_quantity + sold_quantity <= total_quantity
            ),
            CONSTRAINT ck_listings_status             CHECK (
                status IN ('ACTIVE', 'SOLD_OUT', 'EXPIRED', 'REMOVED')
            )
        );
    """)
    op.execute("CREATE INDEX idx_listings_status ON listings (status, id DESC);")
    op.execute("CREATE INDEX idx_listings_seller ON listings (seller_id, id DESC);")
    op.execute("""
        CREATE INDEX idx_listings_expiry
        ON listings (expires_at)
        WHERE status IN ('ACTIVE', 'SOLD_OUT') AND expires_at IS NOT NULL;
    """)
    op.execute("""
        CREATE TRIGGER trg_listings_updated_at
            BEFORE UPDATE ON listings
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS listings CASCADE;")
