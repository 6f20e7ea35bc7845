"""001: create wallet tables and the shared updated_at trigger function

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE OR REPLACE FUNCTION fn_update_timestamp()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TABLE wallet_accounts (
            user_id         VARCHAR(64)     PRIMARY KEY,
            balance         BIGINT          NOT NULL DEFAULT 0,
            version         BIGINT          NOT NULL DEFAULT 0,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_wallet_accounts_balance_gte_0 CHECK (balance >= 0)
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_wallet_accounts_updated_at
            BEFORE UPDATE ON wallet_accounts
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("""
        CREATE TABLE wallet_transactions (
            id                  BIGSERIAL       PRIMARY KEY,
            user_id             VARCHAR(64)     NOT NULL REFERENCES wallet_accounts (user_id),
            delta               BIGINT          NOT NULL,
            balance_after       BIGINT          NOT NULL,
            tx_type             VARCHAR(20)     NOT NULL,
            related_order_id    VARCHAR(32),
            note                VARCHAR(200),
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_wallet_tx_delta_non_zero      CHECK (delta <> 0),
            CONSTRAINT ck_wallet_tx_balance_after_gte_0 CHECK (balance_after >= 0),
            CONSTRAINT ck_wallet_tx_type CHECK (
                tx_type IN ('ESCROW_HOLD', 'ESCROW_RELEASE', 'MARKET_SALE',
                            'PLATFORM_FEE', 'REFUND', 'ADMIN_ADJUSTMENT')
            )
        );
    """)
    op.execute("CREATE INDEX idx_wallet_tx_user ON wallet_transactions (user_id, id DESC);")
    op.execute("""
        CREATE INDEX idx_wallet_tx_order
        ON wallet_transactions (related_order_id)
        WHERE related_order_id IS NOT NULL;
    """)
    op.execute("COMMENT ON TABLE wallet_transactions IS 'Append-only point ledger; wallet_accounts.balance is its projection';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS wallet_transactions CASCADE;")
    op.execute("DROP TABLE IF EXISTS wallet_accounts CASCADE;")
    op.execute("DROP FUNCTION IF EXISTS fn_update_timestamp();")
