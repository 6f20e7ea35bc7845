"""006: create ranking_snapshots table

Revision ID: 006
Revises: 005
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "006"
down_revision: Union[str, None] = "005"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE ranking_snapshots (
            period_type     VARCHAR(10)     NOT NULL,
            period_date     DATE            NOT NULL,
            metric          VARCHAR(10)     NOT NULL,
            rank            INT             NOT NULL,
            listing_id      VARCHAR(32)     NOT NULL,
            amount          BIGINT          NOT NULL,
            volume          BIGINT          NOT NULL,
            PRIMARY KEY (period_type, period_date, metric, rank),
            CONSTRAINT ck_ranking_period_type CHECK (period_type IN ('DAILY', 'WEEKLY', 'MONTHLY')),
            CONSTRAINT ck_ranking_metric      CHECK (metric IN ('AMOUNT', 'VOLUME')),
            CONSTRAINT ck_ranking_rank_gt_0   CHECK (rank > 0)
        );
    """)
    op.execute("COMMENT ON TABLE ranking_snapshots IS 'Fully derived leaderboard; replaced wholesale per (period_type, period_date)';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS ranking_snapshots CASCADE;")
