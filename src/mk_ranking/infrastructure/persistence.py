"""RankingRepository — reads completed orders, swaps snapshot rows wholesale."""

from datetime import date, datetime

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_ranking.domain.models import CompletedSale, RankingEntry

# Plain read: completed orders are immutable, no locks taken
_COMPLETED_SALES_SQL = text("""
    SELECT id, listing_id, quantity, total_amount
    FROM orders
    WHERE status = 'COMPLETED'
      AND completed_at >= :start AND completed_at < :end
    ORDER BY id ASC
""")

_DELETE_SNAPSHOT_SQL = text("""
    DELETE FROM ranking_snapshots
    WHERE period_type = :period_type AND period_date = :period_date
""")

_INSERT_ENTRY_SQL = text("""
    INSERT INTO ranking_snapshots
        (period_type, period_date, metric, rank, listing_id, amount, volume)
    VALUES
        (:period_type, :period_date, :metric, :rank, :listing_id, :amount, :volume)
""")

_GET_SNAPSHOT_SQL = text("""
    SELECT period_type, period_date, metric, rank, listing_id, amount, volume
    FROM ranking_snapshots
    WHERE period_type = :period_type
      AND period_date = :period_date
      AND (CAST(:metric AS TEXT) IS NULL OR metric = :metric)
    ORDER BY metric ASC, rank ASC
""")


def _row_to_entry(row: object) -> RankingEntry:
    return RankingEntry(
        period_type=row.period_type,  # type: ignore[attr-defined]
        period_date=row.period_date,  # type: ignore[attr-defined]
        metric=row.metric,  # type: ignore[attr-defined]
        rank=row.rank,  # type: ignore[attr-defined]
        listing_id=row.listing_id,  # type: ignore[attr-defined]
        amount=row.amount,  # type: ignore[attr-defined]
        volume=row.volume,  # type: ignore[attr-defined]
    )


class RankingRepository:
    async def list_completed_sales(
        self, db: AsyncSession, start: datetime, end: datetime
    ) -> list[CompletedSale]:
        result = await db.execute(_COMPLETED_SALES_SQL, {"start": start, "end": end})
        return [
            CompletedSale(
                order_id=row.id,
                listing_id=row.listing_id,
                quantity=row.quantity,
                total_amount=row.total_amount,
            )
            for row in result.fetchall()
        ]

    async def replace_snapshot(
        self,
        db: AsyncSession,
        period_type: str,
        period_date: date,
        entries: list[RankingEntry],
    ) -> None:
        await db.execute(
            _DELETE_SNAPSHOT_SQL, {"period_type": period_type, "period_date": period_date}
        )
        if entries:
            await db.execute(
                _INSERT_ENTRY_SQL,
                [
                    {
                        "period_type": e.period_type,
                        "period_date": e.period_date,
                        "metric": e.metric,
                        "rank": e.rank,
                        "listing_id": e.listing_id,
                        "amount": e.amount,
                        "volume": e.volume,
                    }
                    for e in entries
                ],
            )

    async def get_snapshot(
        self,
        db: AsyncSession,
        period_type: str,
        period_date: date,
        metric: str | None = None,
    ) -> list[RankingEntry]:
        result = await db.execute(
            _GET_SNAPSHOT_SQL,
            {"period_type": period_type, "period_date": period_date, "metric": metric},
        )
        return [_row_to_entry(row) for row in result.fetchall()]
