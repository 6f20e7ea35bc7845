"""RankingAggregator — recomputes leaderboard snapshots from completed orders.

Recompute reads completed orders without locking them and replaces the
whole snapshot for the period in one transaction, so it is safe to re-run
and readers never see a half-written snapshot.
"""

import logging
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.enums import PeriodType, RankingMetric
from src.mk_common.retry import translate_db_errors, with_store_timeout
from src.mk_ranking.application.schemas import RankingEntryItem, RankingSnapshotResponse
from src.mk_ranking.domain.models import aggregate, period_key, period_window
from src.mk_ranking.domain.repository import RankingRepositoryProtocol
from src.mk_ranking.infrastructure.persistence import RankingRepository

logger = logging.getLogger(__name__)


class RankingAggregator:
    def __init__(self, repo: RankingRepositoryProtocol | None = None) -> None:
        self._repo: RankingRepositoryProtocol = repo or RankingRepository()

    async def recompute_snapshot(
        self, db: AsyncSession, period_type: PeriodType, period_date: date
    ) -> RankingSnapshotResponse:
        period_date = period_key(period_type, period_date)
        start, end = period_window(period_type, period_date)
        try:
            async with translate_db_errors("recompute_snapshot"):
                sales = await with_store_timeout(
                    self._repo.list_completed_sales(db, start, end), "recompute_snapshot"
                )
                entries = aggregate(sales, period_type, period_date)
                await self._repo.replace_snapshot(db, period_type.value, period_date, entries)
                await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info(
            "Ranking snapshot %s/%s recomputed: %d orders, %d entries",
            period_type.value, period_date.isoformat(), len(sales), len(entries),
        )
        return RankingSnapshotResponse(
            period_type=period_type.value,
            period_date=period_date.isoformat(),
            entries=[RankingEntryItem.from_domain(e) for e in entries],
        )

    async def get_snapshot(
        self,
        db: AsyncSession,
        period_type: PeriodType,
        period_date: date,
        metric: RankingMetric | None = None,
    ) -> RankingSnapshotResponse:
        period_date = period_key(period_type, period_date)
        entries = await self._repo.get_snapshot(
            db, period_type.value, period_date, metric.value if metric else None
        )
        return RankingSnapshotResponse(
            period_type=period_type.value,
            period_date=period_date.isoformat(),
            entries=[RankingEntryItem.from_domain(e) for e in entries],
        )
