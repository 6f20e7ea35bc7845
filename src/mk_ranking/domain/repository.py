"""Repository Protocol for ranking snapshots."""

from datetime import date, datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_ranking.domain.models import CompletedSale, RankingEntry


class RankingRepositoryProtocol(Protocol):
    async def list_completed_sales(
        self, db: AsyncSession, start: datetime, end: datetime
    ) -> list[CompletedSale]: ...

    async def replace_snapshot(
        self,
        db: AsyncSession,
        period_type: str,
        period_date: date,
        entries: list[RankingEntry],
    ) -> None: ...

    async def get_snapshot(
        self,
        db: AsyncSession,
        period_type: str,
        period_date: date,
        metric: str | None = None,
    ) -> list[RankingEntry]: ...
