"""Repository Protocol for settlement intents."""

from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_settlement.domain.models import SettlementIntent


class SettlementRepositoryProtocol(Protocol):
    async def insert_intent(
        self, db: AsyncSession, intent: SettlementIntent
    ) -> SettlementIntent | None: ...

    async def get_intent(
        self, db: AsyncSession, order_id: str
    ) -> SettlementIntent | None: ...

    async def claim(
        self, db: AsyncSession, order_id: str, now: datetime
    ) -> SettlementIntent | None: ...

    async def record_failure(
        self, db: AsyncSession, order_id: str, error: str
    ) -> None: ...

    async def list_pending(self, db: AsyncSession, limit: int) -> list[str]: ...
