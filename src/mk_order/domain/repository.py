"""Repository Protocol for orders.

Every status change is a compare-and-set on the current status: the `mark_*`
methods return None when the order was no longer in the expected state.
"""

from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_order.domain.models import Order


class OrderRepositoryProtocol(Protocol):
    async def insert(self, db: AsyncSession, order: Order) -> Order | None: ...

    async def get(self, db: AsyncSession, order_id: str) -> Order | None: ...

    async def get_by_request_id(
        self, db: AsyncSession, buyer_id: str, request_id: str
    ) -> Order | None: ...

    async def mark_confirmed(
        self, db: AsyncSession, order_id: str, now: datetime, seller_notes: str | None
    ) -> Order | None: ...

    async def mark_completed(
        self, db: AsyncSession, order_id: str, now: datetime
    ) -> Order | None: ...

    async def mark_cancelled(
        self,
        db: AsyncSession,
        order_id: str,
        expected_status: str,
        now: datetime,
        cancelled_by: str,
        reason: str | None,
    ) -> Order | None: ...

    async def list_for_party(
        self,
        db: AsyncSession,
        role: str,
        user_id: str,
        status: str | None,
        cursor_id: str | None,
        limit: int,
    ) -> list[Order]: ...
