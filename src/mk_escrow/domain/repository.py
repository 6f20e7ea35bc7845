"""Repository Protocol for trade sessions and their messages."""

from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_escrow.domain.models import TradeMessage, TradeSession


class TradeSessionRepositoryProtocol(Protocol):
    async def insert_session(
        self, db: AsyncSession, session: TradeSession
    ) -> TradeSession: ...

    async def get_session(
        self, db: AsyncSession, order_id: str
    ) -> TradeSession | None: ...

    async def confirm_seller(
        self,
        db: AsyncSession,
        order_id: str,
        now: datetime,
        deadline: datetime,
        notes: str | None,
    ) -> TradeSession | None: ...

    async def confirm_buyer(
        self,
        db: AsyncSession,
        order_id: str,
        now: datetime,
        deadline: datetime,
        notes: str | None,
    ) -> TradeSession | None: ...

    async def mark_disputed(
        self, db: AsyncSession, order_id: str, now: datetime
    ) -> TradeSession | None: ...

    async def dispute_overdue(self, db: AsyncSession, now: datetime) -> list[str]: ...

    async def mark_cancelled(
        self, db: AsyncSession, order_id: str, now: datetime
    ) -> TradeSession | None: ...

    async def insert_message(
        self, db: AsyncSession, message: TradeMessage
    ) -> TradeMessage: ...

    async def list_messages(
        self, db: AsyncSession, order_id: str, after_id: str | None, limit: int
    ) -> list[TradeMessage]: ...

    async def mark_read(
        self, db: AsyncSession, order_id: str, reader_role: str, now: datetime
    ) -> int: ...
