"""Repository Protocol — dependency inversion for testability.

Unit tests inject an in-memory double that conforms to this Protocol.
Infrastructure layer provides the real implementation.
"""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_wallet.domain.models import ProjectionMismatch, WalletAccount, WalletTransaction


class WalletRepositoryProtocol(Protocol):
    async def get_account(
        self, db: AsyncSession, user_id: str
    ) -> WalletAccount | None: ...

    async def debit(
        self,
        db: AsyncSession,
        user_id: str,
        amount: int,
        tx_type: str,
        related_order_id: str | None,
        note: str | None,
    ) -> WalletTransaction: ...

    async def credit(
        self,
        db: AsyncSession,
        user_id: str,
        amount: int,
        tx_type: str,
        related_order_id: str | None,
        note: str | None,
    ) -> WalletTransaction: ...

    async def list_transactions(
        self,
        db: AsyncSession,
        user_id: str,
        cursor_id: int | None,
        limit: int,
        tx_type: str | None,
        related_order_id: str | None,
    ) -> list[WalletTransaction]: ...

    async def find_projection_mismatches(
        self, db: AsyncSession
    ) -> list[ProjectionMismatch]: ...

    async def find_negative_balances(self, db: AsyncSession) -> list[str]: ...

    async def rebuild_balances(self, db: AsyncSession) -> int: ...

    async def sum_balances(self, db: AsyncSession) -> int: ...

    async def sum_adjustments(self, db: AsyncSession) -> int: ...
