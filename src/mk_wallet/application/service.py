"""WalletLedger — the only component that mutates point balances.

`debit`, `credit` and `transfer` run inside the caller's transaction so a
balance move commits atomically with the order/settlement state it belongs
to. `admin_adjust` and `rebuild_balances` own their transaction.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.capabilities import Actor, Operation, authorize
from src.mk_common.enums import WalletTransactionType
from src.mk_common.errors import ValidationError
from src.mk_common.pagination import cursor_decode, cursor_encode, split_page
from src.mk_common.retry import translate_db_errors, with_store_timeout
from src.mk_wallet.application.schemas import (
    AdjustmentResponse,
    BalanceResponse,
    WalletHistoryResponse,
    WalletTransactionItem,
)
from src.mk_wallet.domain.constants import is_system_wallet
from src.mk_wallet.domain.models import ProjectionMismatch, WalletTransaction
from src.mk_wallet.domain.repository import WalletRepositoryProtocol
from src.mk_wallet.infrastructure.persistence import WalletRepository

logger = logging.getLogger(__name__)


def _require_positive(amount: int) -> None:
    if amount <= 0:
        raise ValidationError(f"amount must be positive, got {amount}")


class WalletLedger:
    def __init__(self, repo: WalletRepositoryProtocol | None = None) -> None:
        self._repo: WalletRepositoryProtocol = repo or WalletRepository()

    # ------------------------------------------------------------------
    # In-transaction mutations (caller commits)
    # ------------------------------------------------------------------

    async def debit(
        self,
        db: AsyncSession,
        user_id: str,
        amount: int,
        tx_type: WalletTransactionType,
        related_order_id: str | None = None,
        note: str | None = None,
    ) -> WalletTransaction:
        """Fails closed with InsufficientBalanceError; never goes negative."""
        _require_positive(amount)
        return await self._repo.debit(
            db, user_id, amount, tx_type.value, related_order_id, note
        )

    async def credit(
        self,
        db: AsyncSession,
        user_id: str,
        amount: int,
        tx_type: WalletTransactionType,
        related_order_id: str | None = None,
        note: str | None = None,
    ) -> WalletTransaction:
        _require_positive(amount)
        return await self._repo.credit(
            db, user_id, amount, tx_type.value, related_order_id, note
        )

    async def transfer(
        self,
        db: AsyncSession,
        from_user_id: str,
        to_user_id: str,
        amount: int,
        debit_type: WalletTransactionType,
        credit_type: WalletTransactionType,
        related_order_id: str | None = None,
        note: str | None = None,
    ) -> tuple[WalletTransaction, WalletTransaction]:
        # Debit first: a failed debit leaves nothing to undo
        out_tx = await self.debit(db, from_user_id, amount, debit_type, related_order_id, note)
        in_tx = await self.credit(db, to_user_id, amount, credit_type, related_order_id, note)
        return out_tx, in_tx

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_balance(self, db: AsyncSession, user_id: str) -> BalanceResponse:
        account = await self._repo.get_account(db, user_id)
        # No wallet row yet means nothing was ever credited
        return BalanceResponse(user_id=user_id, balance=account.balance if account else 0)

    async def get_history(
        self,
        db: AsyncSession,
        user_id: str,
        cursor: str | None,
        limit: int,
        tx_type: str | None = None,
        related_order_id: str | None = None,
    ) -> WalletHistoryResponse:
        cursor_id = cursor_decode(cursor)
        if not isinstance(cursor_id, int):
            cursor_id = None
        rows = await self._repo.list_transactions(
            db, user_id, cursor_id, limit + 1, tx_type, related_order_id
        )
        page, has_more = split_page(rows, limit)
        return WalletHistoryResponse(
            items=[WalletTransactionItem.from_domain(tx) for tx in page],
            next_cursor=cursor_encode(page[-1].id) if has_more and page else None,
            has_more=has_more,
        )

    # ------------------------------------------------------------------
    # Privileged operations (own their transaction)
    # ------------------------------------------------------------------

    async def admin_adjust(
        self,
        db: AsyncSession,
        actor: Actor,
        user_id: str,
        delta: int,
        note: str,
    ) -> AdjustmentResponse:
        authorize(actor, Operation.ADMIN_ADJUST_BALANCE)
        if delta == 0:
            raise ValidationError("delta must be non-zero")
        if is_system_wallet(user_id):
            raise ValidationError(f"system wallet {user_id} cannot be adjusted")
        try:
            async with translate_db_errors("admin_adjust"):
                if delta > 0:
                    tx = await with_store_timeout(
                        self.credit(
                            db, user_id, delta, WalletTransactionType.ADMIN_ADJUSTMENT,
                            note=note,
                        ),
                        "admin_adjust",
                    )
                else:
                    tx = await with_store_timeout(
                        self.debit(
                            db, user_id, -delta, WalletTransactionType.ADMIN_ADJUSTMENT,
                            note=note,
                        ),
                        "admin_adjust",
                    )
                await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info(
            "Admin %s adjusted wallet %s by %+d (balance=%d)",
            actor.user_id, user_id, delta, tx.balance_after,
        )
        return AdjustmentResponse(
            user_id=user_id, delta=delta, balance=tx.balance_after, transaction_id=tx.id
        )

    async def rebuild_balances(self, db: AsyncSession) -> int:
        """Recompute every cached balance from the transaction log."""
        try:
            changed = await self._repo.rebuild_balances(db)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        if changed:
            logger.warning("Rebuilt %d wallet balance(s) from the transaction log", changed)
        return changed

    async def verify(self, db: AsyncSession) -> list[str]:
        """Return human-readable ledger violations; empty when consistent."""
        violations: list[str] = []
        mismatches: list[ProjectionMismatch] = await self._repo.find_projection_mismatches(db)
        for m in mismatches:
            violations.append(
                f"wallet {m.user_id}: cached balance {m.cached_balance} "
                f"!= ledger sum {m.ledger_balance}"
            )
        for user_id in await self._repo.find_negative_balances(db):
            violations.append(f"wallet {user_id}: negative balance")
        total = await self._repo.sum_balances(db)
        adjustments = await self._repo.sum_adjustments(db)
        if total != adjustments:
            violations.append(
                f"zero-sum violated: sum(balances)={total} != sum(adjustments)={adjustments}"
            )
        for v in violations:
            logger.error("Ledger invariant violated: %s", v)
        return violations
