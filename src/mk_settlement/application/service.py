"""SettlementCoordinator — releases escrow to seller and platform, exactly once.

Two transactions per settlement:
  1. (escrow) session → COMPLETED + `record_intent` write the PENDING intent
  2. `settle`: intent PENDING→APPLIED, order CONFIRMED→COMPLETED,
     listing reserved→sold, escrow → seller (MARKET_SALE) + platform (PLATFORM_FEE)

Step 2 is all-or-nothing. If the process dies between 1 and 2, or step 2
fails, `recover_pending` replays it; a second `settle` on the same order
finds the intent APPLIED and does nothing.
"""

import functools
import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config.settings import settings
from src.mk_common.database import async_session_factory
from src.mk_common.datetime_utils import utc_now
from src.mk_common.enums import WalletTransactionType
from src.mk_common.errors import AppError, InternalError, SettlementNotFoundError
from src.mk_common.locks import order_locks
from src.mk_common.retry import run_with_retry, translate_db_errors, with_store_timeout
from src.mk_listing.application.service import ListingStore
from src.mk_order.domain.models import Order
from src.mk_order.domain.repository import OrderRepositoryProtocol
from src.mk_order.infrastructure.persistence import OrderRepository
from src.mk_settlement.application.schemas import SettlementResponse
from src.mk_settlement.domain.fee import split_settlement
from src.mk_settlement.domain.models import RecoveryReport, SettlementIntent
from src.mk_settlement.domain.repository import SettlementRepositoryProtocol
from src.mk_settlement.infrastructure.persistence import SettlementRepository
from src.mk_wallet.application.service import WalletLedger
from src.mk_wallet.domain.constants import PLATFORM_FEE_USER_ID, escrow_wallet_id

logger = logging.getLogger(__name__)


class SettlementCoordinator:
    def __init__(
        self,
        repo: SettlementRepositoryProtocol | None = None,
        orders: OrderRepositoryProtocol | None = None,
        listings: ListingStore | None = None,
        wallet: WalletLedger | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repo: SettlementRepositoryProtocol = repo or SettlementRepository()
        self._orders: OrderRepositoryProtocol = orders or OrderRepository()
        self._listings = listings or ListingStore(clock=clock)
        self._wallet = wallet or WalletLedger()
        self._clock = clock

    async def record_intent(self, db: AsyncSession, order: Order) -> SettlementIntent:
        """Write the PENDING intent inside the caller's transaction."""
        fee, seller_amount = split_settlement(
            order.total_amount, order.platform_fee_bps, settings.MIN_PLATFORM_FEE_POINTS
        )
        intent = SettlementIntent(
            order_id=order.id,
            buyer_id=order.buyer_id,
            seller_id=order.seller_id,
            listing_id=order.listing_id,
            quantity=order.quantity,
            total_amount=order.total_amount,
            platform_fee=fee,
            seller_amount=seller_amount,
        )
        created = await self._repo.insert_intent(db, intent)
        if created is not None:
            return created
        existing = await self._repo.get_intent(db, order.id)
        if existing is None:
            raise InternalError(f"settlement intent for {order.id} neither inserted nor found")
        return existing

    async def settle(self, db: AsyncSession, order_id: str) -> SettlementResponse:
        async with order_locks.hold(order_id):
            try:
                async with translate_db_errors("settle"):
                    intent, applied = await with_store_timeout(
                        self._apply(db, order_id), "settle"
                    )
                    await db.commit()
            except Exception:
                await db.rollback()
                raise
        if applied:
            logger.info(
                "Settled order %s: seller %s +%d, platform fee %d",
                order_id, intent.seller_id, intent.seller_amount, intent.platform_fee,
            )
        return SettlementResponse.from_intent(intent, applied)

    async def _apply(self, db: AsyncSession, order_id: str) -> tuple[SettlementIntent, bool]:
        intent = await self._repo.get_intent(db, order_id)
        if intent is None:
            raise SettlementNotFoundError(order_id)

        now = self._clock()
        claimed = await self._repo.claim(db, order_id, now)
        if claimed is None:
            return intent, False

        completed = await self._orders.mark_completed(db, order_id, now)
        if completed is None:
            logger.error("Settlement intent for %s found the order not CONFIRMED", order_id)
            raise InternalError(f"order {order_id} is not CONFIRMED; cannot settle")

        await self._listings.commit_sale(db, claimed.listing_id, claimed.quantity)
        await self._wallet.debit(
            db,
            escrow_wallet_id(order_id),
            claimed.total_amount,
            WalletTransactionType.ESCROW_RELEASE,
            related_order_id=order_id,
            note="escrow released on settlement",
        )
        if claimed.seller_amount > 0:
            await self._wallet.credit(
                db,
                claimed.seller_id,
                claimed.seller_amount,
                WalletTransactionType.MARKET_SALE,
                related_order_id=order_id,
                note="sale proceeds",
            )
        if claimed.platform_fee > 0:
            await self._wallet.credit(
                db,
                PLATFORM_FEE_USER_ID,
                claimed.platform_fee,
                WalletTransactionType.PLATFORM_FEE,
                related_order_id=order_id,
                note=f"{completed.platform_fee_bps} bps platform fee",
            )
        return claimed, True

    async def recover_pending(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        limit: int = 100,
    ) -> RecoveryReport:
        """Apply every PENDING intent, each in its own session, with retry."""
        factory = session_factory or async_session_factory
        async with factory() as db:
            pending = await self._repo.list_pending(db, limit)

        report = RecoveryReport()
        for order_id in pending:
            try:
                async with factory() as db:
                    result = await run_with_retry(
                        functools.partial(self.settle, db, order_id),
                        operation=f"settle {order_id}",
                    )
            except AppError as exc:
                logger.error(
                    "Settlement recovery failed for order %s: %s (%s)",
                    order_id, exc.message, exc.kind.value,
                )
                await self._record_failure(factory, order_id, exc.message)
                report.failed += 1
                continue
            except Exception as exc:
                # recorded like any other failure; the pass moves on
                logger.exception("Settlement recovery crashed for order %s", order_id)
                await self._record_failure(
                    factory, order_id, f"{type(exc).__name__}: {exc}"
                )
                report.failed += 1
                continue
            if result.applied:
                report.applied += 1
            else:
                report.skipped += 1

        if pending:
            logger.info(
                "Settlement recovery: %d applied, %d skipped, %d failed",
                report.applied, report.skipped, report.failed,
            )
        return report

    async def _record_failure(
        self, factory: async_sessionmaker[AsyncSession], order_id: str, error: str
    ) -> None:
        async with factory() as db:
            await self._repo.record_failure(db, order_id, error)
            await db.commit()
