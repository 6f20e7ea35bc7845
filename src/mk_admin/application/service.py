"""Admin application service — privileged operations and maintenance sweeps.

Every entry point re-checks the actor's capability; the router-level
`require_admin` dependency is the first gate, not the only one.
"""

import logging
from datetime import date
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.capabilities import Actor, Operation, authorize
from src.mk_common.enums import PeriodType
from src.mk_escrow.application.service import EscrowTradeSession
from src.mk_listing.application.service import ListingStore
from src.mk_ranking.application.schemas import RankingSnapshotResponse
from src.mk_ranking.application.service import RankingAggregator
from src.mk_settlement.application.schemas import RecoveryResponse
from src.mk_settlement.application.service import SettlementCoordinator
from src.mk_wallet.application.schemas import AdjustmentResponse
from src.mk_wallet.application.service import WalletLedger

logger = logging.getLogger(__name__)


class AdminService:
    def __init__(
        self,
        wallet: WalletLedger | None = None,
        listings: ListingStore | None = None,
        escrow: EscrowTradeSession | None = None,
        settlement: SettlementCoordinator | None = None,
        ranking: RankingAggregator | None = None,
    ) -> None:
        self._wallet = wallet or WalletLedger()
        self._listings = listings or ListingStore()
        self._settlement = settlement or SettlementCoordinator(
            listings=self._listings, wallet=self._wallet
        )
        self._escrow = escrow or EscrowTradeSession(settlement=self._settlement)
        self._ranking = ranking or RankingAggregator()

    async def adjust_balance(
        self, db: AsyncSession, actor: Actor, user_id: str, delta: int, note: str
    ) -> AdjustmentResponse:
        return await self._wallet.admin_adjust(db, actor, user_id, delta, note)

    async def recompute_ranking(
        self, db: AsyncSession, actor: Actor, period_type: PeriodType, period_date: date
    ) -> RankingSnapshotResponse:
        authorize(actor, Operation.RUN_MAINTENANCE)
        return await self._ranking.recompute_snapshot(db, period_type, period_date)

    async def sweep_settlements(self, actor: Actor) -> RecoveryResponse:
        authorize(actor, Operation.RUN_MAINTENANCE)
        report = await self._settlement.recover_pending()
        return RecoveryResponse.from_report(report)

    async def sweep_disputes(self, db: AsyncSession, actor: Actor) -> dict[str, int]:
        authorize(actor, Operation.RUN_MAINTENANCE)
        return {"disputed": await self._escrow.mark_overdue_disputed(db)}

    async def sweep_listings(self, db: AsyncSession, actor: Actor) -> dict[str, int]:
        authorize(actor, Operation.RUN_MAINTENANCE)
        return {"expired": await self._listings.expire_listings(db)}

    async def rebuild_balances(self, db: AsyncSession, actor: Actor) -> dict[str, int]:
        authorize(actor, Operation.RUN_MAINTENANCE)
        return {"rebuilt": await self._wallet.rebuild_balances(db)}

    async def verify_invariants(self, db: AsyncSession, actor: Actor) -> dict[str, Any]:
        """Ledger checks plus listing overcommit; `ok` is False on any violation."""
        authorize(actor, Operation.RUN_MAINTENANCE)
        violations = await self._wallet.verify(db)
        for listing_id in await self._listings.find_overcommitted(db):
            violation = f"listing {listing_id}: reserved + sold exceeds total quantity"
            logger.error("Listing invariant violated: %s", violation)
            violations.append(violation)
        return {"ok": not violations, "violations": violations}
