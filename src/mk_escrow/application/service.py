"""EscrowTradeSession — per-order confirmation protocol gating settlement.

Either party may confirm first. The confirmation that completes the session
writes the settlement intent in the same transaction; settlement itself
then runs in a second transaction through SettlementCoordinator.settle,
which applies the intent at most once no matter how many confirmations,
retries or sweeps reach it.

Each confirmation gives the counter-party ESCROW_TIMEOUT_HOURS to confirm.
A confirmation arriving after that deadline moves the session to DISPUTED
and is rejected; disputed sessions are never settled automatically.
"""

import functools
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.mk_common.capabilities import Actor, Operation, Subject, authorize
from src.mk_common.datetime_utils import utc_now
from src.mk_common.enums import OrderStatus, SenderRole, TradeSessionStatus
from src.mk_common.errors import (
    InvalidStateTransitionError,
    OrderNotFoundError,
    TradeSessionNotFoundError,
    ValidationError,
)
from src.mk_common.id_generator import generate_id
from src.mk_common.pagination import MAX_PAGE_SIZE, cursor_decode, cursor_encode, split_page
from src.mk_common.retry import run_with_retry, translate_db_errors, with_store_timeout
from src.mk_escrow.application.schemas import (
    MarkReadResponse,
    TradeMessageItem,
    TradeMessageListResponse,
    TradeSessionDetail,
)
from src.mk_escrow.domain.models import (
    MAX_ATTACHMENT_REF_LENGTH,
    MAX_MESSAGE_LENGTH,
    TradeMessage,
    TradeSession,
)
from src.mk_escrow.domain.repository import TradeSessionRepositoryProtocol
from src.mk_escrow.infrastructure.persistence import TradeSessionRepository
from src.mk_order.domain.models import Order
from src.mk_order.domain.repository import OrderRepositoryProtocol
from src.mk_order.infrastructure.persistence import OrderRepository
from src.mk_settlement.application.service import SettlementCoordinator

logger = logging.getLogger(__name__)

_CONFIRM_OPERATIONS = {
    SenderRole.SELLER: (Operation.CONFIRM_SELLER_TRANSFERRED, "SELLER_TRANSFERRED"),
    SenderRole.BUYER: (Operation.CONFIRM_BUYER_RECEIVED, "BUYER_RECEIVED"),
}


def _subject(order: Order) -> Subject:
    return Subject(buyer_id=order.buyer_id, seller_id=order.seller_id)


class EscrowTradeSession:
    def __init__(
        self,
        repo: TradeSessionRepositoryProtocol | None = None,
        orders: OrderRepositoryProtocol | None = None,
        settlement: SettlementCoordinator | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repo: TradeSessionRepositoryProtocol = repo or TradeSessionRepository()
        self._orders: OrderRepositoryProtocol = orders or OrderRepository()
        self._settlement = settlement or SettlementCoordinator(orders=self._orders, clock=clock)
        self._clock = clock

    # ------------------------------------------------------------------
    # Called by OrderEngine inside its transaction
    # ------------------------------------------------------------------

    async def open_session(
        self, db: AsyncSession, order: Order, now: datetime
    ) -> TradeSession:
        return await self._repo.insert_session(
            db,
            TradeSession(
                order_id=order.id,
                buyer_id=order.buyer_id,
                seller_id=order.seller_id,
                status=TradeSessionStatus.AWAITING_SELLER_TRANSFER.value,
                created_at=now,
            ),
        )

    async def close_for_cancellation(
        self, db: AsyncSession, order_id: str, now: datetime
    ) -> TradeSession:
        closed = await self._repo.mark_cancelled(db, order_id, now)
        if closed is not None:
            return closed
        session = await self._repo.get_session(db, order_id)
        if session is None:
            raise TradeSessionNotFoundError(order_id)
        if session.status == TradeSessionStatus.CANCELLED:
            return session
        # COMPLETED is settling; DISPUTED awaits external resolution
        raise InvalidStateTransitionError(
            "TradeSession", session.status, TradeSessionStatus.CANCELLED.value
        )

    # ------------------------------------------------------------------
    # Confirmations
    # ------------------------------------------------------------------

    async def confirm_seller_transferred(
        self, db: AsyncSession, actor: Actor, order_id: str, notes: str | None = None
    ) -> TradeSessionDetail:
        return await self._confirm(db, actor, order_id, SenderRole.SELLER, notes)

    async def confirm_buyer_received(
        self, db: AsyncSession, actor: Actor, order_id: str, notes: str | None = None
    ) -> TradeSessionDetail:
        return await self._confirm(db, actor, order_id, SenderRole.BUYER, notes)

    async def _confirm(
        self,
        db: AsyncSession,
        actor: Actor,
        order_id: str,
        role: SenderRole,
        notes: str | None,
    ) -> TradeSessionDetail:
        operation, target = _CONFIRM_OPERATIONS[role]
        order = await self._get_order(db, order_id)
        authorize(actor, operation, _subject(order))
        if order.status not in (OrderStatus.CONFIRMED, OrderStatus.COMPLETED):
            raise InvalidStateTransitionError("Order", order.status, target)

        try:
            async with translate_db_errors("confirm_trade"):
                session, completed_now, disputed = await with_store_timeout(
                    self._apply_confirmation(db, order, role, notes), "confirm_trade"
                )
                await db.commit()
        except Exception:
            await db.rollback()
            raise

        if disputed:
            logger.warning(
                "Late %s confirmation on order %s; session marked DISPUTED", role.value, order_id
            )
            raise InvalidStateTransitionError("TradeSession", session.status, target)

        if completed_now:
            logger.info("Trade session %s completed; settling", order_id)
        if session.status == TradeSessionStatus.COMPLETED and (
            completed_now or order.status == OrderStatus.CONFIRMED
        ):
            await run_with_retry(
                functools.partial(self._settlement.settle, db, order_id),
                operation=f"settle {order_id}",
            )
        return TradeSessionDetail.from_domain(session)

    async def _apply_confirmation(
        self,
        db: AsyncSession,
        order: Order,
        role: SenderRole,
        notes: str | None,
    ) -> tuple[TradeSession, bool, bool]:
        """Returns (session, completed_by_this_call, disputed_by_this_call)."""
        now = self._clock()
        deadline = now + timedelta(hours=settings.ESCROW_TIMEOUT_HOURS)
        if role is SenderRole.SELLER:
            updated = await self._repo.confirm_seller(db, order.id, now, deadline, notes)
        else:
            updated = await self._repo.confirm_buyer(db, order.id, now, deadline, notes)

        if updated is not None:
            if updated.status == TradeSessionStatus.COMPLETED:
                await self._settlement.record_intent(db, order)
                return updated, True, False
            return updated, False, False

        session = await self._repo.get_session(db, order.id)
        if session is None:
            raise TradeSessionNotFoundError(order.id)
        already = (
            session.seller_transferred_at if role is SenderRole.SELLER
            else session.buyer_received_at
        )
        if already is not None and session.status != TradeSessionStatus.CANCELLED:
            return session, False, False
        if session.is_overdue(now):
            disputed = await self._repo.mark_disputed(db, order.id, now)
            return disputed or session, False, True
        _, target = _CONFIRM_OPERATIONS[role]
        raise InvalidStateTransitionError("TradeSession", session.status, target)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def post_message(
        self,
        db: AsyncSession,
        actor: Actor,
        order_id: str,
        text: str,
        attachment_ref: str | None = None,
    ) -> TradeMessageItem:
        if not text or not text.strip() or len(text) > MAX_MESSAGE_LENGTH:
            raise ValidationError(f"text must be 1..{MAX_MESSAGE_LENGTH} characters")
        if attachment_ref is not None and len(attachment_ref) > MAX_ATTACHMENT_REF_LENGTH:
            raise ValidationError(
                f"attachment_ref exceeds {MAX_ATTACHMENT_REF_LENGTH} characters"
            )
        order = await self._get_order(db, order_id)
        authorize(actor, Operation.POST_TRADE_MESSAGE, _subject(order))
        session = await self._get_session(db, order_id)
        if session.status in (TradeSessionStatus.COMPLETED, TradeSessionStatus.CANCELLED):
            raise InvalidStateTransitionError("TradeSession", session.status, "MESSAGE")

        role = SenderRole.SELLER if actor.user_id == order.seller_id else SenderRole.BUYER
        message = TradeMessage(
            id=generate_id(),
            order_id=order_id,
            sender_role=role.value,
            sender_id=actor.user_id,
            text=text,
            attachment_ref=attachment_ref,
        )
        try:
            created = await with_store_timeout(
                self._repo.insert_message(db, message), "post_message"
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return TradeMessageItem.from_domain(created)

    async def list_messages(
        self,
        db: AsyncSession,
        actor: Actor,
        order_id: str,
        cursor: str | None,
        limit: int,
    ) -> TradeMessageListResponse:
        order = await self._get_order(db, order_id)
        authorize(actor, Operation.VIEW_TRADE_SESSION, _subject(order))
        after_id = cursor_decode(cursor)
        rows = await self._repo.list_messages(
            db, order_id, after_id if isinstance(after_id, str) else None, limit + 1
        )
        page, has_more = split_page(rows, limit)
        return TradeMessageListResponse(
            items=[TradeMessageItem.from_domain(m) for m in page],
            next_cursor=cursor_encode(page[-1].id) if has_more and page else None,
            has_more=has_more,
        )

    async def mark_messages_read(
        self, db: AsyncSession, actor: Actor, order_id: str
    ) -> MarkReadResponse:
        order = await self._get_order(db, order_id)
        authorize(actor, Operation.POST_TRADE_MESSAGE, _subject(order))
        role = SenderRole.SELLER if actor.user_id == order.seller_id else SenderRole.BUYER
        try:
            marked = await self._repo.mark_read(db, order_id, role.value, self._clock())
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return MarkReadResponse(order_id=order_id, marked=marked)

    # ------------------------------------------------------------------
    # Reads and sweeps
    # ------------------------------------------------------------------

    async def get_session(
        self, db: AsyncSession, actor: Actor, order_id: str
    ) -> TradeSessionDetail:
        order = await self._get_order(db, order_id)
        authorize(actor, Operation.VIEW_TRADE_SESSION, _subject(order))
        session = await self._get_session(db, order_id)
        session.messages = await self._repo.list_messages(db, order_id, None, MAX_PAGE_SIZE)
        return TradeSessionDetail.from_domain(session)

    async def mark_overdue_disputed(
        self, db: AsyncSession, now: datetime | None = None
    ) -> int:
        """Sweep: open sessions past their counter-confirmation deadline → DISPUTED."""
        try:
            disputed = await self._repo.dispute_overdue(db, now or self._clock())
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        for order_id in disputed:
            logger.warning("Trade session %s disputed: counter-confirmation overdue", order_id)
        return len(disputed)

    async def _get_order(self, db: AsyncSession, order_id: str) -> Order:
        order = await self._orders.get(db, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def _get_session(self, db: AsyncSession, order_id: str) -> TradeSession:
        session = await self._repo.get_session(db, order_id)
        if session is None:
            raise TradeSessionNotFoundError(order_id)
        return session
