"""OrderEngine — order creation against a listing and the order state machine.

Each write runs in one transaction on the request's session:
  - create_order:  balance pre-check → reserve listing quantity → insert PENDING
  - confirm_order: PENDING→CONFIRMED + escrow hold (buyer → escrow wallet) + open session
  - cancel_order:  close session → PENDING/CONFIRMED→CANCELLED + release quantity
                   + refund the escrow hold if one was taken

Confirm and cancel also take the in-process order lock; the status
compare-and-set in SQL is what protects against other processes.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.mk_common.capabilities import Actor, Operation, Subject, authorize
from src.mk_common.datetime_utils import utc_now
from src.mk_common.enums import ListingStatus, OrderStatus, WalletTransactionType
from src.mk_common.errors import (
    ConflictError,
    DuplicateRequestError,
    InsufficientBalanceError,
    InvalidStateTransitionError,
    ListingNotActiveError,
    OrderNotFoundError,
    SelfTradeForbiddenError,
    ValidationError,
)
from src.mk_common.id_generator import generate_id
from src.mk_common.locks import order_locks
from src.mk_common.pagination import cursor_decode, cursor_encode, split_page
from src.mk_common.retry import translate_db_errors, with_store_timeout
from src.mk_escrow.application.service import EscrowTradeSession
from src.mk_listing.application.service import ListingStore
from src.mk_listing.domain.models import MAX_QUANTITY
from src.mk_order.application.schemas import OrderDetail, OrderListResponse
from src.mk_order.domain.models import MAX_NOTES_LENGTH, Order
from src.mk_order.domain.repository import OrderRepositoryProtocol
from src.mk_order.domain.state_machine import ensure_transition
from src.mk_order.infrastructure.persistence import OrderRepository
from src.mk_wallet.application.service import WalletLedger
from src.mk_wallet.domain.constants import escrow_wallet_id

logger = logging.getLogger(__name__)


def _check_notes(notes: str | None, field: str) -> None:
    if notes is not None and len(notes) > MAX_NOTES_LENGTH:
        raise ValidationError(f"{field} exceeds {MAX_NOTES_LENGTH} characters")


class OrderEngine:
    def __init__(
        self,
        repo: OrderRepositoryProtocol | None = None,
        listings: ListingStore | None = None,
        wallet: WalletLedger | None = None,
        escrow: EscrowTradeSession | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repo: OrderRepositoryProtocol = repo or OrderRepository()
        self._listings = listings or ListingStore(clock=clock)
        self._wallet = wallet or WalletLedger()
        self._escrow = escrow or EscrowTradeSession(orders=self._repo, clock=clock)
        self._clock = clock

    # ------------------------------------------------------------------
    # CreateOrder
    # ------------------------------------------------------------------

    async def create_order(
        self,
        db: AsyncSession,
        actor: Actor,
        listing_id: str,
        quantity: int,
        notes: str | None = None,
        request_id: str | None = None,
    ) -> OrderDetail:
        authorize(actor, Operation.CREATE_ORDER)
        if quantity <= 0 or quantity > MAX_QUANTITY:
            raise ValidationError(f"quantity must be 1..{MAX_QUANTITY}, got {quantity}")
        _check_notes(notes, "notes")

        # Idempotency: a resent request_id returns the original order
        if request_id is not None:
            existing = await self._repo.get_by_request_id(db, actor.user_id, request_id)
            if existing is not None:
                if existing.listing_id != listing_id or existing.quantity != quantity:
                    raise DuplicateRequestError(request_id)
                return OrderDetail.from_domain(existing)

        try:
            async with translate_db_errors("create_order"):
                order = await with_store_timeout(
                    self._create(db, actor, listing_id, quantity, notes, request_id),
                    "create_order",
                )
                await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info(
            "Order %s created: buyer=%s listing=%s qty=%d total=%d",
            order.id, order.buyer_id, order.listing_id, order.quantity, order.total_amount,
        )
        return OrderDetail.from_domain(order)

    async def _create(
        self,
        db: AsyncSession,
        actor: Actor,
        listing_id: str,
        quantity: int,
        notes: str | None,
        request_id: str | None,
    ) -> Order:
        listing = await self._listings.get_listing(db, listing_id)
        if listing.seller_id == actor.user_id:
            raise SelfTradeForbiddenError()
        if listing.status != ListingStatus.ACTIVE:
            raise ListingNotActiveError(listing_id, listing.status)

        # Fail fast before reserving anything; the funds are taken at confirm time
        expected_total = quantity * listing.unit_price
        balance = (await self._wallet.get_balance(db, actor.user_id)).balance
        if balance < expected_total:
            raise InsufficientBalanceError(expected_total, balance)

        reserved = await self._listings.reserve_quantity(db, listing_id, quantity)
        order = Order(
            id=generate_id(),
            listing_id=listing_id,
            buyer_id=actor.user_id,
            seller_id=reserved.seller_id,
            quantity=quantity,
            unit_price=reserved.unit_price,
            total_amount=quantity * reserved.unit_price,
            platform_fee_bps=settings.PLATFORM_FEE_BPS,
            status=OrderStatus.PENDING.value,
            request_id=request_id,
            buyer_notes=notes,
        )
        created = await self._repo.insert(db, order)
        if created is None:
            # Same request_id inserted by a concurrent call; the retry will find it
            raise ConflictError(f"request_id {request_id} is already being processed")
        return created

    # ------------------------------------------------------------------
    # ConfirmOrder
    # ------------------------------------------------------------------

    async def confirm_order(
        self,
        db: AsyncSession,
        actor: Actor,
        order_id: str,
        notes: str | None = None,
    ) -> OrderDetail:
        _check_notes(notes, "notes")
        async with order_locks.hold(order_id):
            try:
                async with translate_db_errors("confirm_order"):
                    order, changed = await with_store_timeout(
                        self._confirm(db, actor, order_id, notes), "confirm_order"
                    )
                    await db.commit()
            except Exception:
                await db.rollback()
                raise
        if changed:
            logger.info(
                "Order %s confirmed by seller %s; %d points held in escrow",
                order.id, actor.user_id, order.total_amount,
            )
        return OrderDetail.from_domain(order)

    async def _confirm(
        self, db: AsyncSession, actor: Actor, order_id: str, notes: str | None
    ) -> tuple[Order, bool]:
        order = await self._get_or_raise(db, order_id)
        authorize(
            actor,
            Operation.CONFIRM_ORDER,
            Subject(buyer_id=order.buyer_id, seller_id=order.seller_id),
        )
        if order.status in (OrderStatus.CONFIRMED, OrderStatus.COMPLETED):
            return order, False
        ensure_transition(order.status, OrderStatus.CONFIRMED)

        now = self._clock()
        confirmed = await self._repo.mark_confirmed(db, order_id, now, notes)
        if confirmed is None:
            latest = await self._get_or_raise(db, order_id)
            if latest.status in (OrderStatus.CONFIRMED, OrderStatus.COMPLETED):
                return latest, False
            raise InvalidStateTransitionError("Order", latest.status, OrderStatus.CONFIRMED.value)

        # InsufficientBalance here rolls back the status change as well
        await self._wallet.transfer(
            db,
            confirmed.buyer_id,
            escrow_wallet_id(confirmed.id),
            confirmed.total_amount,
            WalletTransactionType.ESCROW_HOLD,
            WalletTransactionType.ESCROW_HOLD,
            related_order_id=confirmed.id,
            note="escrow hold",
        )
        await self._escrow.open_session(db, confirmed, now)
        return confirmed, True

    # ------------------------------------------------------------------
    # CancelOrder
    # ------------------------------------------------------------------

    async def cancel_order(
        self,
        db: AsyncSession,
        actor: Actor,
        order_id: str,
        reason: str | None = None,
    ) -> OrderDetail:
        _check_notes(reason, "reason")
        async with order_locks.hold(order_id):
            try:
                async with translate_db_errors("cancel_order"):
                    order, changed = await with_store_timeout(
                        self._cancel(db, actor, order_id, reason), "cancel_order"
                    )
                    await db.commit()
            except Exception:
                await db.rollback()
                raise
        if changed:
            logger.info(
                "Order %s cancelled by %s (refunded=%s)",
                order.id, actor.user_id, order.is_charged,
            )
        return OrderDetail.from_domain(order)

    async def _cancel(
        self, db: AsyncSession, actor: Actor, order_id: str, reason: str | None
    ) -> tuple[Order, bool]:
        order = await self._get_or_raise(db, order_id)
        authorize(
            actor,
            Operation.CANCEL_ORDER,
            Subject(buyer_id=order.buyer_id, seller_id=order.seller_id),
        )
        if order.status == OrderStatus.CANCELLED:
            return order, False
        ensure_transition(order.status, OrderStatus.CANCELLED)

        now = self._clock()
        if order.status == OrderStatus.CONFIRMED:
            # Locks the session row first; a racing completion loses here
            await self._escrow.close_for_cancellation(db, order_id, now)

        cancelled = await self._repo.mark_cancelled(
            db, order_id, order.status, now, actor.user_id, reason
        )
        if cancelled is None:
            latest = await self._get_or_raise(db, order_id)
            raise ConflictError(
                f"order {order_id} moved from {order.status} to {latest.status} during cancel"
            )

        await self._listings.release_reservation(db, cancelled.listing_id, cancelled.quantity)
        if cancelled.is_charged:
            await self._wallet.transfer(
                db,
                escrow_wallet_id(cancelled.id),
                cancelled.buyer_id,
                cancelled.total_amount,
                WalletTransactionType.REFUND,
                WalletTransactionType.REFUND,
                related_order_id=cancelled.id,
                note=reason or "order cancelled",
            )
        return cancelled, True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_order(self, db: AsyncSession, actor: Actor, order_id: str) -> OrderDetail:
        order = await self._get_or_raise(db, order_id)
        authorize(
            actor,
            Operation.VIEW_ORDER,
            Subject(buyer_id=order.buyer_id, seller_id=order.seller_id),
        )
        return OrderDetail.from_domain(order)

    async def list_my_purchases(
        self,
        db: AsyncSession,
        actor: Actor,
        status: str | None,
        cursor: str | None,
        limit: int,
    ) -> OrderListResponse:
        return await self._list(db, "buyer", actor.user_id, status, cursor, limit)

    async def list_my_sales(
        self,
        db: AsyncSession,
        actor: Actor,
        status: str | None,
        cursor: str | None,
        limit: int,
    ) -> OrderListResponse:
        return await self._list(db, "seller", actor.user_id, status, cursor, limit)

    async def _list(
        self,
        db: AsyncSession,
        role: str,
        user_id: str,
        status: str | None,
        cursor: str | None,
        limit: int,
    ) -> OrderListResponse:
        cursor_id = cursor_decode(cursor)
        rows = await self._repo.list_for_party(
            db,
            role,
            user_id,
            status,
            cursor_id if isinstance(cursor_id, str) else None,
            limit + 1,
        )
        page, has_more = split_page(rows, limit)
        return OrderListResponse(
            items=[OrderDetail.from_domain(o) for o in page],
            next_cursor=cursor_encode(page[-1].id) if has_more and page else None,
            has_more=has_more,
        )

    async def _get_or_raise(self, db: AsyncSession, order_id: str) -> Order:
        order = await self._repo.get(db, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

