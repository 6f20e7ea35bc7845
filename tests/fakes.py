"""In-memory repositories for service-level unit tests.

Each fake honours the same conditional-update contract as its SQL twin
(return None when the WHERE clause would match no row) and yields to the
event loop once per call, so concurrent tasks interleave the way separate
requests do. Writes register an undo step on the FakeSession; rollback()
replays them, commit() forgets them.
"""

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from datetime import UTC, date, datetime, timedelta

from src.mk_admin.application.service import AdminService
from src.mk_common.capabilities import ADMIN_ROLE, Actor
from src.mk_common.enums import (
    ListingStatus,
    OrderStatus,
    SettlementStatus,
    TradeSessionStatus,
)
from src.mk_common.errors import InsufficientBalanceError
from src.mk_escrow.application.service import EscrowTradeSession
from src.mk_escrow.domain.models import OPEN_STATUSES, TradeMessage, TradeSession
from src.mk_listing.application.service import ListingStore
from src.mk_listing.domain.models import Listing, ListingFilter
from src.mk_order.application.service import OrderEngine
from src.mk_order.domain.models import Order
from src.mk_ranking.application.service import RankingAggregator
from src.mk_ranking.domain.models import CompletedSale, RankingEntry
from src.mk_settlement.application.service import SettlementCoordinator
from src.mk_settlement.domain.models import SettlementIntent
from src.mk_wallet.application.service import WalletLedger
from src.mk_wallet.domain.models import ProjectionMismatch, WalletAccount, WalletTransaction

SELLER = Actor(user_id="alice")
BUYER = Actor(user_id="bob")
OTHER = Actor(user_id="carol")
ADMIN = Actor(user_id="root", roles=frozenset({ADMIN_ROLE}))

T0 = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)  # a Monday


async def _yield() -> None:
    await asyncio.sleep(0)


class FakeSession:
    """Stands in for AsyncSession: tracks commits and undoes on rollback."""

    def __init__(self) -> None:
        self._undo: list[Callable[[], None]] = []
        self.commits = 0
        self.rollbacks = 0

    def on_rollback(self, undo: Callable[[], None]) -> None:
        self._undo.append(undo)

    async def commit(self) -> None:
        self._undo.clear()
        self.commits += 1

    async def rollback(self) -> None:
        while self._undo:
            self._undo.pop()()
        self.rollbacks += 1


def session_factory() -> Callable[[], object]:
    """Drop-in for async_sessionmaker: each call opens a fresh FakeSession."""

    @asynccontextmanager
    async def _open() -> AsyncIterator[FakeSession]:
        yield FakeSession()

    return _open


class Clock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Wallet
# ---------------------------------------------------------------------------


class FakeWalletRepository:
    def __init__(self) -> None:
        self.accounts: dict[str, WalletAccount] = {}
        self.transactions: list[WalletTransaction] = []
        self._next_id = 1

    def _append(
        self,
        db: FakeSession,
        account: WalletAccount,
        delta: int,
        tx_type: str,
        related_order_id: str | None,
        note: str | None,
        created: bool,
    ) -> WalletTransaction:
        account.balance += delta
        account.version += 1
        tx = WalletTransaction(
            id=self._next_id,
            user_id=account.user_id,
            delta=delta,
            balance_after=account.balance,
            tx_type=tx_type,
            related_order_id=related_order_id,
            note=note,
            created_at=datetime.now(UTC),
        )
        self._next_id += 1
        self.transactions.append(tx)

        def undo() -> None:
            account.balance -= delta
            account.version -= 1
            self.transactions.remove(tx)
            if created:
                self.accounts.pop(account.user_id, None)

        db.on_rollback(undo)
        return replace(tx)

    async def get_account(self, db: FakeSession, user_id: str) -> WalletAccount | None:
        await _yield()
        account = self.accounts.get(user_id)
        return replace(account) if account else None

    async def debit(
        self,
        db: FakeSession,
        user_id: str,
        amount: int,
        tx_type: str,
        related_order_id: str | None,
        note: str | None,
    ) -> WalletTransaction:
        await _yield()
        account = self.accounts.get(user_id)
        if account is None or account.balance < amount:
            raise InsufficientBalanceError(amount, account.balance if account else 0)
        return self._append(db, account, -amount, tx_type, related_order_id, note, False)

    async def credit(
        self,
        db: FakeSession,
        user_id: str,
        amount: int,
        tx_type: str,
        related_order_id: str | None,
        note: str | None,
    ) -> WalletTransaction:
        await _yield()
        created = user_id not in self.accounts
        if created:
            self.accounts[user_id] = WalletAccount(user_id=user_id, balance=0, version=0)
        account = self.accounts[user_id]
        return self._append(db, account, amount, tx_type, related_order_id, note, created)

    async def list_transactions(
        self,
        db: FakeSession,
        user_id: str,
        cursor_id: int | None,
        limit: int,
        tx_type: str | None,
        related_order_id: str | None,
    ) -> list[WalletTransaction]:
        await _yield()
        rows = [
            t for t in self.transactions
            if t.user_id == user_id
            and (cursor_id is None or t.id < cursor_id)
            and (tx_type is None or t.tx_type == tx_type)
            and (related_order_id is None or t.related_order_id == related_order_id)
        ]
        rows.sort(key=lambda t: t.id, reverse=True)
        return [replace(t) for t in rows[:limit]]

    def ledger_sum(self, user_id: str) -> int:
        return sum(t.delta for t in self.transactions if t.user_id == user_id)

    async def find_projection_mismatches(self, db: FakeSession) -> list[ProjectionMismatch]:
        await _yield()
        return [
            ProjectionMismatch(a.user_id, a.balance, self.ledger_sum(a.user_id))
            for a in sorted(self.accounts.values(), key=lambda a: a.user_id)
            if a.balance != self.ledger_sum(a.user_id)
        ]

    async def find_negative_balances(self, db: FakeSession) -> list[str]:
        await _yield()
        return sorted(a.user_id for a in self.accounts.values() if a.balance < 0)

    async def rebuild_balances(self, db: FakeSession) -> int:
        await _yield()
        changed = 0
        for account in self.accounts.values():
            ledger = self.ledger_sum(account.user_id)
            if account.balance != ledger:
                account.balance = ledger
                account.version += 1
                changed += 1
        return changed

    async def sum_balances(self, db: FakeSession) -> int:
        await _yield()
        return sum(a.balance for a in self.accounts.values())

    async def sum_adjustments(self, db: FakeSession) -> int:
        await _yield()
        return sum(t.delta for t in self.transactions if t.tx_type == "ADMIN_ADJUSTMENT")


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


class FakeListingRepository:
    """Rollback restores the row image, as if the row lock were held to commit."""

    def __init__(self) -> None:
        self.listings: dict[str, Listing] = {}

    def _write(self, db: FakeSession, listing: Listing) -> Listing:
        before = self.listings.get(listing.id)
        listing.version = (before.version + 1) if before else listing.version
        self.listings[listing.id] = listing

        def undo() -> None:
            if before is None:
                self.listings.pop(listing.id, None)
            else:
                self.listings[listing.id] = before

        db.on_rollback(undo)
        return replace(listing)

    async def insert(self, db: FakeSession, listing: Listing) -> Listing:
        await _yield()
        return self._write(db, replace(listing, version=1, created_at=datetime.now(UTC)))

    async def get(self, db: FakeSession, listing_id: str) -> Listing | None:
        await _yield()
        listing = self.listings.get(listing_id)
        return replace(listing) if listing else None

    async def reserve(
        self, db: FakeSession, listing_id: str, quantity: int, now: datetime
    ) -> Listing | None:
        await _yield()
        current = self.listings.get(listing_id)
        if (
            current is None
            or current.status != ListingStatus.ACTIVE
            or current.is_expired(now)
            or current.available_quantity < quantity
        ):
            return None
        updated = replace(current, reserved_quantity=current.reserved_quantity + quantity)
        if updated.available_quantity == 0:
            updated.status = ListingStatus.SOLD_OUT.value
            updated.sold_out_at = now
        return self._write(db, updated)

    async def release(
        self, db: FakeSession, listing_id: str, quantity: int
    ) -> Listing | None:
        await _yield()
        current = self.listings.get(listing_id)
        if current is None or current.reserved_quantity < quantity:
            return None
        updated = replace(current, reserved_quantity=current.reserved_quantity - quantity)
        if updated.status == ListingStatus.SOLD_OUT:
            updated.status = ListingStatus.ACTIVE.value
            updated.sold_out_at = None
        return self._write(db, updated)

    async def commit_sale(
        self, db: FakeSession, listing_id: str, quantity: int
    ) -> Listing | None:
        await _yield()
        current = self.listings.get(listing_id)
        if current is None or current.reserved_quantity < quantity:
            return None
        return self._write(
            db,
            replace(
                current,
                reserved_quantity=current.reserved_quantity - quantity,
                sold_quantity=current.sold_quantity + quantity,
            ),
        )

    async def update(
        self, db: FakeSession, listing: Listing, expected_version: int
    ) -> Listing | None:
        await _yield()
        current = self.listings.get(listing.id)
        if (
            current is None
            or current.version != expected_version
            or not current.is_editable
            or listing.total_quantity < current.reserved_quantity + current.sold_quantity
        ):
            return None
        updated = replace(
            current,
            title=listing.title,
            description=listing.description,
            unit_price=listing.unit_price,
            total_quantity=listing.total_quantity,
            image_url=listing.image_url,
            is_negotiable=listing.is_negotiable,
            expires_at=listing.expires_at,
        )
        if updated.available_quantity == 0:
            updated.status = ListingStatus.SOLD_OUT.value
            updated.sold_out_at = current.sold_out_at or datetime.now(UTC)
        else:
            updated.status = ListingStatus.ACTIVE.value
            updated.sold_out_at = None
        return self._write(db, updated)

    async def remove(self, db: FakeSession, listing_id: str, now: datetime) -> Listing | None:
        await _yield()
        current = self.listings.get(listing_id)
        if (
            current is None
            or current.status == ListingStatus.REMOVED
            or current.reserved_quantity != 0
        ):
            return None
        return self._write(
            db, replace(current, status=ListingStatus.REMOVED.value, removed_at=now)
        )

    async def expire_due(self, db: FakeSession, now: datetime) -> list[str]:
        await _yield()
        expired = []
        for listing in list(self.listings.values()):
            if listing.is_editable and listing.is_expired(now):
                self._write(db, replace(listing, status=ListingStatus.EXPIRED.value))
                expired.append(listing.id)
        return expired

    async def search(
        self, db: FakeSession, flt: ListingFilter, cursor_id: str | None, limit: int
    ) -> list[Listing]:
        await _yield()
        rows = [
            l for l in self.listings.values()
            if (flt.status is None or l.status == flt.status)
            and (flt.seller_id is None or l.seller_id == flt.seller_id)
            and (flt.keyword is None or flt.keyword.lower() in l.title.lower())
            and (flt.min_price is None or l.unit_price >= flt.min_price)
            and (flt.max_price is None or l.unit_price <= flt.max_price)
            and (cursor_id is None or l.id < cursor_id)
        ]
        rows.sort(key=lambda l: l.id, reverse=True)
        return [replace(l) for l in rows[:limit]]

    async def find_overcommitted(self, db: FakeSession) -> list[str]:
        await _yield()
        return sorted(
            l.id for l in self.listings.values()
            if l.reserved_quantity < 0
            or l.sold_quantity < 0
            or l.reserved_quantity + l.sold_quantity > l.total_quantity
        )


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


class FakeOrderRepository:
    def __init__(self) -> None:
        self.orders: dict[str, Order] = {}

    def _write(self, db: FakeSession, order: Order) -> Order:
        before = self.orders.get(order.id)
        self.orders[order.id] = order

        def undo() -> None:
            if before is None:
                self.orders.pop(order.id, None)
            else:
                self.orders[order.id] = before

        db.on_rollback(undo)
        return replace(order)

    async def insert(self, db: FakeSession, order: Order) -> Order | None:
        await _yield()
        if order.request_id is not None and any(
            o.buyer_id == order.buyer_id and o.request_id == order.request_id
            for o in self.orders.values()
        ):
            return None
        return self._write(db, replace(order, created_at=datetime.now(UTC)))

    async def get(self, db: FakeSession, order_id: str) -> Order | None:
        await _yield()
        order = self.orders.get(order_id)
        return replace(order) if order else None

    async def get_by_request_id(
        self, db: FakeSession, buyer_id: str, request_id: str
    ) -> Order | None:
        await _yield()
        for order in self.orders.values():
            if order.buyer_id == buyer_id and order.request_id == request_id:
                return replace(order)
        return None

    async def mark_confirmed(
        self, db: FakeSession, order_id: str, now: datetime, seller_notes: str | None
    ) -> Order | None:
        await _yield()
        current = self.orders.get(order_id)
        if current is None or current.status != OrderStatus.PENDING:
            return None
        return self._write(
            db,
            replace(
                current,
                status=OrderStatus.CONFIRMED.value,
                confirmed_at=now,
                charged_at=now,
                seller_notes=seller_notes if seller_notes is not None else current.seller_notes,
            ),
        )

    async def mark_completed(
        self, db: FakeSession, order_id: str, now: datetime
    ) -> Order | None:
        await _yield()
        current = self.orders.get(order_id)
        if current is None or current.status != OrderStatus.CONFIRMED:
            return None
        return self._write(
            db, replace(current, status=OrderStatus.COMPLETED.value, completed_at=now)
        )

    async def mark_cancelled(
        self,
        db: FakeSession,
        order_id: str,
        expected_status: str,
        now: datetime,
        cancelled_by: str,
        reason: str | None,
    ) -> Order | None:
        await _yield()
        current = self.orders.get(order_id)
        if current is None or current.status != expected_status:
            return None
        return self._write(
            db,
            replace(
                current,
                status=OrderStatus.CANCELLED.value,
                cancelled_at=now,
                cancelled_by=cancelled_by,
                cancel_reason=reason,
            ),
        )

    async def list_for_party(
        self,
        db: FakeSession,
        role: str,
        user_id: str,
        status: str | None,
        cursor_id: str | None,
        limit: int,
    ) -> list[Order]:
        await _yield()
        rows = [
            o for o in self.orders.values()
            if (o.buyer_id if role == "buyer" else o.seller_id) == user_id
            and (status is None or o.status == status)
            and (cursor_id is None or o.id < cursor_id)
        ]
        rows.sort(key=lambda o: o.id, reverse=True)
        return [replace(o) for o in rows[:limit]]


# ---------------------------------------------------------------------------
# Trade sessions
# ---------------------------------------------------------------------------


class FakeTradeSessionRepository:
    def __init__(self) -> None:
        self.sessions: dict[str, TradeSession] = {}
        self.messages: list[TradeMessage] = []

    def _write(self, db: FakeSession, session: TradeSession) -> TradeSession:
        before = self.sessions.get(session.order_id)
        self.sessions[session.order_id] = session

        def undo() -> None:
            if before is None:
                self.sessions.pop(session.order_id, None)
            else:
                self.sessions[session.order_id] = before

        db.on_rollback(undo)
        return replace(session, messages=[])

    async def insert_session(self, db: FakeSession, session: TradeSession) -> TradeSession:
        await _yield()
        return self._write(db, replace(session, messages=[]))

    async def get_session(self, db: FakeSession, order_id: str) -> TradeSession | None:
        await _yield()
        session = self.sessions.get(order_id)
        return replace(session, messages=[]) if session else None

    def _confirmable(self, session: TradeSession | None, now: datetime) -> bool:
        return (
            session is not None
            and session.status in OPEN_STATUSES
            and (session.deadline_at is None or session.deadline_at > now)
        )

    async def confirm_seller(
        self,
        db: FakeSession,
        order_id: str,
        now: datetime,
        deadline: datetime,
        notes: str | None,
    ) -> TradeSession | None:
        await _yield()
        current = self.sessions.get(order_id)
        if not self._confirmable(current, now) or current.seller_transferred_at is not None:
            return None
        updated = replace(
            current,
            seller_transferred_at=now,
            seller_notes=notes if notes is not None else current.seller_notes,
        )
        if current.buyer_received_at is not None:
            updated.status = TradeSessionStatus.COMPLETED.value
            updated.completed_at = now
            updated.deadline_at = None
        else:
            updated.status = TradeSessionStatus.AWAITING_BUYER_RECEIPT.value
            updated.deadline_at = deadline
        return self._write(db, updated)

    async def confirm_buyer(
        self,
        db: FakeSession,
        order_id: str,
        now: datetime,
        deadline: datetime,
        notes: str | None,
    ) -> TradeSession | None:
        await _yield()
        current = self.sessions.get(order_id)
        if not self._confirmable(current, now) or current.buyer_received_at is not None:
            return None
        updated = replace(
            current,
            buyer_received_at=now,
            buyer_notes=notes if notes is not None else current.buyer_notes,
        )
        if current.seller_transferred_at is not None:
            updated.status = TradeSessionStatus.COMPLETED.value
            updated.completed_at = now
            updated.deadline_at = None
        else:
            updated.status = TradeSessionStatus.AWAITING_SELLER_TRANSFER.value
            updated.deadline_at = deadline
        return self._write(db, updated)

    async def mark_disputed(
        self, db: FakeSession, order_id: str, now: datetime
    ) -> TradeSession | None:
        await _yield()
        current = self.sessions.get(order_id)
        if current is None or not current.is_overdue(now):
            return None
        return self._write(
            db, replace(current, status=TradeSessionStatus.DISPUTED.value, disputed_at=now)
        )

    async def dispute_overdue(self, db: FakeSession, now: datetime) -> list[str]:
        await _yield()
        disputed = []
        for session in list(self.sessions.values()):
            if session.is_overdue(now):
                self._write(
                    db,
                    replace(session, status=TradeSessionStatus.DISPUTED.value, disputed_at=now),
                )
                disputed.append(session.order_id)
        return disputed

    async def mark_cancelled(
        self, db: FakeSession, order_id: str, now: datetime
    ) -> TradeSession | None:
        await _yield()
        current = self.sessions.get(order_id)
        if current is None or current.status not in OPEN_STATUSES:
            return None
        return self._write(
            db,
            replace(
                current,
                status=TradeSessionStatus.CANCELLED.value,
                cancelled_at=now,
                deadline_at=None,
            ),
        )

    async def insert_message(self, db: FakeSession, message: TradeMessage) -> TradeMessage:
        await _yield()
        stored = replace(message, created_at=datetime.now(UTC))
        self.messages.append(stored)
        db.on_rollback(lambda: self.messages.remove(stored))
        return replace(stored)

    async def list_messages(
        self, db: FakeSession, order_id: str, after_id: str | None, limit: int
    ) -> list[TradeMessage]:
        await _yield()
        rows = [
            m for m in self.messages
            if m.order_id == order_id and (after_id is None or m.id > after_id)
        ]
        rows.sort(key=lambda m: m.id)
        return [replace(m) for m in rows[:limit]]

    async def mark_read(
        self, db: FakeSession, order_id: str, reader_role: str, now: datetime
    ) -> int:
        await _yield()
        marked = 0
        for message in self.messages:
            if (
                message.order_id == order_id
                and message.sender_role != reader_role
                and message.read_at is None
            ):
                message.read_at = now
                marked += 1
        return marked


# ---------------------------------------------------------------------------
# Settlement and ranking
# ---------------------------------------------------------------------------


class FakeSettlementRepository:
    def __init__(self) -> None:
        self.intents: dict[str, SettlementIntent] = {}

    def _write(self, db: FakeSession, intent: SettlementIntent) -> SettlementIntent:
        before = self.intents.get(intent.order_id)
        self.intents[intent.order_id] = intent

        def undo() -> None:
            if before is None:
                self.intents.pop(intent.order_id, None)
            else:
                self.intents[intent.order_id] = before

        db.on_rollback(undo)
        return replace(intent)

    async def insert_intent(
        self, db: FakeSession, intent: SettlementIntent
    ) -> SettlementIntent | None:
        await _yield()
        if intent.order_id in self.intents:
            return None
        return self._write(db, replace(intent, created_at=datetime.now(UTC)))

    async def get_intent(self, db: FakeSession, order_id: str) -> SettlementIntent | None:
        await _yield()
        intent = self.intents.get(order_id)
        return replace(intent) if intent else None

    async def claim(
        self, db: FakeSession, order_id: str, now: datetime
    ) -> SettlementIntent | None:
        await _yield()
        current = self.intents.get(order_id)
        if current is None or current.status != SettlementStatus.PENDING:
            return None
        return self._write(
            db,
            replace(
                current,
                status=SettlementStatus.APPLIED.value,
                applied_at=now,
                attempts=current.attempts + 1,
                last_error=None,
            ),
        )

    async def record_failure(self, db: FakeSession, order_id: str, error: str) -> None:
        await _yield()
        current = self.intents.get(order_id)
        if current is not None and current.status == SettlementStatus.PENDING:
            self._write(db, replace(current, attempts=current.attempts + 1, last_error=error))

    async def list_pending(self, db: FakeSession, limit: int) -> list[str]:
        await _yield()
        pending = [i for i in self.intents.values() if i.status == SettlementStatus.PENDING]
        pending.sort(key=lambda i: (i.created_at, i.order_id))
        return [i.order_id for i in pending[:limit]]


class FakeRankingRepository:
    """Reads completed orders straight out of the fake order store."""

    def __init__(self, orders: FakeOrderRepository) -> None:
        self._orders = orders
        self.snapshots: dict[tuple[str, date], list[RankingEntry]] = {}

    async def list_completed_sales(
        self, db: FakeSession, start: datetime, end: datetime
    ) -> list[CompletedSale]:
        await _yield()
        return [
            CompletedSale(o.id, o.listing_id, o.quantity, o.total_amount)
            for o in sorted(self._orders.orders.values(), key=lambda o: o.id)
            if o.status == OrderStatus.COMPLETED
            and o.completed_at is not None
            and start <= o.completed_at < end
        ]

    async def replace_snapshot(
        self,
        db: FakeSession,
        period_type: str,
        period_date: date,
        entries: list[RankingEntry],
    ) -> None:
        await _yield()
        key = (period_type, period_date)
        before = self.snapshots.get(key)
        self.snapshots[key] = list(entries)

        def undo() -> None:
            if before is None:
                self.snapshots.pop(key, None)
            else:
                self.snapshots[key] = before

        db.on_rollback(undo)

    async def get_snapshot(
        self,
        db: FakeSession,
        period_type: str,
        period_date: date,
        metric: str | None = None,
    ) -> list[RankingEntry]:
        await _yield()
        entries = self.snapshots.get((period_type, period_date), [])
        rows = [e for e in entries if metric is None or e.metric == metric]
        return sorted(rows, key=lambda e: (e.metric, e.rank))


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


@dataclass
class Market:
    clock: Clock
    wallet_repo: FakeWalletRepository
    listing_repo: FakeListingRepository
    order_repo: FakeOrderRepository
    session_repo: FakeTradeSessionRepository
    settlement_repo: FakeSettlementRepository
    ranking_repo: FakeRankingRepository
    wallet: WalletLedger
    listings: ListingStore
    settlement: SettlementCoordinator
    escrow: EscrowTradeSession
    orders: OrderEngine
    ranking: RankingAggregator
    admin: AdminService

    async def fund(self, user_id: str, amount: int) -> None:
        await self.wallet.admin_adjust(FakeSession(), ADMIN, user_id, amount, "seed")

    async def balance(self, user_id: str) -> int:
        return (await self.wallet.get_balance(FakeSession(), user_id)).balance

    async def listing(self, listing_id: str) -> Listing:
        return self.listing_repo.listings[listing_id]

    async def new_listing(self, quantity: int = 5, unit_price: int = 100) -> str:
        listing = await self.listings.create_listing(
            FakeSession(), SELLER, "Dragon Sword", unit_price, quantity
        )
        return listing.id

    async def new_order(
        self, listing_id: str, quantity: int = 2, buyer: Actor = BUYER
    ) -> str:
        order = await self.orders.create_order(FakeSession(), buyer, listing_id, quantity)
        return order.id

    async def confirmed_order(
        self, quantity: int = 2, unit_price: int = 100, funds: int = 1000
    ) -> str:
        """Listing + funded buyer + order, confirmed by the seller."""
        listing_id = await self.new_listing(5, unit_price)
        await self.fund(BUYER.user_id, funds)
        order_id = await self.new_order(listing_id, quantity)
        await self.orders.confirm_order(FakeSession(), SELLER, order_id)
        return order_id

    async def completed_order(self, quantity: int = 2, unit_price: int = 100) -> str:
        order_id = await self.confirmed_order(quantity, unit_price)
        await self.escrow.confirm_seller_transferred(FakeSession(), SELLER, order_id)
        await self.escrow.confirm_buyer_received(FakeSession(), BUYER, order_id)
        return order_id


def build_market(now: datetime = T0) -> Market:
    clock = Clock(now)
    wallet_repo = FakeWalletRepository()
    listing_repo = FakeListingRepository()
    order_repo = FakeOrderRepository()
    session_repo = FakeTradeSessionRepository()
    settlement_repo = FakeSettlementRepository()
    ranking_repo = FakeRankingRepository(order_repo)

    wallet = WalletLedger(repo=wallet_repo)
    listings = ListingStore(repo=listing_repo, clock=clock)
    settlement = SettlementCoordinator(
        repo=settlement_repo, orders=order_repo, listings=listings, wallet=wallet, clock=clock
    )
    escrow = EscrowTradeSession(
        repo=session_repo, orders=order_repo, settlement=settlement, clock=clock
    )
    orders = OrderEngine(
        repo=order_repo, listings=listings, wallet=wallet, escrow=escrow, clock=clock
    )
    ranking = RankingAggregator(repo=ranking_repo)
    admin = AdminService(
        wallet=wallet, listings=listings, escrow=escrow, settlement=settlement, ranking=ranking
    )
    return Market(
        clock=clock,
        wallet_repo=wallet_repo,
        listing_repo=listing_repo,
        order_repo=order_repo,
        session_repo=session_repo,
        settlement_repo=settlement_repo,
        ranking_repo=ranking_repo,
        wallet=wallet,
        listings=listings,
        settlement=settlement,
        escrow=escrow,
        orders=orders,
        ranking=ranking,
        admin=admin,
    )
