"""EscrowTradeSession: two-sided confirmation, deadlines and messages."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from src.mk_common.errors import (
    InternalError,
    InvalidStateTransitionError,
    TradeSessionNotFoundError,
    UnauthorizedError,
    ValidationError,
)
from src.mk_wallet.domain.constants import PLATFORM_FEE_USER_ID, escrow_wallet_id
from tests.fakes import ADMIN, BUYER, OTHER, SELLER, FakeSession, Market


class TestConfirmations:
    async def test_seller_then_buyer_completes_and_settles(self, market: Market) -> None:
        order_id = await market.confirmed_order(quantity=2, unit_price=100)

        after_seller = await market.escrow.confirm_seller_transferred(
            FakeSession(), SELLER, order_id, "sent via mail"
        )
        assert after_seller.status == "AWAITING_BUYER_RECEIPT"
        assert after_seller.seller_notes == "sent via mail"
        assert after_seller.deadline_at == (market.clock.now + timedelta(hours=72)).isoformat()

        done = await market.escrow.confirm_buyer_received(FakeSession(), BUYER, order_id)

        assert done.status == "COMPLETED"
        assert done.deadline_at is None
        assert market.order_repo.orders[order_id].status == "COMPLETED"
        assert await market.balance("alice") == 190
        assert await market.balance(PLATFORM_FEE_USER_ID) == 10
        assert await market.balance(escrow_wallet_id(order_id)) == 0

    async def test_buyer_may_confirm_first(self, market: Market) -> None:
        order_id = await market.confirmed_order()

        first = await market.escrow.confirm_buyer_received(FakeSession(), BUYER, order_id)
        assert first.status == "AWAITING_SELLER_TRANSFER"
        assert first.buyer_received_at is not None

        done = await market.escrow.confirm_seller_transferred(FakeSession(), SELLER, order_id)
        assert done.status == "COMPLETED"
        assert market.settlement_repo.intents[order_id].status == "APPLIED"

    async def test_wrong_party_rejected(self, market: Market) -> None:
        order_id = await market.confirmed_order()
        with pytest.raises(UnauthorizedError):
            await market.escrow.confirm_seller_transferred(FakeSession(), BUYER, order_id)
        with pytest.raises(UnauthorizedError):
            await market.escrow.confirm_buyer_received(FakeSession(), SELLER, order_id)
        with pytest.raises(UnauthorizedError):
            await market.escrow.confirm_buyer_received(FakeSession(), ADMIN, order_id)

    async def test_pending_order_has_no_session_to_confirm(self, market: Market) -> None:
        listing_id = await market.new_listing()
        await market.fund("bob", 500)
        order_id = await market.new_order(listing_id)
        with pytest.raises(InvalidStateTransitionError):
            await market.escrow.confirm_seller_transferred(FakeSession(), SELLER, order_id)

    async def test_repeated_confirmation_is_a_no_op(self, market: Market) -> None:
        order_id = await market.confirmed_order()
        first = await market.escrow.confirm_seller_transferred(FakeSession(), SELLER, order_id)
        again = await market.escrow.confirm_seller_transferred(FakeSession(), SELLER, order_id)
        assert again.seller_transferred_at == first.seller_transferred_at
        assert again.status == "AWAITING_BUYER_RECEIPT"

    async def test_confirming_after_completion_does_not_pay_twice(self, market: Market) -> None:
        order_id = await market.completed_order()
        ledger_size = len(market.wallet_repo.transactions)

        again = await market.escrow.confirm_buyer_received(FakeSession(), BUYER, order_id)

        assert again.status == "COMPLETED"
        assert len(market.wallet_repo.transactions) == ledger_size


class TestDeadlines:
    async def test_late_confirmation_disputes_session(self, market: Market) -> None:
        order_id = await market.confirmed_order()
        await market.escrow.confirm_seller_transferred(FakeSession(), SELLER, order_id)
        market.clock.advance(hours=73)

        db = FakeSession()
        with pytest.raises(InvalidStateTransitionError):
            await market.escrow.confirm_buyer_received(db, BUYER, order_id)

        assert db.commits == 1  # the DISPUTED mark survives the rejection
        session = market.session_repo.sessions[order_id]
        assert session.status == "DISPUTED"
        assert session.buyer_received_at is None
        # funds stay in escrow until someone resolves the dispute
        assert market.order_repo.orders[order_id].status == "CONFIRMED"
        assert await market.balance(escrow_wallet_id(order_id)) == 200

    async def test_disputed_order_cannot_be_cancelled(self, market: Market) -> None:
        order_id = await market.confirmed_order()
        await market.escrow.confirm_seller_transferred(FakeSession(), SELLER, order_id)
        market.clock.advance(hours=73)
        assert await market.escrow.mark_overdue_disputed(FakeSession()) == 1

        with pytest.raises(InvalidStateTransitionError):
            await market.orders.cancel_order(FakeSession(), BUYER, order_id)
        assert market.order_repo.orders[order_id].status == "CONFIRMED"

    async def test_sweep_ignores_sessions_without_deadline(self, market: Market) -> None:
        await market.confirmed_order()
        market.clock.advance(days=30)
        assert await market.escrow.mark_overdue_disputed(FakeSession()) == 0

    async def test_sweep_before_deadline(self, market: Market) -> None:
        order_id = await market.confirmed_order()
        await market.escrow.confirm_buyer_received(FakeSession(), BUYER, order_id)
        market.clock.advance(hours=71)
        assert await market.escrow.mark_overdue_disputed(FakeSession()) == 0
        done = await market.escrow.confirm_seller_transferred(FakeSession(), SELLER, order_id)
        assert done.status == "COMPLETED"


class TestSettlementHandoff:
    async def test_failed_settlement_is_retried_by_next_confirmation(
        self, market: Market, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        order_id = await market.confirmed_order()
        await market.escrow.confirm_seller_transferred(FakeSession(), SELLER, order_id)

        monkeypatch.setattr(
            market.settlement, "settle", AsyncMock(side_effect=InternalError("ledger offline"))
        )
        with pytest.raises(InternalError):
            await market.escrow.confirm_buyer_received(FakeSession(), BUYER, order_id)
        # session completion and the intent committed before settlement ran
        assert market.session_repo.sessions[order_id].status == "COMPLETED"
        assert market.settlement_repo.intents[order_id].status == "PENDING"
        assert market.order_repo.orders[order_id].status == "CONFIRMED"

        monkeypatch.undo()
        await market.escrow.confirm_buyer_received(FakeSession(), BUYER, order_id)

        assert market.order_repo.orders[order_id].status == "COMPLETED"
        assert await market.balance("alice") == 190

    async def test_completed_session_cannot_be_cancelled(
        self, market: Market, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        order_id = await market.confirmed_order()
        await market.escrow.confirm_seller_transferred(FakeSession(), SELLER, order_id)
        monkeypatch.setattr(
            market.settlement, "settle", AsyncMock(side_effect=InternalError("ledger offline"))
        )
        with pytest.raises(InternalError):
            await market.escrow.confirm_buyer_received(FakeSession(), BUYER, order_id)

        with pytest.raises(InvalidStateTransitionError):
            await market.orders.cancel_order(FakeSession(), BUYER, order_id)
        assert await market.balance(escrow_wallet_id(order_id)) == 200


class TestMessages:
    async def test_post_list_and_mark_read(self, market: Market) -> None:
        order_id = await market.confirmed_order()
        hello = await market.escrow.post_message(FakeSession(), BUYER, order_id, "hello")
        await market.escrow.post_message(FakeSession(), BUYER, order_id, "are you there?")
        reply = await market.escrow.post_message(
            FakeSession(), SELLER, order_id, "sending now", attachment_ref="img/1.png"
        )
        assert hello.sender_role == "BUYER"
        assert reply.sender_role == "SELLER"
        assert reply.attachment_ref == "img/1.png"

        page = await market.escrow.list_messages(FakeSession(), SELLER, order_id, None, 2)
        assert [m.text for m in page.items] == ["hello", "are you there?"]
        rest = await market.escrow.list_messages(
            FakeSession(), SELLER, order_id, page.next_cursor, 2
        )
        assert [m.text for m in rest.items] == ["sending now"]

        marked = await market.escrow.mark_messages_read(FakeSession(), SELLER, order_id)
        assert marked.marked == 2
        again = await market.escrow.mark_messages_read(FakeSession(), SELLER, order_id)
        assert again.marked == 0

    async def test_stranger_cannot_post(self, market: Market) -> None:
        order_id = await market.confirmed_order()
        with pytest.raises(UnauthorizedError):
            await market.escrow.post_message(FakeSession(), OTHER, order_id, "hi")

    @pytest.mark.parametrize("text", ["", "   ", "x" * 1001])
    async def test_text_bounds(self, market: Market, text: str) -> None:
        order_id = await market.confirmed_order()
        with pytest.raises(ValidationError):
            await market.escrow.post_message(FakeSession(), BUYER, order_id, text)

    async def test_no_messages_once_completed(self, market: Market) -> None:
        order_id = await market.completed_order()
        with pytest.raises(InvalidStateTransitionError):
            await market.escrow.post_message(FakeSession(), BUYER, order_id, "thanks!")

    async def test_get_session_includes_messages(self, market: Market) -> None:
        order_id = await market.confirmed_order()
        await market.escrow.post_message(FakeSession(), SELLER, order_id, "on my way")
        detail = await market.escrow.get_session(FakeSession(), ADMIN, order_id)
        assert detail.status == "AWAITING_SELLER_TRANSFER"
        assert [m.text for m in detail.messages] == ["on my way"]

    async def test_pending_order_has_no_session(self, market: Market) -> None:
        listing_id = await market.new_listing()
        await market.fund("bob", 500)
        order_id = await market.new_order(listing_id)
        with pytest.raises(TradeSessionNotFoundError):
            await market.escrow.get_session(FakeSession(), BUYER, order_id)
