"""Quote acceptance: the deal-confirmation gate."""
import asyncio

import pytest

from core.exceptions import InsufficientContext, InsufficientCredit, NotAuthorized, QuoteNotPending
from models.chat_message import ChatMessage, SenderType
from models.chat_room import ChatRoom, RoomStatus
from models.credit import CreditLog, CreditLogType
from models.order import Order, OrderStatus
from models.quote import Quote, QuoteStatus
from models.rfq import RFQ, RFQStatus
from models.user import UserRole
from services.credit_ledger import CreditLedger
from services.quote_service import QuoteService

from conftest import T0, fund, make_rfq, make_user, submit

pytestmark = pytest.mark.integration


async def test_submit_opens_active_room(supplier, rfq):
    quote, room = await submit(supplier, rfq, unit_price=10_000)

    assert quote.total_price == 1_000_000
    assert quote.status == QuoteStatus.PENDING
    assert room.status == RoomStatus.ACTIVE
    assert room.buyer_id == rfq.buyer_id
    assert room.supplier_id == supplier.id
    assert (room.expires_at - room.created_at).days == 3


async def test_accept_debits_first_trade_fee(buyer, supplier, rfq):
    await fund(supplier, 100_000)
    quote, _ = await submit(supplier, rfq, unit_price=10_000)

    quote, room = await QuoteService().accept_quote(quote.id, buyer, now=T0)

    assert quote.status == QuoteStatus.ACCEPTED
    assert quote.fee_rate == 0.03
    assert room.status == RoomStatus.DEAL_CONFIRMED
    assert room.deal_confirmed_at is not None
    assert await CreditLedger.get_balance(supplier.id) == 70_000

    use = await CreditLog.get(supplier_id=supplier.id, type=CreditLogType.USE)
    assert use.amount == -30_000
    assert use.room_id == room.id

    order = await Order.get(room_id=room.id)
    assert order.status == OrderStatus.PAYMENT_PENDING
    assert order.commission_amount == 30_000
    assert (await RFQ.get(id=rfq.id)).status == RFQStatus.IN_PROGRESS


async def test_accept_rejects_sibling_quotes(buyer, supplier, other_supplier, rfq):
    await fund(supplier, 100_000)
    chosen, _ = await submit(supplier, rfq)
    sibling, sibling_room = await submit(other_supplier, rfq, unit_price=9_000)

    await QuoteService().accept_quote(chosen.id, buyer, now=T0)

    assert (await Quote.get(id=chosen.id)).status == QuoteStatus.ACCEPTED
    assert (await Quote.get(id=sibling.id)).status == QuoteStatus.REJECTED
    assert (await ChatRoom.get(id=sibling_room.id)).status == RoomStatus.CLOSED


async def test_insufficient_credit_changes_nothing(buyer, supplier, other_supplier, rfq):
    await fund(supplier, 10_000)
    quote, room = await submit(supplier, rfq, unit_price=10_000)
    sibling, _ = await submit(other_supplier, rfq)

    with pytest.raises(InsufficientCredit) as exc:
        await QuoteService().accept_quote(quote.id, buyer, now=T0)

    assert exc.value.details == {"required": 30_000, "current": 10_000}
    assert (await Quote.get(id=quote.id)).status == QuoteStatus.PENDING
    assert (await Quote.get(id=sibling.id)).status == QuoteStatus.PENDING
    assert (await ChatRoom.get(id=room.id)).status == RoomStatus.ACTIVE
    assert (await RFQ.get(id=rfq.id)).status == RFQStatus.OPEN
    assert await CreditLedger.get_balance(supplier.id) == 10_000
    assert not await Order.all().exists()


async def test_balance_covers_only_one_of_two_deals(buyer, supplier):
    await fund(supplier, 40_000)
    first, _ = await submit(supplier, await make_rfq(buyer, title="Lids"))
    second, _ = await submit(supplier, await make_rfq(buyer, title="Straws"))

    await QuoteService().accept_quote(first.id, buyer, now=T0)
    with pytest.raises(InsufficientCredit):
        await QuoteService().accept_quote(second.id, buyer, now=T0)

    assert await CreditLedger.get_balance(supplier.id) == 10_000
    assert await CreditLog.filter(supplier_id=supplier.id, type=CreditLogType.USE).count() == 1


async def test_accepting_twice_raises_quote_not_pending(buyer, supplier, rfq):
    await fund(supplier, 100_000)
    quote, _ = await submit(supplier, rfq)
    await QuoteService().accept_quote(quote.id, buyer, now=T0)

    with pytest.raises(QuoteNotPending):
        await QuoteService().accept_quote(quote.id, buyer, now=T0)
    assert await CreditLedger.get_balance(supplier.id) == 70_000


async def test_only_the_rfq_owner_can_accept(supplier, rfq):
    stranger = await make_user(UserRole.BUYER, "Someone Else")
    await fund(supplier, 100_000)
    quote, _ = await submit(supplier, rfq)

    with pytest.raises(NotAuthorized):
        await QuoteService().accept_quote(quote.id, stranger, now=T0)


async def test_closed_rfq_cannot_be_accepted(buyer, supplier, rfq):
    await fund(supplier, 100_000)
    quote, _ = await submit(supplier, rfq)
    rfq.status = RFQStatus.CLOSED
    await rfq.save()

    with pytest.raises(InsufficientContext):
        await QuoteService().accept_quote(quote.id, buyer, now=T0)


async def test_repeat_trade_uses_lower_rate(buyer, supplier):
    await fund(supplier, 100_000)
    first_rfq = await make_rfq(buyer, title="Lids")
    quote, room = await submit(supplier, first_rfq)
    await QuoteService().accept_quote(quote.id, buyer, now=T0)
    await Order.filter(room_id=room.id).update(status=OrderStatus.COMPLETED)

    quote, _ = await submit(supplier, await make_rfq(buyer, title="Straws"))
    quote, _ = await QuoteService().accept_quote(quote.id, buyer, now=T0)

    assert quote.fee_rate == 0.01
    assert await CreditLedger.get_balance(supplier.id) == 100_000 - 30_000 - 10_000


async def test_reject_closes_room(buyer, supplier, rfq):
    quote, room = await submit(supplier, rfq)

    await QuoteService().reject_quote(quote.id, buyer)

    assert (await Quote.get(id=quote.id)).status == QuoteStatus.REJECTED
    assert (await ChatRoom.get(id=room.id)).status == RoomStatus.CLOSED


async def test_sibling_room_gets_a_closing_message(buyer, supplier, other_supplier, rfq):
    await fund(supplier, 100_000)
    chosen, _ = await submit(supplier, rfq)
    _, sibling_room = await submit(other_supplier, rfq)

    await QuoteService().accept_quote(chosen.id, buyer, now=T0)

    last = await ChatMessage.filter(room_id=sibling_room.id).order_by("-id").first()
    assert last.sender_type == SenderType.SYSTEM
    assert "another quote" in last.content


async def test_concurrent_accepts_debit_once(buyer, supplier):
    await fund(supplier, 40_000)
    first, _ = await submit(supplier, await make_rfq(buyer, title="Lids"))
    second, _ = await submit(supplier, await make_rfq(buyer, title="Straws"))

    results = await asyncio.gather(
        QuoteService().accept_quote(first.id, buyer, now=T0),
        QuoteService().accept_quote(second.id, buyer, now=T0),
        return_exceptions=True
    )

    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], InsufficientCredit)
    assert await CreditLog.filter(supplier_id=supplier.id, type=CreditLogType.USE).count() == 1
    assert await CreditLedger.get_balance(supplier.id) == 10_000

    logs = await CreditLog.filter(supplier_id=supplier.id).order_by("id")
    running = 0
    for log in logs:
        running += log.amount
        assert log.balance_after == running


async def test_price_can_be_renegotiated(buyer, supplier, rfq):
    quote, room = await submit(supplier, rfq, unit_price=10_000)

    quote = await QuoteService().update_price(quote.id, supplier, 8_000, now=T0)

    assert quote.unit_price == 8_000
    assert (await Quote.get(id=quote.id)).total_price == 800_000
    last = await ChatMessage.filter(room_id=room.id).order_by("-id").first()
    assert "800,000" in last.content


async def test_renegotiated_price_sets_the_fee(buyer, supplier, rfq):
    await fund(supplier, 100_000)
    quote, _ = await submit(supplier, rfq, unit_price=10_000)

    await QuoteService().update_price(quote.id, buyer, 5_000, now=T0)
    await QuoteService().accept_quote(quote.id, buyer, now=T0)

    assert await CreditLedger.get_balance(supplier.id) == 100_000 - 15_000


async def test_accepted_price_is_frozen(buyer, supplier, rfq):
    await fund(supplier, 100_000)
    quote, _ = await submit(supplier, rfq)
    await QuoteService().accept_quote(quote.id, buyer, now=T0)

    with pytest.raises(QuoteNotPending):
        await QuoteService().update_price(quote.id, supplier, 1, now=T0)
    assert (await Quote.get(id=quote.id)).total_price == 1_000_000


async def test_outsider_cannot_change_price(other_supplier, supplier, rfq):
    quote, _ = await submit(supplier, rfq)

    with pytest.raises(NotAuthorized):
        await QuoteService().update_price(quote.id, other_supplier, 1_000, now=T0)
