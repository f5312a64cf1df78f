"""Post-confirmation actions in the chat room."""
from datetime import timedelta

import pytest

from core.exceptions import InvalidStateTransition, NotAuthorized, PaymentMethodNotImplemented, ValidationFailed
from models.chat_message import ChatMessage, SenderType
from models.chat_room import ChatRoom, RoomStatus
from models.notification import Notification
from models.order import Order, OrderStatus
from services.credit_ledger import CreditLedger
from services.deal_lifecycle import DealLifecycleService
from services.quote_service import QuoteService

from conftest import T0, fund, submit

pytestmark = pytest.mark.integration


@pytest.fixture
async def confirmed_room(buyer, supplier, rfq):
    await fund(supplier, 100_000)
    quote, _ = await submit(supplier, rfq, unit_price=10_000)
    _, room = await QuoteService().accept_quote(quote.id, buyer, now=T0)
    return room


async def test_happy_path_reaches_delivery_completed(buyer, supplier, confirmed_room):
    service = DealLifecycleService()
    assert await CreditLedger.get_balance(supplier.id) == 70_000

    room = await service.perform_action(confirmed_room.id, buyer, "request_payment")
    assert room.status == RoomStatus.PAYMENT_REQUESTED
    assert (await Order.get(room_id=room.id)).status == OrderStatus.PAYMENT_PENDING

    room = await service.perform_action(confirmed_room.id, supplier, "confirm_payment")
    assert room.status == RoomStatus.PAYMENT_CONFIRMED
    assert (await Order.get(room_id=room.id)).status == OrderStatus.PREPARING

    room = await service.perform_action(confirmed_room.id, supplier, "complete_delivery")
    assert room.status == RoomStatus.DELIVERY_COMPLETED
    assert (await Order.get(room_id=room.id)).status == OrderStatus.COMPLETED

    system_msgs = await ChatMessage.filter(room_id=room.id, sender_type=SenderType.SYSTEM).count()
    # quote sent, deal confirmed, then one per action
    assert system_msgs == 5
    assert await Notification.filter(user_id=buyer.id, type="delivery_completed").exists()


async def test_duplicate_confirm_payment_changes_nothing(buyer, supplier, confirmed_room):
    service = DealLifecycleService()
    await service.perform_action(confirmed_room.id, buyer, "request_payment")
    await service.perform_action(confirmed_room.id, supplier, "confirm_payment")
    messages_before = await ChatMessage.filter(room_id=confirmed_room.id).count()

    with pytest.raises(InvalidStateTransition) as exc:
        await service.perform_action(confirmed_room.id, supplier, "confirm_payment")

    assert exc.value.details["current_status"] == "payment_confirmed"
    assert (await ChatRoom.get(id=confirmed_room.id)).status == RoomStatus.PAYMENT_CONFIRMED
    assert await ChatMessage.filter(room_id=confirmed_room.id).count() == messages_before


async def test_wrong_actor_is_rejected(buyer, supplier, confirmed_room):
    service = DealLifecycleService()

    with pytest.raises(NotAuthorized):
        await service.perform_action(confirmed_room.id, supplier, "request_payment")

    await service.perform_action(confirmed_room.id, buyer, "request_payment")
    with pytest.raises(NotAuthorized):
        await service.perform_action(confirmed_room.id, buyer, "confirm_payment")


async def test_outsider_cannot_act(other_supplier, confirmed_room):
    with pytest.raises(NotAuthorized):
        await DealLifecycleService().perform_action(confirmed_room.id, other_supplier, "confirm_payment")


async def test_steps_cannot_be_skipped(supplier, confirmed_room):
    with pytest.raises(InvalidStateTransition):
        await DealLifecycleService().perform_action(confirmed_room.id, supplier, "complete_delivery")


async def test_card_payment_is_not_implemented(buyer, confirmed_room):
    with pytest.raises(PaymentMethodNotImplemented):
        await DealLifecycleService().perform_action(
            confirmed_room.id, buyer, "request_payment", payment_method="card"
        )
    assert (await ChatRoom.get(id=confirmed_room.id)).status == RoomStatus.DEAL_CONFIRMED


async def test_unknown_action(buyer, confirmed_room):
    with pytest.raises(ValidationFailed):
        await DealLifecycleService().perform_action(confirmed_room.id, buyer, "cancel_everything")


async def test_confirmed_room_does_not_expire(buyer, confirmed_room):
    late = T0 + timedelta(days=30)

    room = await DealLifecycleService().perform_action(confirmed_room.id, buyer, "request_payment", now=late)

    assert room.status == RoomStatus.PAYMENT_REQUESTED


async def paid_room(service, buyer, supplier, room):
    await service.perform_action(room.id, buyer, "request_payment")
    return await service.perform_action(room.id, supplier, "confirm_payment")


async def test_start_shipping_moves_only_the_order(buyer, supplier, confirmed_room):
    service = DealLifecycleService()
    await paid_room(service, buyer, supplier, confirmed_room)

    room = await service.perform_action(confirmed_room.id, supplier, "start_shipping")

    assert room.status == RoomStatus.PAYMENT_CONFIRMED
    assert (await Order.get(room_id=room.id)).status == OrderStatus.SHIPPING
    assert await Notification.filter(user_id=buyer.id, title="Shipping started").exists()

    room = await service.perform_action(confirmed_room.id, supplier, "complete_delivery")
    assert room.status == RoomStatus.DELIVERY_COMPLETED
    assert (await Order.get(room_id=room.id)).status == OrderStatus.COMPLETED


async def test_shipping_twice_is_rejected(buyer, supplier, confirmed_room):
    service = DealLifecycleService()
    await paid_room(service, buyer, supplier, confirmed_room)
    await service.perform_action(confirmed_room.id, supplier, "start_shipping")

    with pytest.raises(InvalidStateTransition):
        await service.perform_action(confirmed_room.id, supplier, "start_shipping")
    assert (await Order.get(room_id=confirmed_room.id)).status == OrderStatus.SHIPPING


async def test_shipping_needs_confirmed_payment(buyer, supplier, confirmed_room):
    service = DealLifecycleService()
    await service.perform_action(confirmed_room.id, buyer, "request_payment")

    with pytest.raises(InvalidStateTransition):
        await service.perform_action(confirmed_room.id, supplier, "start_shipping")
    with pytest.raises(NotAuthorized):
        await service.perform_action(confirmed_room.id, buyer, "start_shipping")
