"""Deal lifecycle transition table."""
import pytest

from core.exceptions import PaymentMethodNotImplemented, ValidationFailed
from models.chat_room import RoomStatus
from models.order import OrderStatus
from services.deal_lifecycle import (
    ACTIONS,
    TERMINAL_STATES,
    TRANSITIONS,
    can_transition,
    check_payment_method,
    is_terminal,
)

pytestmark = pytest.mark.unit


def test_every_status_has_an_entry():
    assert set(TRANSITIONS) == set(RoomStatus)


def test_payment_requested_only_moves_to_confirmed_or_expired():
    legal = {s for s in RoomStatus if can_transition(RoomStatus.PAYMENT_REQUESTED, s)}
    assert legal == {RoomStatus.PAYMENT_CONFIRMED, RoomStatus.EXPIRED}


def test_terminal_states():
    assert TERMINAL_STATES == {RoomStatus.DELIVERY_COMPLETED, RoomStatus.EXPIRED, RoomStatus.CLOSED}
    for status in TERMINAL_STATES:
        assert is_terminal(status)
        assert not any(can_transition(status, target) for target in RoomStatus)


def test_no_skipping_steps():
    assert not can_transition(RoomStatus.ACTIVE, RoomStatus.PAYMENT_REQUESTED)
    assert not can_transition(RoomStatus.DEAL_CONFIRMED, RoomStatus.DELIVERY_COMPLETED)
    assert not can_transition(RoomStatus.PAYMENT_CONFIRMED, RoomStatus.EXPIRED)


def test_actions_follow_the_table():
    for action in ACTIONS.values():
        if action.target is not None:
            assert can_transition(action.source, action.target)


def test_start_shipping_moves_only_the_order():
    shipping = ACTIONS["start_shipping"]
    assert shipping.target is None
    assert shipping.source == RoomStatus.PAYMENT_CONFIRMED
    assert shipping.order_status == OrderStatus.SHIPPING
    assert shipping.order_source == (OrderStatus.PREPARING,)


def test_action_actors():
    assert ACTIONS["request_payment"].actor == "buyer"
    assert ACTIONS["confirm_payment"].actor == "supplier"
    assert ACTIONS["complete_delivery"].actor == "supplier"


def test_bank_transfer_is_accepted():
    check_payment_method("bank_transfer")


def test_card_is_not_implemented():
    with pytest.raises(PaymentMethodNotImplemented) as exc:
        check_payment_method("card")
    assert exc.value.status_code == 501


def test_unknown_payment_method():
    with pytest.raises(ValidationFailed):
        check_payment_method("bitcoin")
