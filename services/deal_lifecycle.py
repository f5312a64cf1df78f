from datetime import datetime
from typing import NamedTuple

from tortoise.transactions import in_transaction

from core.clock import utcnow
from core.exceptions import (
    InvalidStateTransition,
    NotAuthorized,
    NotFound,
    PaymentMethodNotImplemented,
    ValidationFailed,
)
from core.logger import db_logger, deal_logger
from models.chat_room import ChatRoom, RoomStatus
from models.order import Order, OrderStatus
from models.user import User
from services.chat_service import ChatService
from services.expiry_service import ExpiryService
from services.notification_service import NotificationService

TRANSITIONS = {
    RoomStatus.ACTIVE: {RoomStatus.DEAL_CONFIRMED, RoomStatus.EXPIRED, RoomStatus.CLOSED},
    RoomStatus.DEAL_CONFIRMED: {RoomStatus.PAYMENT_REQUESTED, RoomStatus.EXPIRED},
    RoomStatus.PAYMENT_REQUESTED: {RoomStatus.PAYMENT_CONFIRMED, RoomStatus.EXPIRED},
    RoomStatus.PAYMENT_CONFIRMED: {RoomStatus.DELIVERY_COMPLETED},
    RoomStatus.DELIVERY_COMPLETED: set(),
    RoomStatus.EXPIRED: set(),
    RoomStatus.CLOSED: set(),
}

TERMINAL_STATES = frozenset(status for status, targets in TRANSITIONS.items() if not targets)

# deal_confirmed_at is set for these and only these
CONFIRMED_STATES = frozenset({
    RoomStatus.DEAL_CONFIRMED,
    RoomStatus.PAYMENT_REQUESTED,
    RoomStatus.PAYMENT_CONFIRMED,
    RoomStatus.DELIVERY_COMPLETED,
})

PAYMENT_METHODS = {
    "bank_transfer": True,
    "card": False,
}


class RoomAction(NamedTuple):
    actor: str
    source: RoomStatus
    # None: the room stays put, only the order moves
    target: RoomStatus | None
    order_status: OrderStatus | None
    order_source: tuple = ()


ACTIONS = {
    "request_payment": RoomAction(
        "buyer", RoomStatus.DEAL_CONFIRMED, RoomStatus.PAYMENT_REQUESTED, OrderStatus.PAYMENT_PENDING
    ),
    "confirm_payment": RoomAction(
        "supplier", RoomStatus.PAYMENT_REQUESTED, RoomStatus.PAYMENT_CONFIRMED, OrderStatus.PREPARING
    ),
    "start_shipping": RoomAction(
        "supplier", RoomStatus.PAYMENT_CONFIRMED, None, OrderStatus.SHIPPING, (OrderStatus.PREPARING,)
    ),
    "complete_delivery": RoomAction(
        "supplier", RoomStatus.PAYMENT_CONFIRMED, RoomStatus.DELIVERY_COMPLETED, OrderStatus.COMPLETED
    ),
}


def can_transition(current: RoomStatus, target: RoomStatus) -> bool:
    return target in TRANSITIONS[current]


def is_terminal(status: RoomStatus) -> bool:
    return status in TERMINAL_STATES


async def apply_transition(
        room: ChatRoom,
        target: RoomStatus,
        actor_id: int = None,
        now: datetime = None
) -> ChatRoom:
    """Move a locked room to ``target``; the caller owns the transaction."""
    current = room.status
    if not can_transition(current, target):
        raise InvalidStateTransition(
            f"Cannot move chat room from {current.value} to {target.value}",
            current_status=current.value
        )

    room.status = target
    if target == RoomStatus.DEAL_CONFIRMED:
        if room.deal_confirmed_at is not None:
            raise InvalidStateTransition("Deal already confirmed", current_status=current.value)
        room.deal_confirmed_at = now or utcnow()
    await room.save()

    deal_logger.log_transition(room.id, current.value, target.value, actor_id)
    return room


def check_payment_method(method: str) -> None:
    if method not in PAYMENT_METHODS:
        raise ValidationFailed(f"Unknown payment method: {method}")
    if not PAYMENT_METHODS[method]:
        raise PaymentMethodNotImplemented(method)


class DealLifecycleService:

    def __init__(self):
        self.chat = ChatService()
        self.expiry = ExpiryService()

    async def perform_action(
            self,
            room_id: int,
            user: User,
            action: str,
            payment_method: str = "bank_transfer",
            now: datetime = None
    ) -> ChatRoom:
        step = ACTIONS.get(action)
        if step is None:
            raise ValidationFailed(f"Unknown action: {action}")

        room = await ChatRoom.get_or_none(id=room_id)
        if room is None:
            raise NotFound("Chat room", room_id)

        role = room.participant_role(user)
        if role is None:
            raise NotAuthorized("You are not a participant of this chat room")
        if role != step.actor:
            deal_logger.log_rejected(room.id, action, f"actor is {role}")
            raise NotAuthorized(f"Only the {step.actor} can {action.replace('_', ' ')}")

        if action == "request_payment":
            check_payment_method(payment_method)

        await self.expiry.expire_if_due(room, now)

        async with in_transaction():
            room = await ChatRoom.select_for_update().get(id=room_id)
            if room.status != step.source:
                deal_logger.log_rejected(room.id, action, f"status is {room.status.value}")
                raise InvalidStateTransition(
                    f"{action} is only allowed from {step.source.value}",
                    current_status=room.status.value
                )

            order = await Order.select_for_update().get_or_none(room_id=room.id)
            if step.order_source and (order is None or order.status not in step.order_source):
                deal_logger.log_rejected(room.id, action, f"order is {order.status.value if order else None}")
                raise InvalidStateTransition(
                    f"{action} is only allowed while the order is "
                    f"{' or '.join(s.value for s in step.order_source)}",
                    current_status=room.status.value
                )

            if step.target is not None:
                await apply_transition(room, step.target, user.id, now)

            if order is not None and step.order_status is not None:
                previous = order.status
                order.status = step.order_status
                await order.save()
                db_logger.log_update("Order", order.id, {
                    "status": order.status.value,
                    "previous": previous.value,
                })

            await room.fetch_related("rfq", "buyer", "supplier")
            await self._announce(room, action, user)

        return room

    async def _announce(self, room: ChatRoom, action: str, user: User):
        title = room.rfq.title
        link = f"/chat/{room.id}"

        if action == "request_payment":
            await self.chat.post_system_message(
                room, f"{room.buyer.company_name} requested payment confirmation.", user
            )
            await NotificationService.notify(
                room.supplier_id, "payment_request", "Payment confirmation requested",
                f'The buyer of "{title}" reports the bank transfer as sent.', link
            )
        elif action == "confirm_payment":
            await self.chat.post_system_message(
                room, f"{room.supplier.company_name} confirmed the payment. Delivery is in progress.", user
            )
            await NotificationService.notify(
                room.buyer_id, "payment_confirmed", "Payment confirmed",
                f'The supplier of "{title}" confirmed your payment.', link
            )
        elif action == "start_shipping":
            await self.chat.post_system_message(
                room, f"{room.supplier.company_name} started shipping.", user
            )
            await NotificationService.notify(
                room.buyer_id, "order_update", "Shipping started",
                f'"{title}" is on its way.', "/buyer/orders"
            )
        elif action == "complete_delivery":
            await self.chat.post_system_message(
                room, f"{room.supplier.company_name} completed the delivery.", user
            )
            for user_id in (room.buyer_id, room.supplier_id):
                await NotificationService.notify(
                    user_id, "delivery_completed", "Delivery completed",
                    f'"{title}" has been delivered.', link
                )
