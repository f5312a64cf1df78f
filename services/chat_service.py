from datetime import datetime

from tortoise.expressions import Q
from tortoise.transactions import in_transaction

from core.clock import utcnow
from core.config import settings
from core.exceptions import InvalidStateTransition, NotAuthorized, NotFound, ValidationFailed
from core.logger import db_logger
from models.chat_message import ChatMessage, SenderType
from models.chat_room import ChatRoom, RoomStatus
from models.order import Order
from models.quote import Quote
from models.rfq import RFQ
from models.user import User
from services.expiry_service import ExpiryService, compute_expires_at

READ_ONLY_STATES = (RoomStatus.EXPIRED, RoomStatus.CLOSED)


class ChatService:

    def __init__(self):
        self.expiry = ExpiryService()

    # --------------------------------------
    # Open a negotiation room for a quote
    # --------------------------------------
    async def open_room(self, quote: Quote, rfq: RFQ, now: datetime = None) -> ChatRoom:
        now = now or utcnow()
        room = await ChatRoom.create(
            rfq_id=rfq.id,
            quote_id=quote.id,
            buyer_id=rfq.buyer_id,
            supplier_id=quote.supplier_id,
            status=RoomStatus.ACTIVE,
            created_at=now,
            expires_at=compute_expires_at(now)
        )

        db_logger.log_create("ChatRoom", {
            "id": room.id,
            "rfq_id": rfq.id,
            "quote_id": quote.id,
            "expires_at": room.expires_at.isoformat()
        })
        return room

    # --------------------------------------
    # Load a room the user may see
    # --------------------------------------
    async def get_room_for(self, room_id: int, user: User, now: datetime = None) -> ChatRoom:
        room = await ChatRoom.get_or_none(id=room_id)
        if room is None:
            raise NotFound("Chat room", room_id)

        if room.participant_role(user) is None and not user.is_admin:
            raise NotAuthorized("You are not a participant of this chat room")

        await self.expiry.expire_if_due(room, now)
        return room

    # --------------------------------------
    # Rooms of the current user + last message
    # --------------------------------------
    async def list_rooms(self, user: User, page: int = 1, size: int = 20):
        offset = (page - 1) * size

        rooms = await (
            ChatRoom.filter(Q(buyer_id=user.id) | Q(supplier_id=user.id))
            .order_by("-updated_at")
            .offset(offset)
            .limit(size)
            .prefetch_related("rfq", "quote", "buyer", "supplier")
        )

        result = [await self.serialize_room(room, user) for room in rooms]
        db_logger.logger.debug(f"Retrieved {len(result)} rooms for user {user.id}")
        return result

    async def list_all_rooms(self, status: RoomStatus = None, page: int = 1, size: int = 50):
        query = ChatRoom.all()
        if status:
            query = query.filter(status=status)

        rooms = await (
            query.order_by("-updated_at")
            .offset((page - 1) * size)
            .limit(size)
            .prefetch_related("rfq", "quote", "buyer", "supplier")
        )
        return [await self.serialize_room(room) for room in rooms]

    # --------------------------------------
    # Room detail
    # --------------------------------------
    async def get_room_detail(self, room_id: int, user: User, now: datetime = None):
        room = await self.get_room_for(room_id, user, now)
        await room.fetch_related("rfq", "quote", "buyer", "supplier")

        order = await Order.get_or_none(room_id=room.id)
        role = room.participant_role(user) or user.role.value

        return {
            "id": room.id,
            "status": room.status.value,
            "created_at": room.created_at.isoformat(),
            "expires_at": room.expires_at.isoformat(),
            "deal_confirmed_at": room.deal_confirmed_at.isoformat() if room.deal_confirmed_at else None,
            "rfq": {
                "id": room.rfq.id,
                "title": room.rfq.title,
                "category": room.rfq.category,
                "quantity": room.rfq.quantity,
                "unit": room.rfq.unit,
                "description": room.rfq.description,
                "delivery_date": room.rfq.delivery_date.isoformat() if room.rfq.delivery_date else None,
            },
            "quote": room.quote.to_summary(),
            "buyer": room.buyer.to_summary(),
            "supplier": room.supplier.to_summary(include_bank=True),
            "current_user_id": user.id,
            "current_user_role": role,
            "order_id": order.id if order else None,
            "order_status": order.status.value if order else None,
            "order_summary": order.to_summary() if order else None,
            "poll_interval_seconds": settings.MESSAGE_POLL_SECONDS,
        }

    # --------------------------------------
    # Messages of a room (incremental with ``after``)
    # --------------------------------------
    async def get_messages(self, room_id: int, user: User, after: int = None, now: datetime = None):
        room = await self.get_room_for(room_id, user, now)

        query = ChatMessage.filter(room_id=room.id)
        if after:
            query = query.filter(id__gt=after)

        msgs = await query.order_by("id").prefetch_related("sender")
        db_logger.logger.debug(f"Retrieved {len(msgs)} messages from room {room.id}")
        return [self.serialize_message(msg) for msg in msgs]

    # --------------------------------------
    # Post a participant message
    # --------------------------------------
    async def send_message(
            self,
            room_id: int,
            user: User,
            content: str,
            image: str = None,
            now: datetime = None
    ):
        if not content or not content.strip():
            raise ValidationFailed("Message content is required")

        room = await self.get_room_for(room_id, user, now)
        role = room.participant_role(user)
        if role is None:
            raise NotAuthorized("Only participants can write to this chat room")

        async with in_transaction():
            # status is re-read under the lock; the copy above may be stale
            locked = await ChatRoom.select_for_update().get(id=room.id)
            if locked.status in READ_ONLY_STATES:
                raise InvalidStateTransition(
                    "This chat room is read-only",
                    current_status=locked.status.value
                )

            try:
                msg = await ChatMessage.create(
                    room_id=locked.id,
                    sender_id=user.id,
                    sender_type=SenderType(role),
                    content=content,
                    image=image
                )
                # touch only updated_at so the room list stays ordered by activity
                await ChatRoom.filter(id=locked.id).update(updated_at=utcnow())
            except Exception as e:
                db_logger.log_error("send_message", e)
                raise

        db_logger.log_create("ChatMessage", {
            "id": msg.id,
            "room_id": room.id,
            "sender_id": user.id,
            "content_len": len(content),
            "has_image": image is not None
        })

        msg.sender = user
        return self.serialize_message(msg)

    async def post_system_message(self, room: ChatRoom, content: str, actor: User = None) -> ChatMessage:
        msg = await ChatMessage.create(
            room_id=room.id,
            sender_id=actor.id if actor else None,
            sender_type=SenderType.SYSTEM,
            content=content
        )
        db_logger.logger.info(f"📢 System message {msg.id} in room {room.id}: {content}")
        return msg

    # --------------------------------------
    # Mark incoming messages as read
    # --------------------------------------
    async def mark_read(self, room_id: int, user: User) -> int:
        room = await self.get_room_for(room_id, user)

        updated = await ChatMessage.filter(
            Q(sender_id__isnull=True) | ~Q(sender_id=user.id),
            room_id=room.id,
            is_read=False
        ).update(is_read=True)

        db_logger.logger.info(f"✅ Marked {updated} messages as read in room {room.id}")
        return updated

    # --------------------------------------
    # Serialization
    # --------------------------------------
    async def serialize_room(self, room: ChatRoom, user: User = None):
        last_msg = await ChatMessage.filter(room_id=room.id).order_by("-id").first()

        unread_count = 0
        if user:
            unread_count = await ChatMessage.filter(
                Q(sender_id__isnull=True) | ~Q(sender_id=user.id),
                room_id=room.id,
                is_read=False
            ).count()

        return {
            "id": room.id,
            "status": room.status.value,
            "rfq": {"id": room.rfq.id, "title": room.rfq.title},
            "quote": {"id": room.quote.id, "total_price": room.quote.total_price, "status": room.quote.status.value},
            "buyer": {"id": room.buyer.id, "company_name": room.buyer.company_name},
            "supplier": {"id": room.supplier.id, "company_name": room.supplier.company_name},
            "last_message": {
                "content": last_msg.content,
                "created_at": last_msg.created_at.isoformat(),
            } if last_msg else None,
            "unread_count": unread_count,
            "deal_confirmed": room.deal_confirmed_at is not None,
            "created_at": room.created_at.isoformat(),
            "expires_at": room.expires_at.isoformat(),
        }

    def serialize_message(self, msg: ChatMessage):
        sender_data = None
        if msg.sender_id and msg.sender:
            sender_data = {
                "id": msg.sender.id,
                "company_name": msg.sender.company_name,
            }

        return {
            "id": msg.id,
            "room_id": msg.room_id,
            "sender": sender_data,
            "sender_type": msg.sender_type.value,
            "content": msg.content,
            "image": msg.image,
            "is_read": msg.is_read,
            "created_at": msg.created_at.isoformat() if msg.created_at else None,
        }
