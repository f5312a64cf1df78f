from enum import Enum

from tortoise import fields, models

from models.chat_message import ChatMessage


class RoomStatus(str, Enum):
    ACTIVE = "active"
    DEAL_CONFIRMED = "deal_confirmed"
    PAYMENT_REQUESTED = "payment_requested"
    PAYMENT_CONFIRMED = "payment_confirmed"
    DELIVERY_COMPLETED = "delivery_completed"
    EXPIRED = "expired"
    CLOSED = "closed"


class ChatRoom(models.Model):
    id = fields.IntField(pk=True)
    rfq = fields.ForeignKeyField("models.RFQ", related_name="chat_rooms", on_delete=fields.CASCADE)
    quote = fields.OneToOneField("models.Quote", related_name="chat_room", on_delete=fields.CASCADE)
    buyer = fields.ForeignKeyField("models.User", related_name="buyer_rooms", on_delete=fields.CASCADE)
    supplier = fields.ForeignKeyField("models.User", related_name="supplier_rooms", on_delete=fields.CASCADE)

    status = fields.CharEnumField(RoomStatus, default=RoomStatus.ACTIVE)

    created_at = fields.DatetimeField()
    # created_at + CHAT_EXPIRY_DAYS, written once
    expires_at = fields.DatetimeField()
    deal_confirmed_at = fields.DatetimeField(null=True)
    updated_at = fields.DatetimeField(auto_now=True)

    messages: fields.ReverseRelation["ChatMessage"]

    class Meta:
        table = "chat_rooms"
        ordering = ["-updated_at"]

    def __str__(self):
        return f"ChatRoom #{self.id} ({self.status.value})"

    def participant_role(self, user) -> str | None:
        if user.id == self.buyer_id:
            return "buyer"
        if user.id == self.supplier_id:
            return "supplier"
        return None
