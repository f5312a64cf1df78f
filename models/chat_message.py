from enum import Enum

from tortoise import fields, models


class SenderType(str, Enum):
    BUYER = "buyer"
    SUPPLIER = "supplier"
    SYSTEM = "system"


class ChatMessage(models.Model):
    id = fields.IntField(pk=True)

    room = fields.ForeignKeyField(
        "models.ChatRoom",
        related_name="messages",
        on_delete=fields.CASCADE
    )
    # null for system messages
    sender = fields.ForeignKeyField(
        "models.User",
        related_name="sent_messages",
        null=True,
        on_delete=fields.SET_NULL
    )
    sender_type = fields.CharEnumField(SenderType)

    content = fields.TextField()
    image = fields.CharField(max_length=400, null=True)

    is_read = fields.BooleanField(default=False)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "chat_messages"
        ordering = ["id"]
