from enum import Enum

from tortoise import fields, models


class RFQStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class RFQ(models.Model):
    id = fields.IntField(pk=True)
    buyer = fields.ForeignKeyField("models.User", related_name="rfqs", on_delete=fields.CASCADE)

    title = fields.CharField(max_length=255)
    category = fields.CharField(max_length=100, null=True)
    quantity = fields.IntField(default=1)
    unit = fields.CharField(max_length=20, default="ea")
    description = fields.TextField(null=True)
    delivery_date = fields.DateField(null=True)

    status = fields.CharEnumField(RFQStatus, default=RFQStatus.OPEN)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "rfqs"
        ordering = ["-created_at"]

    def __str__(self):
        return f"RFQ #{self.id}: {self.title}"
