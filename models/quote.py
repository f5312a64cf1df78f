from enum import Enum

from tortoise import fields, models


class QuoteStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"


class Quote(models.Model):
    id = fields.IntField(pk=True)
    rfq = fields.ForeignKeyField("models.RFQ", related_name="quotes", on_delete=fields.CASCADE)
    supplier = fields.ForeignKeyField("models.User", related_name="quotes", on_delete=fields.CASCADE)

    # whole won, no subunits
    unit_price = fields.BigIntField()
    total_price = fields.BigIntField()
    delivery_date = fields.DateField(null=True)
    note = fields.TextField(null=True)
    attachments = fields.JSONField(default=list)

    status = fields.CharEnumField(QuoteStatus, default=QuoteStatus.PENDING)
    # rate applied when the buyer accepted the quote
    fee_rate = fields.FloatField(null=True)

    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "quotes"
        ordering = ["-created_at"]

    def to_summary(self):
        return {
            "id": self.id,
            "rfq_id": self.rfq_id,
            "supplier_id": self.supplier_id,
            "unit_price": self.unit_price,
            "total_price": self.total_price,
            "delivery_date": self.delivery_date.isoformat() if self.delivery_date else None,
            "note": self.note,
            "attachments": self.attachments or [],
            "status": self.status.value,
            "fee_rate": self.fee_rate,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
