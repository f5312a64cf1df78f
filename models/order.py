from enum import Enum

from tortoise import fields, models


class OrderStatus(str, Enum):
    PAYMENT_PENDING = "payment_pending"
    PREPARING = "preparing"
    SHIPPING = "shipping"
    COMPLETED = "completed"


class Order(models.Model):
    id = fields.IntField(pk=True)
    room = fields.OneToOneField("models.ChatRoom", related_name="order", on_delete=fields.CASCADE)
    rfq = fields.ForeignKeyField("models.RFQ", related_name="orders", on_delete=fields.CASCADE)
    quote = fields.ForeignKeyField("models.Quote", related_name="orders", on_delete=fields.CASCADE)
    buyer = fields.ForeignKeyField("models.User", related_name="buyer_orders", on_delete=fields.CASCADE)
    supplier = fields.ForeignKeyField("models.User", related_name="supplier_orders", on_delete=fields.CASCADE)

    status = fields.CharEnumField(OrderStatus, default=OrderStatus.PREPARING)
    product_amount = fields.BigIntField()
    commission_amount = fields.BigIntField()
    total_amount = fields.BigIntField()

    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "orders"
        ordering = ["-created_at"]

    def to_summary(self):
        return {
            "id": self.id,
            "status": self.status.value,
            "product_amount": self.product_amount,
            "commission_amount": self.commission_amount,
            "total_amount": self.total_amount,
        }
