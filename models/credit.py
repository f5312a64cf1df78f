from enum import Enum

from tortoise import fields, models


class CreditLogType(str, Enum):
    CHARGE = "charge"
    USE = "use"
    REFUND = "refund"


class ChargeStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CreditAccount(models.Model):
    """One row per supplier; locked for every ledger write."""
    id = fields.IntField(pk=True)
    supplier = fields.OneToOneField("models.User", related_name="credit_account", on_delete=fields.CASCADE)
    balance = fields.BigIntField(default=0)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "credit_accounts"


class CreditLog(models.Model):
    id = fields.IntField(pk=True)
    supplier = fields.ForeignKeyField("models.User", related_name="credit_logs", on_delete=fields.CASCADE)

    # signed: negative for use
    amount = fields.BigIntField()
    type = fields.CharEnumField(CreditLogType)
    balance_after = fields.BigIntField()
    description = fields.CharField(max_length=255)

    room = fields.ForeignKeyField(
        "models.ChatRoom",
        related_name="credit_logs",
        null=True,
        on_delete=fields.SET_NULL
    )
    reference_id = fields.IntField(null=True)

    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "credit_logs"
        ordering = ["-id"]

    def to_dict(self):
        return {
            "id": self.id,
            "amount": self.amount,
            "type": self.type.value,
            "balance_after": self.balance_after,
            "description": self.description,
            "room_id": self.room_id,
            "reference_id": self.reference_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class CreditCharge(models.Model):
    id = fields.IntField(pk=True)
    supplier = fields.ForeignKeyField("models.User", related_name="credit_charges", on_delete=fields.CASCADE)
    amount = fields.BigIntField()
    status = fields.CharEnumField(ChargeStatus, default=ChargeStatus.PENDING)
    payment_method = fields.CharField(max_length=20, default="bank_transfer")
    note = fields.CharField(max_length=255, null=True)

    created_at = fields.DatetimeField(auto_now_add=True)
    completed_at = fields.DatetimeField(null=True)

    class Meta:
        table = "credit_charges"
        ordering = ["-created_at"]

    def to_dict(self):
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "amount": self.amount,
            "status": self.status.value,
            "payment_method": self.payment_method,
            "note": self.note,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
