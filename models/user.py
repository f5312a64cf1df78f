from enum import Enum

from tortoise import fields, models


class UserRole(str, Enum):
    BUYER = "buyer"
    SUPPLIER = "supplier"
    ADMIN = "admin"


class User(models.Model):
    id = fields.IntField(pk=True)
    email = fields.CharField(max_length=255, unique=True)
    company_name = fields.CharField(max_length=255)
    contact_name = fields.CharField(max_length=100, null=True)
    phone = fields.CharField(max_length=20, null=True)

    role = fields.CharEnumField(UserRole, default=UserRole.BUYER)

    # payout account shown to the buyer in the chat room (suppliers only)
    bank_name = fields.CharField(max_length=100, null=True)
    bank_account = fields.CharField(max_length=100, null=True)
    bank_holder = fields.CharField(max_length=100, null=True)

    created_at = fields.DatetimeField(auto_now_add=True)
    is_active = fields.BooleanField(default=True)

    class Meta:
        table = "users"

    def __str__(self):
        return f"{self.company_name} ({self.role.value})"

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def to_summary(self, include_bank=False):
        data = {
            "id": self.id,
            "company_name": self.company_name,
            "contact_name": self.contact_name,
            "phone": self.phone,
        }
        if include_bank:
            data.update({
                "bank_name": self.bank_name,
                "bank_account": self.bank_account,
                "bank_holder": self.bank_holder,
            })
        return data
