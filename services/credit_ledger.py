from tortoise.transactions import in_transaction

from core.exceptions import InsufficientCredit, ValidationFailed
from core.logger import db_logger, deal_logger
from models.chat_room import ChatRoom
from models.credit import CreditAccount, CreditLog, CreditLogType


class CreditLedger:
    """
    Append-only supplier credit ledger.

    The balance is the ``balance_after`` of the newest entry. Every write
    locks the supplier's CreditAccount row first, so concurrent writers for
    one supplier are serialized.
    """

    @staticmethod
    async def get_balance(supplier_id: int) -> int:
        latest = await CreditLog.filter(supplier_id=supplier_id).order_by("-id").first()
        return latest.balance_after if latest else 0

    @staticmethod
    async def history(supplier_id: int, limit: int = 50):
        logs = await CreditLog.filter(supplier_id=supplier_id).order_by("-id").limit(limit)
        return [log.to_dict() for log in logs]

    @staticmethod
    async def lock_account(supplier_id: int) -> CreditAccount:
        """Must run inside a transaction."""
        account = await CreditAccount.select_for_update().get_or_none(supplier_id=supplier_id)
        if account is None:
            account = await CreditAccount.create(
                supplier_id=supplier_id,
                balance=await CreditLedger.get_balance(supplier_id)
            )
            db_logger.log_create("CreditAccount", {"id": account.id, "supplier_id": supplier_id})
        return account

    @staticmethod
    async def require_balance(supplier_id: int, required: int) -> int:
        current = await CreditLedger.get_balance(supplier_id)
        if current < required:
            raise InsufficientCredit(required=required, current=current)
        return current

    @staticmethod
    async def _append(
            supplier_id: int,
            amount: int,
            entry_type: CreditLogType,
            description: str,
            room_id: int = None,
            reference_id: int = None
    ) -> CreditLog:
        async with in_transaction():
            account = await CreditLedger.lock_account(supplier_id)
            current = await CreditLedger.get_balance(supplier_id)
            balance_after = current + amount
            if balance_after < 0:
                raise InsufficientCredit(required=-amount, current=current)

            entry = await CreditLog.create(
                supplier_id=supplier_id,
                amount=amount,
                type=entry_type,
                balance_after=balance_after,
                description=description,
                room_id=room_id,
                reference_id=reference_id
            )
            account.balance = balance_after
            await account.save()

        deal_logger.log_ledger(supplier_id, entry_type.value, amount, balance_after)
        return entry

    @staticmethod
    async def debit(
            supplier_id: int,
            amount: int,
            reason: str,
            room_id: int = None,
            reference_id: int = None
    ) -> CreditLog:
        if amount <= 0:
            raise ValidationFailed("Debit amount must be positive")
        return await CreditLedger._append(
            supplier_id, -amount, CreditLogType.USE, reason, room_id, reference_id
        )

    @staticmethod
    async def credit(
            supplier_id: int,
            amount: int,
            reason: str,
            entry_type: CreditLogType = CreditLogType.CHARGE,
            room_id: int = None,
            reference_id: int = None
    ) -> CreditLog:
        if amount <= 0:
            raise ValidationFailed("Credit amount must be positive")
        if entry_type == CreditLogType.USE:
            raise ValidationFailed("Use entries are written by debit()")
        return await CreditLedger._append(
            supplier_id, amount, entry_type, reason, room_id, reference_id
        )

    @staticmethod
    async def refund_room(room: ChatRoom, reason: str) -> int:
        """Reverse whatever was debited for a room and not yet refunded."""
        amounts = await CreditLog.filter(
            room_id=room.id,
            type__in=[CreditLogType.USE, CreditLogType.REFUND]
        ).values_list("amount", flat=True)

        # use entries are negative, refunds positive
        outstanding = -sum(amounts)
        if outstanding <= 0:
            return 0

        await CreditLedger.credit(
            room.supplier_id,
            outstanding,
            reason,
            entry_type=CreditLogType.REFUND,
            room_id=room.id,
            reference_id=room.quote_id
        )
        return outstanding
