from tortoise.transactions import in_transaction

from core.clock import utcnow
from core.config import settings
from core.exceptions import AlreadyProcessed, NotAuthorized, NotFound, ValidationFailed
from core.logger import db_logger
from models.credit import ChargeStatus, CreditCharge, CreditLogType
from models.user import User, UserRole
from services.credit_ledger import CreditLedger
from services.notification_service import NotificationService


class CreditChargeService:
    """Manual bank-transfer top-ups, approved by an admin."""

    @staticmethod
    async def request_charge(supplier: User, amount: int) -> CreditCharge:
        if supplier.role != UserRole.SUPPLIER:
            raise NotAuthorized("Only suppliers can request a credit charge")

        if amount < settings.CREDIT_CHARGE_MIN:
            raise ValidationFailed(f"Minimum charge amount is {settings.CREDIT_CHARGE_MIN:,} won")
        if amount > settings.CREDIT_CHARGE_MAX:
            raise ValidationFailed(f"Maximum charge amount is {settings.CREDIT_CHARGE_MAX:,} won")

        existing = await CreditCharge.filter(
            supplier_id=supplier.id,
            amount=amount,
            status=ChargeStatus.PENDING
        ).first()
        if existing:
            raise AlreadyProcessed(
                "A pending request for the same amount already exists",
                {"existing_request_id": existing.id}
            )

        charge = await CreditCharge.create(supplier_id=supplier.id, amount=amount)
        db_logger.log_create("CreditCharge", charge.to_dict())

        admin_ids = await User.filter(role=UserRole.ADMIN).values_list("id", flat=True)
        for admin_id in admin_ids:
            await NotificationService.notify(
                admin_id,
                "system",
                "Credit charge request",
                f"{supplier.company_name} requested a {amount:,} won charge.",
                "/admin/credits"
            )

        return charge

    @staticmethod
    async def list_for_supplier(supplier_id: int, limit: int = 20):
        charges = await CreditCharge.filter(supplier_id=supplier_id).order_by("-id").limit(limit)
        return [c.to_dict() for c in charges]

    @staticmethod
    async def list_pending():
        charges = await CreditCharge.filter(status=ChargeStatus.PENDING).order_by("-id").prefetch_related("supplier")
        result = []
        for charge in charges:
            data = charge.to_dict()
            data["supplier"] = {
                **charge.supplier.to_summary(),
                "email": charge.supplier.email,
                "balance": await CreditLedger.get_balance(charge.supplier_id),
            }
            result.append(data)
        return result

    @staticmethod
    async def _lock_pending(request_id: int) -> CreditCharge:
        charge = await CreditCharge.select_for_update().get_or_none(id=request_id)
        if charge is None:
            raise NotFound("Credit charge request", request_id)
        if charge.status != ChargeStatus.PENDING:
            raise AlreadyProcessed("Request already processed", {"status": charge.status.value})
        return charge

    @staticmethod
    async def approve(request_id: int, note: str = None) -> int:
        async with in_transaction():
            charge = await CreditChargeService._lock_pending(request_id)

            description = "[Admin approved] bank transfer charge"
            if note:
                description += f" - {note}"
            entry = await CreditLedger.credit(
                charge.supplier_id,
                charge.amount,
                description,
                entry_type=CreditLogType.CHARGE,
                reference_id=charge.id
            )

            charge.status = ChargeStatus.COMPLETED
            charge.completed_at = utcnow()
            charge.note = note
            await charge.save()

            await NotificationService.notify(
                charge.supplier_id,
                "system",
                "Credit charged",
                f"{charge.amount:,} won was charged. Current balance: {entry.balance_after:,} won",
                "/supplier/credits"
            )

        db_logger.log_update("CreditCharge", charge.id, {"status": charge.status.value})
        return entry.balance_after

    @staticmethod
    async def reject(request_id: int, note: str = None) -> None:
        async with in_transaction():
            charge = await CreditChargeService._lock_pending(request_id)
            charge.status = ChargeStatus.CANCELLED
            charge.completed_at = utcnow()
            charge.note = note
            await charge.save()

            reason = f" Reason: {note}" if note else ""
            await NotificationService.notify(
                charge.supplier_id,
                "system",
                "Credit charge request rejected",
                f"Your {charge.amount:,} won charge request was rejected.{reason}",
                "/supplier/credits"
            )

        db_logger.log_update("CreditCharge", charge.id, {"status": charge.status.value})
