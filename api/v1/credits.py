from fastapi import APIRouter, Depends

from api.deps import require_role
from models.user import User, UserRole
from schemas.credit import CreditChargeCreate
from services.credit_charge_service import CreditChargeService
from services.credit_ledger import CreditLedger

router = APIRouter(prefix="/api/supplier/credits", tags=["Credits"])


@router.get("")
async def get_credits(
        current_user: User = Depends(require_role([UserRole.SUPPLIER]))
):
    """Balance plus the latest ledger entries"""
    return {
        "balance": await CreditLedger.get_balance(current_user.id),
        "logs": await CreditLedger.history(current_user.id),
    }


@router.post("/request")
async def request_charge(
        payload: CreditChargeCreate,
        current_user: User = Depends(require_role([UserRole.SUPPLIER]))
):
    """Bank-transfer top-up request; credited after admin approval"""
    charge = await CreditChargeService.request_charge(current_user, payload.amount)
    return {
        "success": True,
        "message": "Charge request received. Credit is added once the transfer is confirmed.",
        "request": charge.to_dict(),
    }


@router.get("/request")
async def list_charge_requests(
        current_user: User = Depends(require_role([UserRole.SUPPLIER]))
):
    return await CreditChargeService.list_for_supplier(current_user.id)
