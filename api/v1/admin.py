from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.deps import require_role
from models.chat_room import RoomStatus
from models.user import User, UserRole
from schemas.credit import CreditChargeDecision
from services.chat_service import ChatService
from services.credit_charge_service import CreditChargeService

router = APIRouter(prefix="/api/admin", tags=["Admin"])

admin_only = require_role([UserRole.ADMIN])


@router.get("/credits/requests")
async def pending_charge_requests(current_user: User = Depends(admin_only)):
    return await CreditChargeService.list_pending()


@router.post("/credits/requests")
async def decide_charge_request(
        payload: CreditChargeDecision,
        current_user: User = Depends(admin_only)
):
    if payload.action == "approve":
        balance = await CreditChargeService.approve(payload.request_id, payload.note)
        return {"success": True, "message": "Charge approved", "balance": balance}

    await CreditChargeService.reject(payload.request_id, payload.note)
    return {"success": True, "message": "Charge request rejected"}


@router.get("/chats")
async def all_chats(
        status: Optional[RoomStatus] = None,
        page: int = Query(1, ge=1),
        service: ChatService = Depends(),
        current_user: User = Depends(admin_only)
):
    return {"data": await service.list_all_rooms(status, page)}
