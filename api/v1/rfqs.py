from fastapi import APIRouter, Depends, Query

from api.deps import get_current_user, require_role
from models.user import User, UserRole
from schemas.rfq import RFQCreate
from services.rfq_service import RFQService

router = APIRouter(prefix="/api/rfqs", tags=["RFQs"])


@router.post("")
async def create_rfq(
        payload: RFQCreate,
        current_user: User = Depends(require_role([UserRole.BUYER]))
):
    rfq = await RFQService.create_rfq(current_user, **payload.model_dump())
    return {"success": True, "data": RFQService.serialize(rfq)}


@router.get("")
async def list_rfqs(
        page: int = Query(1, ge=1),
        current_user: User = Depends(get_current_user)
):
    """Open RFQs for suppliers, own RFQs for buyers"""
    return {"data": await RFQService.list_rfqs(current_user, page)}
