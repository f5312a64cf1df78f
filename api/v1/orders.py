from typing import Literal, Optional

from fastapi import APIRouter, Depends

from api.deps import get_current_user
from models.user import User
from services.order_service import OrderService

router = APIRouter(prefix="/api/orders", tags=["Orders"])


@router.get("")
async def list_orders(
        role: Optional[Literal["buyer", "supplier"]] = None,
        current_user: User = Depends(get_current_user)
):
    return {"data": await OrderService.list_orders(current_user, role)}


@router.get("/{order_id}")
async def get_order(
        order_id: int,
        current_user: User = Depends(get_current_user)
):
    return {"data": await OrderService.get_order(order_id, current_user)}
