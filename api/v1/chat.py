from typing import Optional

from fastapi import APIRouter, Depends, Header, Query

from api.deps import get_current_user, get_idempotency_service
from models.user import User
from schemas.chat import MessageCreate, RoomActionRequest
from services.chat_service import ChatService
from services.deal_lifecycle import DealLifecycleService
from services.idempotency import IdempotencyService

router = APIRouter(prefix="/api/chat", tags=["Chat"])


# ----------------------------------------
# 1. Rooms of the current user
# ----------------------------------------
@router.get("/rooms")
async def list_rooms(
        page: int = Query(1, ge=1),
        service: ChatService = Depends(),
        current_user: User = Depends(get_current_user)
):
    return {"success": True, "data": await service.list_rooms(current_user, page)}


# ----------------------------------------
# 2. Room detail (role resolved server-side)
# ----------------------------------------
@router.get("/rooms/{room_id}")
async def room_detail(
        room_id: int,
        service: ChatService = Depends(),
        current_user: User = Depends(get_current_user)
):
    return await service.get_room_detail(room_id, current_user)


# ----------------------------------------
# 3. Deal actions: request_payment | confirm_payment | complete_delivery
# ----------------------------------------
@router.post("/rooms/{room_id}")
async def room_action(
        room_id: int,
        payload: RoomActionRequest,
        service: DealLifecycleService = Depends(),
        idempotency: IdempotencyService = Depends(get_idempotency_service),
        idempotency_key: Optional[str] = Header(None, alias="X-Idempotency-Key"),
        current_user: User = Depends(get_current_user)
):
    async def handler():
        room = await service.perform_action(
            room_id, current_user, payload.action, payload.payment_method
        )
        return {
            "success": True,
            "chat_room": {"id": room.id, "status": room.status.value},
        }

    scope = f"user:{current_user.id}:room:{room_id}:{payload.action}"
    return await idempotency.run(scope, idempotency_key, handler)


# ----------------------------------------
# 4. Messages (clients poll with ``after``)
# ----------------------------------------
@router.get("/rooms/{room_id}/messages")
async def room_messages(
        room_id: int,
        after: Optional[int] = Query(None, ge=0),
        service: ChatService = Depends(),
        current_user: User = Depends(get_current_user)
):
    return {"success": True, "data": await service.get_messages(room_id, current_user, after)}


@router.post("/rooms/{room_id}/messages")
async def send_message(
        room_id: int,
        payload: MessageCreate,
        service: ChatService = Depends(),
        current_user: User = Depends(get_current_user)
):
    msg = await service.send_message(room_id, current_user, payload.content, payload.image)
    return {"success": True, "data": msg}


@router.post("/rooms/{room_id}/read")
async def mark_read(
        room_id: int,
        service: ChatService = Depends(),
        current_user: User = Depends(get_current_user)
):
    updated = await service.mark_read(room_id, current_user)
    return {"success": True, "updated": updated}
