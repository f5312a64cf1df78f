from fastapi import APIRouter, Depends

from api.deps import get_current_user
from models.user import User
from schemas.credit import NotificationRead
from services.notification_service import NotificationService

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


@router.get("")
async def list_notifications(
        unread_only: bool = False,
        current_user: User = Depends(get_current_user)
):
    return {"data": await NotificationService.list_for(current_user.id, unread_only)}


@router.post("/read")
async def mark_notifications_read(
        payload: NotificationRead,
        current_user: User = Depends(get_current_user)
):
    updated = await NotificationService.mark_read(current_user.id, payload.ids)
    return {"success": True, "updated": updated}
