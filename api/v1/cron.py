from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status

from core.config import settings
from services.expiry_service import ExpiryService

router = APIRouter(prefix="/api/cron", tags=["Cron"])


def verify_cron_secret(authorization: Optional[str] = Header(None)):
    if authorization != f"Bearer {settings.CRON_SECRET}":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


@router.api_route("/expire-chats", methods=["GET", "POST"], dependencies=[Depends(verify_cron_secret)])
async def expire_chats(service: ExpiryService = Depends()):
    """Expire negotiation rooms past their window and refund their credit"""
    result = await service.sweep()
    return {
        "success": True,
        "message": f"Processed {result['processed_count']} expired chat rooms",
        "data": result,
    }
