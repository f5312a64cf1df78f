from typing import Literal, Optional

from fastapi import APIRouter, Depends, Header

from api.deps import get_current_user, get_idempotency_service, require_role
from models.user import User, UserRole
from schemas.quote import QuoteCreate, QuotePriceUpdate
from services.idempotency import IdempotencyService
from services.quote_service import QuoteService

router = APIRouter(prefix="/api/quotes", tags=["Quotes"])


@router.get("")
async def list_quotes(
        rfq_id: Optional[int] = None,
        role: Optional[Literal["buyer", "supplier"]] = None,
        service: QuoteService = Depends(),
        current_user: User = Depends(get_current_user)
):
    return {"data": await service.list_quotes(current_user, rfq_id, role)}


@router.post("")
async def submit_quote(
        payload: QuoteCreate,
        service: QuoteService = Depends(),
        current_user: User = Depends(require_role([UserRole.SUPPLIER]))
):
    """Send a quote; opens the negotiation chat room"""
    quote, room = await service.submit_quote(current_user, **payload.model_dump())
    return {
        "success": True,
        "data": {
            "quote": quote.to_summary(),
            "chat_room": {"id": room.id, "status": room.status.value, "expires_at": room.expires_at.isoformat()},
        },
    }


# ----------------------------------------
# Accept: confirms the deal and debits the supplier fee
# ----------------------------------------
@router.post("/{quote_id}/accept")
async def accept_quote(
        quote_id: int,
        service: QuoteService = Depends(),
        idempotency: IdempotencyService = Depends(get_idempotency_service),
        idempotency_key: Optional[str] = Header(None, alias="X-Idempotency-Key"),
        current_user: User = Depends(get_current_user)
):
    async def handler():
        quote, room = await service.accept_quote(quote_id, current_user)
        return {
            "success": True,
            "message": "The quote was accepted.",
            "data": {
                "quote": {"id": quote.id, "status": quote.status.value},
                "chat_room": {"id": room.id, "status": room.status.value},
            },
        }

    return await idempotency.run(f"user:{current_user.id}:accept:{quote_id}", idempotency_key, handler)


@router.post("/{quote_id}/reject")
async def reject_quote(
        quote_id: int,
        service: QuoteService = Depends(),
        current_user: User = Depends(get_current_user)
):
    await service.reject_quote(quote_id, current_user)
    return {"success": True, "message": "The quote was declined.", "data": {"quote_id": quote_id}}


@router.patch("/{quote_id}/price")
async def update_price(
        quote_id: int,
        payload: QuotePriceUpdate,
        service: QuoteService = Depends(),
        current_user: User = Depends(get_current_user)
):
    """Renegotiate a pending quote from the chat room"""
    quote = await service.update_price(quote_id, current_user, payload.unit_price)
    return {"success": True, "message": "The price was updated.", "data": quote.to_summary()}
