from datetime import datetime, timedelta

from tortoise.transactions import in_transaction

from core.clock import as_utc, utcnow
from core.config import settings
from core.logger import deal_logger
from models.chat_room import ChatRoom, RoomStatus
from models.quote import Quote, QuoteStatus
from services.credit_ledger import CreditLedger
from services.notification_service import NotificationService


def compute_expires_at(created_at: datetime) -> datetime:
    return created_at + timedelta(days=settings.CHAT_EXPIRY_DAYS)


class ExpiryService:
    """
    Expires negotiation rooms that never reached a deal.

    A confirmed deal freezes the clock: only ``active`` rooms without
    ``deal_confirmed_at`` can expire. Runs lazily on access and from the
    cron sweep.
    """

    @staticmethod
    def is_due(room: ChatRoom, now: datetime = None) -> bool:
        now = now or utcnow()
        return (
            room.status == RoomStatus.ACTIVE
            and room.deal_confirmed_at is None
            and as_utc(now) > as_utc(room.expires_at)
        )

    async def expire_if_due(self, room: ChatRoom, now: datetime = None) -> bool:
        if not self.is_due(room, now):
            return False

        expired = await self.expire_room(room.id, now) is not None
        await room.refresh_from_db()
        return expired

    async def expire_room(self, room_id: int, now: datetime = None) -> int | None:
        """Returns the refunded amount, or None when the room was not due."""
        now = now or utcnow()

        async with in_transaction():
            room = await ChatRoom.select_for_update().get(id=room_id)
            if not self.is_due(room, now):
                return None

            previous = room.status
            room.status = RoomStatus.EXPIRED
            await room.save()

            await Quote.filter(id=room.quote_id, status=QuoteStatus.PENDING).update(status=QuoteStatus.EXPIRED)

            await room.fetch_related("rfq")
            refunded = await CreditLedger.refund_room(room, f"Chat expiry refund ({room.rfq.title})")

            supplier_message = f'The chat room for "{room.rfq.title}" has expired.'
            if refunded:
                supplier_message += f" {refunded:,} won of credit was refunded."
            await NotificationService.notify(
                room.supplier_id, "chat_expired", "Chat room expired", supplier_message, "/supplier/credits"
            )
            await NotificationService.notify(
                room.buyer_id, "chat_expired", "Chat room expired",
                f'The chat room for "{room.rfq.title}" has expired. Check the other quotes on your RFQ.',
                "/buyer/rfqs"
            )

        deal_logger.log_transition(room.id, previous.value, RoomStatus.EXPIRED.value)
        return refunded

    async def sweep(self, now: datetime = None) -> dict:
        now = now or utcnow()

        due_ids = await ChatRoom.filter(
            status=RoomStatus.ACTIVE,
            deal_confirmed_at__isnull=True,
            expires_at__lt=now
        ).values_list("id", flat=True)

        processed_count = 0
        refunded_amount = 0
        for room_id in due_ids:
            try:
                refunded = await self.expire_room(room_id, now)
            except Exception as e:
                deal_logger.log_error(f"expire_room({room_id})", e)
                raise
            if refunded is None:
                continue
            processed_count += 1
            refunded_amount += refunded

        result = {
            "processed_count": processed_count,
            "refunded_amount": refunded_amount,
            "total_expired_rooms": len(due_ids),
        }
        deal_logger.log_sweep(result)
        return result
