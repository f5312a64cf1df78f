from datetime import date, datetime

from tortoise.transactions import in_transaction

from core.clock import utcnow
from core.exceptions import (
    AlreadyProcessed,
    InsufficientContext,
    InsufficientCredit,
    InvalidStateTransition,
    NotAuthorized,
    NotFound,
    QuoteNotPending,
    ValidationFailed,
)
from core.logger import db_logger, deal_logger
from models.chat_room import ChatRoom, RoomStatus
from models.order import Order, OrderStatus
from models.quote import Quote, QuoteStatus
from models.rfq import RFQ, RFQStatus
from models.user import User, UserRole
from services.chat_service import ChatService
from services.credit_ledger import CreditLedger
from services.deal_lifecycle import apply_transition
from services.expiry_service import ExpiryService
from services.fee_policy import FeePolicy, compute_fee
from services.notification_service import NotificationService


class QuoteService:

    def __init__(self):
        self.chat = ChatService()

    # --------------------------------------
    # Supplier submits a quote; opens the negotiation room
    # --------------------------------------
    async def submit_quote(
            self,
            supplier: User,
            rfq_id: int,
            unit_price: int,
            delivery_date: date = None,
            note: str = None,
            attachments: list = None,
            now: datetime = None
    ):
        if supplier.role != UserRole.SUPPLIER:
            raise NotAuthorized("Only suppliers can submit quotes")
        if unit_price <= 0:
            raise ValidationFailed("Unit price must be positive")

        rfq = await RFQ.get_or_none(id=rfq_id)
        if rfq is None:
            raise NotFound("RFQ", rfq_id)
        if rfq.status != RFQStatus.OPEN:
            raise InsufficientContext(f"RFQ {rfq_id} is not open for quotes")

        duplicate = await Quote.filter(
            rfq_id=rfq.id, supplier_id=supplier.id, status=QuoteStatus.PENDING
        ).exists()
        if duplicate:
            raise AlreadyProcessed("You already have a pending quote on this RFQ")

        async with in_transaction():
            quote = await Quote.create(
                rfq_id=rfq.id,
                supplier_id=supplier.id,
                unit_price=unit_price,
                total_price=unit_price * rfq.quantity,
                delivery_date=delivery_date,
                note=note,
                attachments=attachments or []
            )
            room = await self.chat.open_room(quote, rfq, now)
            await self.chat.post_system_message(
                room, f"{supplier.company_name} sent a quote of {quote.total_price:,} won.", supplier
            )
            await NotificationService.notify(
                rfq.buyer_id, "quote_received", "New quote received",
                f'{supplier.company_name} quoted "{rfq.title}".', f"/chat/{room.id}"
            )

        db_logger.log_create("Quote", quote.to_summary())
        return quote, room

    async def list_quotes(self, user: User, rfq_id: int = None, role: str = None):
        query = Quote.all()
        if rfq_id:
            query = query.filter(rfq_id=rfq_id)

        if role == "supplier":
            query = query.filter(supplier_id=user.id)
        elif role == "buyer":
            query = query.filter(rfq__buyer_id=user.id)
        elif user.role == UserRole.SUPPLIER:
            query = query.filter(supplier_id=user.id)
        elif not user.is_admin:
            query = query.filter(rfq__buyer_id=user.id)

        quotes = await query.order_by("-created_at").prefetch_related("rfq", "supplier")
        result = []
        for quote in quotes:
            data = quote.to_summary()
            data["rfq"] = {"id": quote.rfq.id, "title": quote.rfq.title, "quantity": quote.rfq.quantity}
            data["supplier"] = {"company_name": quote.supplier.company_name}
            result.append(data)
        return result

    async def _load_owned(self, quote_id: int, buyer: User) -> Quote:
        quote = await Quote.get_or_none(id=quote_id).prefetch_related("rfq")
        if quote is None:
            raise NotFound("Quote", quote_id)
        if quote.rfq.buyer_id != buyer.id:
            raise NotAuthorized("This quote is not on one of your RFQs")
        return quote

    # --------------------------------------
    # Buyer accepts a quote: the deal is confirmed
    # --------------------------------------
    async def accept_quote(self, quote_id: int, buyer: User, now: datetime = None):
        """
        Confirm the deal behind a quote in one transaction.

        The quote becomes accepted, its sibling pending quotes are rejected,
        the RFQ moves to in_progress, the room moves to deal_confirmed and the
        supplier is debited the platform fee. The supplier's credit account
        is locked before the balance check, and nothing is written when the
        balance is short.
        """
        now = now or utcnow()
        await self._load_owned(quote_id, buyer)

        async with in_transaction():
            quote = await Quote.select_for_update().get(id=quote_id)
            if quote.status != QuoteStatus.PENDING:
                raise QuoteNotPending(quote.id, quote.status.value)

            rfq = await RFQ.select_for_update().get(id=quote.rfq_id)
            if rfq.status != RFQStatus.OPEN:
                raise InsufficientContext(f"RFQ {rfq.id} is no longer open")

            room = await ChatRoom.select_for_update().get_or_none(quote_id=quote.id)
            if room is not None:
                if room.rfq_id != rfq.id or room.buyer_id != buyer.id or room.supplier_id != quote.supplier_id:
                    raise InsufficientContext("Chat room does not match the quote")
                if room.status != RoomStatus.ACTIVE or ExpiryService.is_due(room, now):
                    raise InvalidStateTransition(
                        "The negotiation for this quote is no longer active",
                        current_status=room.status.value
                    )

            fee_rate = await FeePolicy.rate_for(buyer.id, quote.supplier_id)
            fee = compute_fee(quote.total_price, fee_rate)

            await CreditLedger.lock_account(quote.supplier_id)
            try:
                await CreditLedger.require_balance(quote.supplier_id, fee)
            except InsufficientCredit as e:
                deal_logger.logger.warning(f"⛔ accept_quote {quote.id}: {e.message}")
                raise

            if room is None:
                room = await self.chat.open_room(quote, rfq, now)

            quote.status = QuoteStatus.ACCEPTED
            quote.fee_rate = fee_rate
            await quote.save()

            sibling_ids = await Quote.filter(
                rfq_id=rfq.id, status=QuoteStatus.PENDING
            ).exclude(id=quote.id).values_list("id", flat=True)
            if sibling_ids:
                await Quote.filter(id__in=sibling_ids).update(status=QuoteStatus.REJECTED)
                sibling_rooms = await ChatRoom.select_for_update().filter(
                    quote_id__in=sibling_ids, status=RoomStatus.ACTIVE
                )
                for sibling_room in sibling_rooms:
                    await apply_transition(sibling_room, RoomStatus.CLOSED, buyer.id, now)
                    await self.chat.post_system_message(
                        sibling_room, "The buyer selected another quote. This chat room is closed.", buyer
                    )

            rfq.status = RFQStatus.IN_PROGRESS
            await rfq.save()

            await apply_transition(room, RoomStatus.DEAL_CONFIRMED, buyer.id, now)

            if fee > 0:
                await CreditLedger.debit(
                    quote.supplier_id,
                    fee,
                    f"Deal fee ({rfq.title})",
                    room_id=room.id,
                    reference_id=quote.id
                )

            await Order.create(
                room_id=room.id,
                rfq_id=rfq.id,
                quote_id=quote.id,
                buyer_id=buyer.id,
                supplier_id=quote.supplier_id,
                status=OrderStatus.PAYMENT_PENDING,
                product_amount=quote.total_price,
                commission_amount=fee,
                total_amount=quote.total_price
            )

            await self.chat.post_system_message(
                room, f"{buyer.company_name} accepted the quote. The deal is confirmed.", buyer
            )
            await NotificationService.notify(
                quote.supplier_id, "deal_confirmed", "Deal confirmed",
                f'"{rfq.title}" was confirmed. {fee:,} won of credit was used.', f"/chat/{room.id}"
            )
            for supplier_id in await Quote.filter(id__in=sibling_ids).values_list("supplier_id", flat=True):
                await NotificationService.notify(
                    supplier_id, "quote_rejected", "Quote not selected",
                    f'The buyer selected another quote for "{rfq.title}".', "/supplier/quotes"
                )

        db_logger.log_update("Quote", quote.id, {
            "status": quote.status.value,
            "fee_rate": fee_rate,
            "rejected_siblings": list(sibling_ids),
        })
        return quote, room

    # --------------------------------------
    # Renegotiate the price while the deal is still open
    # --------------------------------------
    async def update_price(self, quote_id: int, user: User, unit_price: int, now: datetime = None):
        """
        Change the unit price of a pending quote from inside its negotiation.

        Either side of the room may propose the new price. The total is
        recomputed from the RFQ quantity. Nothing is debited here; the fee is
        charged on the accepted total.
        """
        if unit_price <= 0:
            raise ValidationFailed("Unit price must be positive")

        quote = await Quote.get_or_none(id=quote_id).prefetch_related("rfq")
        if quote is None:
            raise NotFound("Quote", quote_id)
        if user.id not in (quote.supplier_id, quote.rfq.buyer_id):
            raise NotAuthorized("Only the buyer or the supplier of this quote can change its price")

        room = await ChatRoom.get_or_none(quote_id=quote.id)
        if room is not None:
            await self.chat.expiry.expire_if_due(room, now)

        async with in_transaction():
            quote = await Quote.select_for_update().get(id=quote_id)
            if quote.status != QuoteStatus.PENDING:
                raise QuoteNotPending(quote.id, quote.status.value)

            room = await ChatRoom.select_for_update().get_or_none(quote_id=quote.id)
            if room is not None and room.status != RoomStatus.ACTIVE:
                raise InvalidStateTransition(
                    "The negotiation for this quote is no longer active",
                    current_status=room.status.value
                )

            rfq = await RFQ.get(id=quote.rfq_id)
            old_total = quote.total_price
            quote.unit_price = unit_price
            quote.total_price = unit_price * rfq.quantity
            await quote.save(update_fields=["unit_price", "total_price"])

            if room is not None:
                await self.chat.post_system_message(
                    room, f"The price was changed: {old_total:,} won -> {quote.total_price:,} won.", user
                )
                counterpart_id = room.buyer_id if user.id == room.supplier_id else room.supplier_id
                await NotificationService.notify(
                    counterpart_id, "quote_updated", "Quote price changed",
                    f'The price for "{rfq.title}" is now {quote.total_price:,} won.', f"/chat/{room.id}"
                )

        db_logger.log_update("Quote", quote.id, {
            "unit_price": unit_price,
            "total_price": quote.total_price,
            "previous_total": old_total,
            "by": user.id,
        })
        return quote

    # --------------------------------------
    # Buyer rejects a quote; its room closes
    # --------------------------------------
    async def reject_quote(self, quote_id: int, buyer: User):
        await self._load_owned(quote_id, buyer)

        async with in_transaction():
            quote = await Quote.select_for_update().get(id=quote_id)
            if quote.status != QuoteStatus.PENDING:
                raise QuoteNotPending(quote.id, quote.status.value)

            quote.status = QuoteStatus.REJECTED
            await quote.save()

            room = await ChatRoom.select_for_update().get_or_none(quote_id=quote.id)
            if room is not None and room.status == RoomStatus.ACTIVE:
                await apply_transition(room, RoomStatus.CLOSED, buyer.id)
                await self.chat.post_system_message(room, "The buyer declined this quote.", buyer)

            await quote.fetch_related("rfq")
            await NotificationService.notify(
                quote.supplier_id, "quote_rejected", "Quote declined",
                f'Your quote for "{quote.rfq.title}" was declined.', "/supplier/quotes"
            )

        db_logger.log_update("Quote", quote.id, {"status": quote.status.value})
        return quote
