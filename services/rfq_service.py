from datetime import date

from core.exceptions import NotAuthorized, ValidationFailed
from core.logger import db_logger
from models.rfq import RFQ, RFQStatus
from models.user import User, UserRole


class RFQService:

    @staticmethod
    async def create_rfq(
            buyer: User,
            title: str,
            quantity: int,
            unit: str = "ea",
            category: str = None,
            description: str = None,
            delivery_date: date = None
    ) -> RFQ:
        if buyer.role != UserRole.BUYER:
            raise NotAuthorized("Only buyers can post RFQs")
        if quantity <= 0:
            raise ValidationFailed("Quantity must be positive")

        rfq = await RFQ.create(
            buyer_id=buyer.id,
            title=title,
            quantity=quantity,
            unit=unit,
            category=category,
            description=description,
            delivery_date=delivery_date
        )
        db_logger.log_create("RFQ", {"id": rfq.id, "title": title, "buyer_id": buyer.id})
        return rfq

    @staticmethod
    async def list_rfqs(user: User, page: int = 1, size: int = 20):
        # suppliers browse open RFQs; buyers see their own
        if user.role == UserRole.SUPPLIER:
            query = RFQ.filter(status=RFQStatus.OPEN)
        elif user.is_admin:
            query = RFQ.all()
        else:
            query = RFQ.filter(buyer_id=user.id)

        rfqs = await query.order_by("-created_at").offset((page - 1) * size).limit(size)
        return [RFQService.serialize(rfq) for rfq in rfqs]

    @staticmethod
    def serialize(rfq: RFQ):
        return {
            "id": rfq.id,
            "buyer_id": rfq.buyer_id,
            "title": rfq.title,
            "category": rfq.category,
            "quantity": rfq.quantity,
            "unit": rfq.unit,
            "description": rfq.description,
            "delivery_date": rfq.delivery_date.isoformat() if rfq.delivery_date else None,
            "status": rfq.status.value,
            "created_at": rfq.created_at.isoformat() if rfq.created_at else None,
        }
