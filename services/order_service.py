from core.exceptions import NotAuthorized, NotFound
from models.order import Order
from models.user import User, UserRole


class OrderService:

    @staticmethod
    async def list_orders(user: User, role: str = None):
        if role == "supplier" or (role is None and user.role == UserRole.SUPPLIER):
            query = Order.filter(supplier_id=user.id)
        else:
            query = Order.filter(buyer_id=user.id)

        orders = await query.order_by("-created_at").prefetch_related("rfq", "quote", "buyer", "supplier")
        return [OrderService.serialize(order) for order in orders]

    @staticmethod
    async def get_order(order_id: int, user: User):
        order = await Order.get_or_none(id=order_id).prefetch_related("rfq", "quote", "buyer", "supplier")
        if order is None:
            raise NotFound("Order", order_id)
        if not user.is_admin and user.id not in (order.buyer_id, order.supplier_id):
            raise NotAuthorized("You are not a party to this order")
        return OrderService.serialize(order)

    @staticmethod
    def serialize(order: Order):
        data = order.to_summary()
        data.update({
            "room_id": order.room_id,
            "rfq": {
                "id": order.rfq.id,
                "title": order.rfq.title,
                "category": order.rfq.category,
                "quantity": order.rfq.quantity,
                "unit": order.rfq.unit,
                "delivery_date": order.rfq.delivery_date.isoformat() if order.rfq.delivery_date else None,
            },
            "quote": {
                "id": order.quote.id,
                "unit_price": order.quote.unit_price,
                "total_price": order.quote.total_price,
                "delivery_date": order.quote.delivery_date.isoformat() if order.quote.delivery_date else None,
            },
            "buyer": order.buyer.to_summary(),
            # the buyer pays by bank transfer to this account
            "supplier": order.supplier.to_summary(include_bank=True),
            "created_at": order.created_at.isoformat() if order.created_at else None,
            "updated_at": order.updated_at.isoformat() if order.updated_at else None,
        })
        return data
