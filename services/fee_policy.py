from decimal import Decimal, ROUND_HALF_UP

from core.config import settings
from models.order import Order, OrderStatus


def compute_fee(total_price: int, fee_rate: float) -> int:
    """Platform fee in whole won, rounded half up."""
    fee = Decimal(total_price) * Decimal(str(fee_rate))
    return int(fee.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class FeePolicy:

    @staticmethod
    async def is_repeat_trade(buyer_id: int, supplier_id: int) -> bool:
        return await Order.filter(
            buyer_id=buyer_id,
            supplier_id=supplier_id,
            status=OrderStatus.COMPLETED
        ).exists()

    @staticmethod
    async def rate_for(buyer_id: int, supplier_id: int) -> float:
        """First trade between a pair pays the full rate; later trades the repeat rate."""
        if await FeePolicy.is_repeat_trade(buyer_id, supplier_id):
            return settings.REPEAT_TRADE_FEE_RATE
        return settings.FIRST_TRADE_FEE_RATE
