from typing import Literal, Optional

from pydantic import BaseModel, Field


class CreditChargeCreate(BaseModel):
    amount: int = Field(..., gt=0)


class CreditChargeDecision(BaseModel):
    request_id: int
    action: Literal["approve", "reject"]
    note: Optional[str] = None


class NotificationRead(BaseModel):
    ids: Optional[list[int]] = None
