from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field


class QuoteCreate(BaseModel):
    rfq_id: int
    unit_price: int = Field(..., gt=0)
    delivery_date: Optional[date] = None
    note: Optional[str] = None
    attachments: List[str] = []


class QuotePriceUpdate(BaseModel):
    unit_price: int = Field(..., gt=0)
