from datetime import date
from typing import Optional

from pydantic import BaseModel, Field


class RFQCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    quantity: int = Field(..., gt=0)
    unit: str = "ea"
    category: Optional[str] = None
    description: Optional[str] = None
    delivery_date: Optional[date] = None
