from typing import Literal, Optional

from pydantic import BaseModel, Field


class RoomActionRequest(BaseModel):
    action: str
    payment_method: Literal["bank_transfer", "card"] = "bank_transfer"


class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1)
    image: Optional[str] = None
