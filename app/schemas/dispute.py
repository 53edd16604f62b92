from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from app.models.enums import DisputeReason, DisputeResolution


class DisputeCreate(BaseModel):
    reason: DisputeReason
    description: str = Field(min_length=1, max_length=4000)


class DisputeRespond(BaseModel):
    message: str = Field(min_length=1, max_length=4000)


class DisputeResolve(BaseModel):
    resolution: DisputeResolution
    refund_amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)


class DisputeMessageOut(BaseModel):
    author_id: int
    author_role: str
    body: str
    created_at: datetime

    model_config = {"from_attributes": True}


class DisputeOut(BaseModel):
    id: int
    booking_id: str
    initiator_id: int
    reason: str
    description: str
    status: str
    resolution: Optional[str] = None
    refund_amount: Optional[Decimal] = None
    opened_at: datetime
    resolved_at: Optional[datetime] = None
    messages: List[DisputeMessageOut] = []
