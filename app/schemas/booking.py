from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class Location(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class BookingCreate(BaseModel):
    provider_id: int
    service_id: int
    scheduled_at: datetime
    duration_minutes: int = Field(gt=0, le=24 * 60)
    pickup: Location
    delivery: Location
    quoted_amount: Decimal = Field(gt=0, decimal_places=2)
    payment_token: Optional[str] = None


class QuoteRequest(BaseModel):
    service_id: int
    duration_minutes: int = Field(gt=0, le=24 * 60)
    pickup: Location
    delivery: Location


class QuoteOut(BaseModel):
    service_id: int
    distance_miles: float
    duration_minutes: int
    total: Decimal


class TransitionRequest(BaseModel):
    status: str


class RefundCreate(BaseModel):
    amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)
    request_token: Optional[str] = None


class BookingOut(BaseModel):
    id: str
    status: str
    requester_id: int
    provider_id: int
    service_id: int
    scheduled_at: datetime
    duration_minutes: int
    pickup: Location
    delivery: Location
    distance_miles: float
    quoted_amount: Decimal
    cancellation_reason: Optional[str] = None

    created_at: datetime
    accepted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    disputed_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    payment_status: Optional[str] = None


class StatusEventOut(BaseModel):
    from_status: Optional[str]
    to_status: str
    actor_id: Optional[int]
    actor_role: str
    reason: Optional[str]
    occurred_at: datetime

    model_config = {"from_attributes": True}
