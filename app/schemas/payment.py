from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class CheckoutOrderCreate(BaseModel):
    amount: Decimal = Field(gt=0, decimal_places=2)
    receipt: Optional[str] = None


class ReauthorizeRequest(BaseModel):
    payment_token: str


class PaymentRecordOut(BaseModel):
    booking_id: str
    authorization_id: Optional[str]
    status: str
    authorized_amount: Decimal
    captured_amount: Decimal
    refunded_amount: Decimal
    failure_reason: Optional[str] = None
    authorized_at: Optional[datetime] = None
    captured_at: Optional[datetime] = None
