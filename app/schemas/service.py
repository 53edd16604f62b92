from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class ServiceBase(BaseModel):
    name: str
    description: Optional[str] = None
    base_rate: Decimal = Field(ge=0, decimal_places=2)
    per_mile_rate: Decimal = Field(ge=0, decimal_places=2)
    hourly_rate: Decimal = Field(ge=0, decimal_places=2)


class ServiceCreate(ServiceBase):
    pass


class ServiceOut(ServiceBase):
    id: int
    provider_id: int
    active: bool
