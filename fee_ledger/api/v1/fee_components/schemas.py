"""Fee component schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from fee_ledger.core.enums import FeePeriod
from fee_ledger.core.money import MAX_MINOR_UNITS


class FeeComponentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    code: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None
    default_amount_minor_units: Optional[int] = Field(None, ge=0, le=MAX_MINOR_UNITS)
    is_optional: bool = False
    is_recurring: bool = False
    period: FeePeriod = FeePeriod.ONE_TIME


class FeeComponentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    default_amount_minor_units: Optional[int] = Field(None, ge=0, le=MAX_MINOR_UNITS)
    is_optional: Optional[bool] = None
    is_recurring: Optional[bool] = None
    period: Optional[FeePeriod] = None


class FeeComponentResponse(BaseModel):
    id: UUID
    school_code: str
    code: str
    name: str
    description: Optional[str] = None
    default_amount_minor_units: Optional[int] = None
    is_optional: bool
    is_recurring: bool
    period: FeePeriod
    created_at: datetime

    class Config:
        from_attributes = True
