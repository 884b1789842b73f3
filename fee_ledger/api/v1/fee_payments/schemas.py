"""Fee payment schemas."""

from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from fee_ledger.core.enums import PaymentMethod


class PaymentCreate(BaseModel):
    """Amount is either integer minor units or a major-unit string such as "1,250.50"."""

    student_id: UUID
    component_type_id: UUID
    amount_minor_units: Optional[int] = None
    amount: Optional[str] = None
    academic_year_id: Optional[UUID] = None
    payment_date: Optional[date] = None
    payment_method: Optional[PaymentMethod] = None
    transaction_id: Optional[str] = Field(None, max_length=100)
    receipt_number: Optional[str] = Field(None, max_length=100)
    remarks: Optional[str] = None


class PaymentResponse(BaseModel):
    id: UUID
    student_id: UUID
    student_name: Optional[str] = None
    plan_id: Optional[UUID] = None
    component_type_id: UUID
    component_name: Optional[str] = None
    amount_minor_units: int
    amount_display: str
    payment_date: date
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None
    receipt_number: Optional[str] = None
    remarks: Optional[str] = None
    created_by: Optional[UUID] = None
    created_at: datetime
    plan_total_minor_units: Optional[int] = None

    class Config:
        from_attributes = True


class PaymentHistoryResponse(BaseModel):
    items: List[PaymentResponse]
    total_collected_minor_units: int
    limit: int


class PendingStudent(BaseModel):
    student_id: UUID
    full_name: str
    student_code: str
    plan_id: Optional[UUID] = None
    due_minor_units: int = 0


class PendingStudentsResponse(BaseModel):
    """Students of the class with no payment in the filtered window."""

    students: List[PendingStudent]
    pending_due_total_minor_units: int
