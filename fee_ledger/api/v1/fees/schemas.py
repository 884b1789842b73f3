"""Fee ledger read schemas: per student, per class, school roll-up."""

from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel

from .ledger import ClassAnalytics, FeeSummary, SchoolRollup, StudentFeeRow


class StudentFeeItem(BaseModel):
    component_type_id: UUID
    component_name: Optional[str] = None
    amount_minor_units: int
    # Payments recorded against this component for the student
    paid_minor_units: int = 0


class StudentPaymentEntry(BaseModel):
    id: UUID
    plan_id: Optional[UUID] = None
    component_type_id: UUID
    amount_minor_units: int
    payment_date: date
    payment_method: Optional[str] = None
    receipt_number: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class StudentFeesResponse(BaseModel):
    student_id: UUID
    full_name: str
    student_code: str
    class_instance_id: Optional[UUID] = None
    academic_year_id: UUID
    plan_id: Optional[UUID] = None
    items: List[StudentFeeItem]
    payments: List[StudentPaymentEntry]
    summary: FeeSummary


class ClassFeesResponse(BaseModel):
    class_instance_id: UUID
    class_name: str
    academic_year_id: UUID
    students: List[StudentFeeRow]
    total_assigned: int
    total_pending: int


class ClassAnalyticsResponse(ClassAnalytics):
    class_instance_id: UUID
    class_name: str
    academic_year_id: UUID


class SchoolRollupResponse(SchoolRollup):
    academic_year_id: UUID
