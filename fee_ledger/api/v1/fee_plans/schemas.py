"""Fee plan schemas: per-student plan editing and class-wide template apply."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from fee_ledger.core.money import MAX_MINOR_UNITS

from .bulk import BulkCommandState
from .editor import EditorItem


class PlanItemIn(BaseModel):
    component_type_id: Optional[UUID] = None
    amount_minor_units: int = Field(0, ge=0, le=MAX_MINOR_UNITS)


class PlanItemResponse(BaseModel):
    component_type_id: UUID
    component_name: Optional[str] = None
    amount_minor_units: int

    class Config:
        from_attributes = True


class PlanResponse(BaseModel):
    id: UUID
    school_code: str
    student_id: UUID
    class_instance_id: Optional[UUID] = None
    academic_year_id: UUID
    status: str
    created_at: datetime
    items: List[PlanItemResponse] = []
    total_due_minor_units: int = 0


class PlanOpenRequest(BaseModel):
    student_id: UUID
    academic_year_id: Optional[UUID] = None
    class_instance_id: Optional[UUID] = None


class PlanOpenResponse(BaseModel):
    """Plan plus the editor rows; a plan with no items comes back with one blank row."""

    plan: PlanResponse
    created: bool
    items: List[EditorItem]


class PlanSaveRequest(BaseModel):
    items: List[PlanItemIn] = []


class ClassPlanTemplateResponse(BaseModel):
    class_instance_id: UUID
    class_name: str
    academic_year_id: UUID
    student_count: int
    students_with_plan: int
    items: List[EditorItem]
    confirmation_message: str


class ClassPlanApplyRequest(BaseModel):
    items: List[PlanItemIn] = []
    academic_year_id: Optional[UUID] = None
    # Must equal the roster size; the operator confirms how many plans get replaced
    confirm_student_count: Optional[int] = Field(None, ge=0)


class ClassPlanApplyResponse(BaseModel):
    class_instance_id: UUID
    academic_year_id: UUID
    state: BulkCommandState
    student_count: int
    plans_created: int
    plan_ids: List[UUID] = []
    message: str
