"""Fee plans router: open/edit a student's plan, preview and apply a class template."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from fee_ledger.auth.dependencies import get_current_user, require_writable_academic_year
from fee_ledger.auth.rbac import check_permission
from fee_ledger.auth.schemas import CurrentUser
from fee_ledger.core.exceptions import ServiceError
from fee_ledger.db.session import get_db

from .schemas import (
    ClassPlanApplyRequest,
    ClassPlanApplyResponse,
    ClassPlanTemplateResponse,
    PlanOpenRequest,
    PlanOpenResponse,
    PlanResponse,
    PlanSaveRequest,
)
from . import service

router = APIRouter(prefix="/api/v1/fee-plans", tags=["fee-plans"])


@router.post(
    "/open",
    response_model=PlanOpenResponse,
    dependencies=[
        Depends(check_permission("fees", "create")),
        Depends(require_writable_academic_year),
    ],
)
async def open_plan(
    payload: PlanOpenRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> PlanOpenResponse:
    try:
        return await service.open_plan(
            db,
            current_user.school_code,
            payload.student_id,
            academic_year_id=payload.academic_year_id,
            class_instance_id=payload.class_instance_id,
            session_year=current_user.academic_year_id,
            created_by=current_user.id,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/class/{class_id}/template",
    response_model=ClassPlanTemplateResponse,
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def preview_class_plan(
    class_id: UUID,
    academic_year_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ClassPlanTemplateResponse:
    try:
        return await service.preview_class_plan(
            db,
            current_user.school_code,
            class_id,
            academic_year_id=academic_year_id,
            session_year=current_user.academic_year_id,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/class/{class_id}/apply",
    response_model=ClassPlanApplyResponse,
    dependencies=[
        Depends(check_permission("fees", "update")),
        Depends(require_writable_academic_year),
    ],
)
async def apply_class_plan(
    class_id: UUID,
    payload: ClassPlanApplyRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ClassPlanApplyResponse:
    try:
        return await service.apply_class_plan(
            db,
            current_user.school_code,
            class_id,
            payload,
            session_year=current_user.academic_year_id,
            created_by=current_user.id,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/{plan_id}",
    response_model=PlanResponse,
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def get_plan(
    plan_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> PlanResponse:
    try:
        return await service.get_plan(db, current_user.school_code, plan_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put(
    "/{plan_id}/items",
    response_model=PlanResponse,
    dependencies=[
        Depends(check_permission("fees", "update")),
        Depends(require_writable_academic_year),
    ],
)
async def save_plan(
    plan_id: UUID,
    payload: PlanSaveRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> PlanResponse:
    try:
        return await service.save_plan(
            db, current_user.school_code, plan_id, payload.items, changed_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
