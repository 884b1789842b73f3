"""Fees router: computed balances per student, per class, and for the school."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from fee_ledger.auth.dependencies import get_current_user
from fee_ledger.auth.rbac import check_permission
from fee_ledger.auth.schemas import CurrentUser
from fee_ledger.core.enums import PlanFilter
from fee_ledger.core.exceptions import ServiceError
from fee_ledger.db.session import get_db

from .schemas import ClassAnalyticsResponse, ClassFeesResponse, SchoolRollupResponse, StudentFeesResponse
from . import service

router = APIRouter(prefix="/api/v1/fees", tags=["fees"])


@router.get(
    "/student/{student_id}",
    response_model=StudentFeesResponse,
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def get_student_fees(
    student_id: UUID,
    academic_year_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentFeesResponse:
    try:
        return await service.get_student_fees(
            db,
            current_user.school_code,
            student_id,
            academic_year_id=academic_year_id,
            session_year=current_user.academic_year_id,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/class/{class_id}",
    response_model=ClassFeesResponse,
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def get_class_fees(
    class_id: UUID,
    search: Optional[str] = Query(None, description="Match on student name or code"),
    plan_filter: PlanFilter = Query(PlanFilter.ALL),
    academic_year_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ClassFeesResponse:
    try:
        return await service.get_class_fees(
            db,
            current_user.school_code,
            class_id,
            search=search,
            plan_filter=plan_filter,
            academic_year_id=academic_year_id,
            session_year=current_user.academic_year_id,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/class/{class_id}/analytics",
    response_model=ClassAnalyticsResponse,
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def get_class_analytics(
    class_id: UUID,
    academic_year_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ClassAnalyticsResponse:
    try:
        return await service.get_class_analytics(
            db,
            current_user.school_code,
            class_id,
            academic_year_id=academic_year_id,
            session_year=current_user.academic_year_id,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/school/summary",
    response_model=SchoolRollupResponse,
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def get_school_rollup(
    academic_year_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> SchoolRollupResponse:
    try:
        return await service.get_school_rollup(
            db,
            current_user.school_code,
            academic_year_id=academic_year_id,
            session_year=current_user.academic_year_id,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
