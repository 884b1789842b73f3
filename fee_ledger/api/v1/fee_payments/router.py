"""Fee payments router: record a payment, payment history, pending students."""

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from fee_ledger.auth.dependencies import get_current_user, require_writable_academic_year
from fee_ledger.auth.rbac import check_permission
from fee_ledger.auth.schemas import CurrentUser
from fee_ledger.core.enums import PaymentMethod
from fee_ledger.core.exceptions import ServiceError
from fee_ledger.db.session import get_db

from .schemas import PaymentCreate, PaymentHistoryResponse, PaymentResponse, PendingStudentsResponse
from . import service

router = APIRouter(prefix="/api/v1/fee-payments", tags=["fee-payments"])


@router.post(
    "",
    response_model=PaymentResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[
        Depends(check_permission("fees", "create")),
        Depends(require_writable_academic_year),
    ],
)
async def record_payment(
    payload: PaymentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> PaymentResponse:
    try:
        return await service.record_payment(
            db,
            current_user.school_code,
            payload,
            session_year=current_user.academic_year_id,
            created_by=current_user.id,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "",
    response_model=PaymentHistoryResponse,
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def list_payments(
    class_id: Optional[UUID] = Query(None),
    student_id: Optional[UUID] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    payment_method: Optional[PaymentMethod] = Query(None),
    search: Optional[str] = Query(None, description="Match on student name"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> PaymentHistoryResponse:
    try:
        return await service.list_payments(
            db,
            current_user.school_code,
            class_instance_id=class_id,
            student_id=student_id,
            date_from=date_from,
            date_to=date_to,
            payment_method=payment_method,
            search=search,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/pending",
    response_model=PendingStudentsResponse,
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def list_pending_students(
    class_id: UUID,
    academic_year_id: Optional[UUID] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    payment_method: Optional[PaymentMethod] = Query(None),
    search: Optional[str] = Query(None, description="Only payments by matching student names count as paid"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> PendingStudentsResponse:
    try:
        return await service.list_pending_students(
            db,
            current_user.school_code,
            class_id,
            academic_year_id=academic_year_id,
            session_year=current_user.academic_year_id,
            date_from=date_from,
            date_to=date_to,
            payment_method=payment_method,
            search=search,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
