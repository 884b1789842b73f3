"""Fee components router."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from fee_ledger.auth.dependencies import get_current_user
from fee_ledger.auth.rbac import check_permission
from fee_ledger.auth.schemas import CurrentUser
from fee_ledger.core.exceptions import ServiceError
from fee_ledger.db.session import get_db

from .schemas import FeeComponentCreate, FeeComponentResponse, FeeComponentUpdate
from . import service

router = APIRouter(prefix="/api/v1/fee-components", tags=["fee-components"])


@router.post(
    "",
    response_model=FeeComponentResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("fees", "create"))],
)
async def create_fee_component(
    payload: FeeComponentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> FeeComponentResponse:
    try:
        return await service.create_fee_component(
            db, current_user.school_code, payload, created_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "",
    response_model=List[FeeComponentResponse],
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def list_fee_components(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[FeeComponentResponse]:
    return await service.list_fee_components(db, current_user.school_code)


@router.get(
    "/{fee_component_id}",
    response_model=FeeComponentResponse,
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def get_fee_component(
    fee_component_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> FeeComponentResponse:
    fc = await service.get_fee_component(db, current_user.school_code, fee_component_id)
    if not fc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Fee component not found",
        )
    return fc


@router.patch(
    "/{fee_component_id}",
    response_model=FeeComponentResponse,
    dependencies=[Depends(check_permission("fees", "update"))],
)
async def update_fee_component(
    fee_component_id: UUID,
    payload: FeeComponentUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> FeeComponentResponse:
    try:
        fc = await service.update_fee_component(
            db, current_user.school_code, fee_component_id, payload, changed_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if not fc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Fee component not found",
        )
    return fc


@router.delete(
    "/{fee_component_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(check_permission("fees", "delete"))],
)
async def delete_fee_component(
    fee_component_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    try:
        deleted = await service.delete_fee_component(
            db, current_user.school_code, fee_component_id, changed_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Fee component not found",
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
