"""Fee component catalog service layer."""

import logging
from typing import Iterable, List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fee_ledger.core.audit import log_fee_audit
from fee_ledger.core.enums import FeePeriod
from fee_ledger.core.exceptions import ServiceError
from fee_ledger.core.models import FeeComponentType, FeePayment, FeeStudentPlanItem

from .schemas import FeeComponentCreate, FeeComponentResponse, FeeComponentUpdate

logger = logging.getLogger(__name__)


def _to_response(fc: FeeComponentType) -> FeeComponentResponse:
    return FeeComponentResponse(
        id=fc.id,
        school_code=fc.school_code,
        code=fc.code,
        name=fc.name,
        description=fc.description,
        default_amount_minor_units=fc.default_amount_minor_units,
        is_optional=bool(fc.is_optional),
        is_recurring=bool(fc.is_recurring),
        period=fc.period,
        created_at=fc.created_at,
    )


def dedupe_components(components: Iterable[FeeComponentResponse]) -> List[FeeComponentResponse]:
    """Dedupe catalog rows by id. Last row wins; order of first appearance is kept."""
    by_id = {}
    for c in components:
        by_id[c.id] = c
    return list(by_id.values())


async def create_fee_component(
    db: AsyncSession,
    school_code: str,
    payload: FeeComponentCreate,
    created_by: Optional[UUID] = None,
) -> FeeComponentResponse:
    code = payload.code.strip().upper()[:50]
    name = payload.name.strip()
    period = payload.period.value if isinstance(payload.period, FeePeriod) else str(payload.period)
    try:
        fc = FeeComponentType(
            school_code=school_code,
            code=code,
            name=name,
            description=(payload.description or "").strip() or None,
            default_amount_minor_units=payload.default_amount_minor_units,
            is_optional=payload.is_optional,
            is_recurring=payload.is_recurring,
            period=period,
            created_by=created_by,
        )
        db.add(fc)
        await db.flush()
        await log_fee_audit(
            db, school_code, "fee_component_types", fc.id,
            "CREATE", None,
            {"code": code, "name": name, "default_amount_minor_units": payload.default_amount_minor_units},
            created_by,
        )
        await db.commit()
        await db.refresh(fc)
    except IntegrityError:
        await db.rollback()
        raise ServiceError(
            "Fee component code already exists for this school",
            status.HTTP_409_CONFLICT,
        )
    logger.info("Created fee component %s (%s) for school %s", fc.id, code, school_code)
    return _to_response(fc)


async def list_fee_components(
    db: AsyncSession,
    school_code: str,
) -> List[FeeComponentResponse]:
    stmt = (
        select(FeeComponentType)
        .where(FeeComponentType.school_code == school_code)
        .order_by(FeeComponentType.name)
    )
    result = await db.execute(stmt)
    return dedupe_components(_to_response(fc) for fc in result.scalars().all())


async def get_fee_component(
    db: AsyncSession,
    school_code: str,
    fee_component_id: UUID,
) -> Optional[FeeComponentResponse]:
    result = await db.execute(
        select(FeeComponentType).where(
            FeeComponentType.id == fee_component_id,
            FeeComponentType.school_code == school_code,
        )
    )
    fc = result.scalar_one_or_none()
    return _to_response(fc) if fc else None


async def update_fee_component(
    db: AsyncSession,
    school_code: str,
    fee_component_id: UUID,
    payload: FeeComponentUpdate,
    changed_by: Optional[UUID] = None,
) -> Optional[FeeComponentResponse]:
    result = await db.execute(
        select(FeeComponentType).where(
            FeeComponentType.id == fee_component_id,
            FeeComponentType.school_code == school_code,
        )
    )
    fc = result.scalar_one_or_none()
    if not fc:
        return None
    old = {"name": fc.name, "default_amount_minor_units": fc.default_amount_minor_units, "period": fc.period}
    if payload.name is not None:
        fc.name = payload.name.strip()
    if payload.description is not None:
        fc.description = payload.description.strip() or None
    if payload.default_amount_minor_units is not None:
        fc.default_amount_minor_units = payload.default_amount_minor_units
    if payload.is_optional is not None:
        fc.is_optional = payload.is_optional
    if payload.is_recurring is not None:
        fc.is_recurring = payload.is_recurring
    if payload.period is not None:
        fc.period = payload.period.value if isinstance(payload.period, FeePeriod) else str(payload.period)
    await log_fee_audit(
        db, school_code, "fee_component_types", fc.id,
        "UPDATE", old,
        {"name": fc.name, "default_amount_minor_units": fc.default_amount_minor_units, "period": fc.period},
        changed_by,
    )
    try:
        await db.commit()
        await db.refresh(fc)
    except IntegrityError:
        await db.rollback()
        raise ServiceError(
            "Fee component update conflict",
            status.HTTP_409_CONFLICT,
        )
    logger.info("Updated fee component %s for school %s", fc.id, school_code)
    return _to_response(fc)


async def delete_fee_component(
    db: AsyncSession,
    school_code: str,
    fee_component_id: UUID,
    changed_by: Optional[UUID] = None,
) -> bool:
    """Hard delete. Refused while any plan item or payment references the component."""
    result = await db.execute(
        select(FeeComponentType).where(
            FeeComponentType.id == fee_component_id,
            FeeComponentType.school_code == school_code,
        )
    )
    fc = result.scalar_one_or_none()
    if not fc:
        return False
    in_plans = (
        await db.execute(
            select(func.count()).select_from(FeeStudentPlanItem).where(
                FeeStudentPlanItem.component_type_id == fee_component_id
            )
        )
    ).scalar() or 0
    in_payments = (
        await db.execute(
            select(func.count()).select_from(FeePayment).where(
                FeePayment.component_type_id == fee_component_id
            )
        )
    ).scalar() or 0
    if in_plans or in_payments:
        raise ServiceError(
            "Fee component is used by fee plans or payments and cannot be deleted",
            status.HTTP_409_CONFLICT,
        )
    await log_fee_audit(
        db, school_code, "fee_component_types", fc.id,
        "DELETE", {"code": fc.code, "name": fc.name}, None,
        changed_by,
    )
    await db.delete(fc)
    await db.commit()
    logger.info("Deleted fee component %s for school %s", fee_component_id, school_code)
    return True
