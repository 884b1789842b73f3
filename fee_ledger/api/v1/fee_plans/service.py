"""Fee plan service: open/save a student's plan, apply a class-wide template. Each write is one transaction."""

import logging
import uuid
from datetime import datetime
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import delete, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fee_ledger.core.audit import log_fee_audit
from fee_ledger.core.exceptions import ServiceError
from fee_ledger.core.models import FeeComponentType, FeeStudentPlan, FeeStudentPlanItem
from fee_ledger.core.scope import (
    ensure_writable_year,
    get_class_instance,
    get_class_roster,
    get_student,
    resolve_academic_year_id,
)
from fee_ledger.db.upsert import dialect_insert

from .bulk import EMPTY_ROSTER_MESSAGE, BulkPlanCommand, confirmation_message
from .editor import EditorItem, PlanEditor, diff_plan_items
from .schemas import (
    ClassPlanApplyRequest,
    ClassPlanApplyResponse,
    ClassPlanTemplateResponse,
    PlanItemIn,
    PlanItemResponse,
    PlanOpenResponse,
    PlanResponse,
)

logger = logging.getLogger(__name__)

PLAN_NATURAL_KEY = ["school_code", "student_id", "academic_year_id"]


def _to_editor_items(items: Iterable[PlanItemIn]) -> List[EditorItem]:
    return [
        EditorItem(component_type_id=i.component_type_id, amount_minor_units=i.amount_minor_units)
        for i in items
    ]


async def _load_items(db: AsyncSession, plan_id: UUID) -> List[PlanItemResponse]:
    result = await db.execute(
        select(
            FeeStudentPlanItem.component_type_id,
            FeeComponentType.name,
            FeeStudentPlanItem.amount_minor_units,
        )
        .outerjoin(FeeComponentType, FeeStudentPlanItem.component_type_id == FeeComponentType.id)
        .where(FeeStudentPlanItem.plan_id == plan_id)
        .order_by(FeeComponentType.name)
    )
    return [
        PlanItemResponse(component_type_id=cid, component_name=name, amount_minor_units=int(amount))
        for cid, name, amount in result.all()
    ]


def _to_response(plan: FeeStudentPlan, items: List[PlanItemResponse]) -> PlanResponse:
    return PlanResponse(
        id=plan.id,
        school_code=plan.school_code,
        student_id=plan.student_id,
        class_instance_id=plan.class_instance_id,
        academic_year_id=plan.academic_year_id,
        status=plan.status,
        created_at=plan.created_at,
        items=items,
        total_due_minor_units=sum(i.amount_minor_units for i in items),
    )


async def _get_plan_row(db: AsyncSession, school_code: str, plan_id: UUID) -> FeeStudentPlan:
    plan = (
        await db.execute(
            select(FeeStudentPlan).where(
                FeeStudentPlan.id == plan_id,
                FeeStudentPlan.school_code == school_code,
            )
        )
    ).scalar_one_or_none()
    if not plan:
        raise ServiceError("Fee plan not found", status.HTTP_404_NOT_FOUND)
    return plan


async def _check_components(db: AsyncSession, school_code: str, component_ids: Iterable[UUID]) -> Dict[UUID, FeeComponentType]:
    ids = set(component_ids)
    if not ids:
        return {}
    result = await db.execute(
        select(FeeComponentType).where(
            FeeComponentType.school_code == school_code,
            FeeComponentType.id.in_(ids),
        )
    )
    found = {fc.id: fc for fc in result.scalars().all()}
    if len(found) != len(ids):
        raise ServiceError("Fee component not found", status.HTTP_404_NOT_FOUND)
    return found


async def _default_amounts(db: AsyncSession, school_code: str) -> Dict[UUID, Optional[int]]:
    result = await db.execute(
        select(FeeComponentType.id, FeeComponentType.default_amount_minor_units).where(
            FeeComponentType.school_code == school_code
        )
    )
    return {cid: amount for cid, amount in result.all()}


async def open_plan(
    db: AsyncSession,
    school_code: str,
    student_id: UUID,
    academic_year_id: Optional[UUID] = None,
    class_instance_id: Optional[UUID] = None,
    session_year: Optional[UUID] = None,
    created_by: Optional[UUID] = None,
) -> PlanOpenResponse:
    """
    Get-or-create the student's plan for the year and return it ready for editing.
    Creation is a single INSERT .. ON CONFLICT DO NOTHING on the plan's natural key, so two
    concurrent opens end up on the same row.
    """
    student = await get_student(db, school_code, student_id)
    ay_id = await resolve_academic_year_id(db, school_code, academic_year_id, session_year)
    if class_instance_id is not None:
        await get_class_instance(db, school_code, class_instance_id)
    else:
        class_instance_id = student.class_instance_id

    existing = (
        await db.execute(
            select(FeeStudentPlan).where(
                FeeStudentPlan.school_code == school_code,
                FeeStudentPlan.student_id == student_id,
                FeeStudentPlan.academic_year_id == ay_id,
            )
        )
    ).scalar_one_or_none()
    created = False
    if existing is None:
        await ensure_writable_year(db, ay_id)
        new_id = uuid.uuid4()
        stmt = dialect_insert(db, FeeStudentPlan).values(
            id=new_id,
            school_code=school_code,
            student_id=student_id,
            class_instance_id=class_instance_id,
            academic_year_id=ay_id,
            status="active",
            created_by=created_by,
            created_at=datetime.utcnow(),
        ).on_conflict_do_nothing(index_elements=PLAN_NATURAL_KEY)
        try:
            await db.execute(stmt)
            existing = (
                await db.execute(
                    select(FeeStudentPlan).where(
                        FeeStudentPlan.school_code == school_code,
                        FeeStudentPlan.student_id == student_id,
                        FeeStudentPlan.academic_year_id == ay_id,
                    )
                )
            ).scalar_one()
            created = existing.id == new_id
            if created:
                await log_fee_audit(
                    db, school_code, "fee_student_plans", existing.id,
                    "CREATE", None,
                    {"student_id": str(student_id), "academic_year_id": str(ay_id)},
                    created_by,
                )
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            logger.exception("Failed to open fee plan for student %s", student_id)
            raise ServiceError("Failed to open fee plan")
        if created:
            logger.info("Created fee plan %s for student %s", existing.id, student_id)

    items = await _load_items(db, existing.id)
    editor = PlanEditor(await _default_amounts(db, school_code))
    editor.open()
    rows = editor.load(
        EditorItem(component_type_id=i.component_type_id, amount_minor_units=i.amount_minor_units)
        for i in items
    )
    return PlanOpenResponse(plan=_to_response(existing, items), created=created, items=rows)


async def get_plan(db: AsyncSession, school_code: str, plan_id: UUID) -> PlanResponse:
    plan = await _get_plan_row(db, school_code, plan_id)
    return _to_response(plan, await _load_items(db, plan.id))


async def save_plan(
    db: AsyncSession,
    school_code: str,
    plan_id: UUID,
    items: List[PlanItemIn],
    changed_by: Optional[UUID] = None,
) -> PlanResponse:
    """Replace the plan's items: delete dropped components, upsert the rest, one transaction."""
    plan = await _get_plan_row(db, school_code, plan_id)
    await ensure_writable_year(db, plan.academic_year_id)

    current = {
        cid: amount
        for cid, amount in (
            await db.execute(
                select(FeeStudentPlanItem.component_type_id, FeeStudentPlanItem.amount_minor_units).where(
                    FeeStudentPlanItem.plan_id == plan.id
                )
            )
        ).all()
    }
    editor = PlanEditor(await _default_amounts(db, school_code))
    editor.open()
    editor.load(EditorItem(component_type_id=cid, amount_minor_units=amount) for cid, amount in current.items())
    editor.replace_items(_to_editor_items(items))
    rows = editor.begin_save()

    try:
        await _check_components(db, school_code, (i.component_type_id for i in rows))
    except ServiceError:
        editor.fail_save()
        raise
    diff = diff_plan_items(current.keys(), rows)

    try:
        if diff.to_delete:
            await db.execute(
                delete(FeeStudentPlanItem).where(
                    FeeStudentPlanItem.plan_id == plan.id,
                    FeeStudentPlanItem.component_type_id.in_(diff.to_delete),
                )
            )
        if diff.to_upsert:
            now = datetime.utcnow()
            stmt = dialect_insert(db, FeeStudentPlanItem).values(
                [
                    {
                        "plan_id": plan.id,
                        "component_type_id": i.component_type_id,
                        "amount_minor_units": i.amount_minor_units,
                        "created_at": now,
                    }
                    for i in diff.to_upsert
                ]
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["plan_id", "component_type_id"],
                set_={"amount_minor_units": stmt.excluded.amount_minor_units},
            )
            await db.execute(stmt)
        await log_fee_audit(
            db, school_code, "fee_student_plans", plan.id,
            "UPDATE",
            {"items": {str(k): v for k, v in current.items()}},
            {"items": {str(i.component_type_id): i.amount_minor_units for i in diff.to_upsert}},
            changed_by,
        )
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        editor.fail_save()
        logger.exception("Failed to save fee plan %s", plan_id)
        raise ServiceError("Failed to save plan")

    editor.finish_save()
    logger.info(
        "Saved fee plan %s: %d removed, %d upserted",
        plan_id, len(diff.to_delete), len(diff.to_upsert),
    )
    return await get_plan(db, school_code, plan_id)


async def preview_class_plan(
    db: AsyncSession,
    school_code: str,
    class_instance_id: UUID,
    academic_year_id: Optional[UUID] = None,
    session_year: Optional[UUID] = None,
) -> ClassPlanTemplateResponse:
    """Starting template for a class-wide apply: catalog components that carry a default amount."""
    cl = await get_class_instance(db, school_code, class_instance_id)
    ay_id = await resolve_academic_year_id(db, school_code, academic_year_id, session_year)
    roster = await get_class_roster(db, school_code, class_instance_id)

    result = await db.execute(
        select(FeeComponentType)
        .where(
            FeeComponentType.school_code == school_code,
            FeeComponentType.default_amount_minor_units.is_not(None),
        )
        .order_by(FeeComponentType.name)
    )
    template = [
        EditorItem(component_type_id=fc.id, amount_minor_units=fc.default_amount_minor_units)
        for fc in result.scalars().all()
    ]
    if not template:
        template = [EditorItem()]

    with_plan = 0
    if roster:
        with_plan = len(
            (
                await db.execute(
                    select(FeeStudentPlan.id).where(
                        FeeStudentPlan.school_code == school_code,
                        FeeStudentPlan.academic_year_id == ay_id,
                        FeeStudentPlan.student_id.in_([s.id for s in roster]),
                    )
                )
            ).all()
        )

    return ClassPlanTemplateResponse(
        class_instance_id=cl.id,
        class_name=cl.display_name,
        academic_year_id=ay_id,
        student_count=len(roster),
        students_with_plan=with_plan,
        items=template,
        confirmation_message=confirmation_message(len(roster), cl.display_name),
    )


async def apply_class_plan(
    db: AsyncSession,
    school_code: str,
    class_instance_id: UUID,
    payload: ClassPlanApplyRequest,
    session_year: Optional[UUID] = None,
    created_by: Optional[UUID] = None,
) -> ClassPlanApplyResponse:
    """
    Replace the plan items of every student in the class with the template.

    Missing plans are inserted (ON CONFLICT DO NOTHING), then all items of the roster's
    plans are deleted and the template is inserted once per plan. All of it commits
    together or not at all.
    """
    cl = await get_class_instance(db, school_code, class_instance_id)
    ay_id = await resolve_academic_year_id(db, school_code, payload.academic_year_id, session_year)
    roster = await get_class_roster(db, school_code, class_instance_id)

    command = BulkPlanCommand(
        class_instance_id=cl.id,
        class_name=cl.display_name,
        student_ids=[s.id for s in roster],
        template=_to_editor_items(payload.items),
    )
    if command.student_count == 0:
        return ClassPlanApplyResponse(
            class_instance_id=cl.id,
            academic_year_id=ay_id,
            state=command.state,
            student_count=0,
            plans_created=0,
            message=EMPTY_ROSTER_MESSAGE,
        )

    await ensure_writable_year(db, ay_id)
    await _check_components(db, school_code, (i.component_type_id for i in command.template))
    command.confirm(payload.confirm_student_count)

    try:
        existing = {
            sid: pid
            for sid, pid in (
                await db.execute(
                    select(FeeStudentPlan.student_id, FeeStudentPlan.id).where(
                        FeeStudentPlan.school_code == school_code,
                        FeeStudentPlan.academic_year_id == ay_id,
                        FeeStudentPlan.student_id.in_(command.student_ids),
                    )
                )
            ).all()
        }
        missing = [sid for sid in command.student_ids if sid not in existing]
        if missing:
            now = datetime.utcnow()
            stmt = dialect_insert(db, FeeStudentPlan).values(
                [
                    {
                        "id": uuid.uuid4(),
                        "school_code": school_code,
                        "student_id": sid,
                        "class_instance_id": cl.id,
                        "academic_year_id": ay_id,
                        "status": "active",
                        "created_by": created_by,
                        "created_at": now,
                    }
                    for sid in missing
                ]
            ).on_conflict_do_nothing(index_elements=PLAN_NATURAL_KEY)
            await db.execute(stmt)
            # Re-read so plans created concurrently by another session are picked up too
            existing = {
                sid: pid
                for sid, pid in (
                    await db.execute(
                        select(FeeStudentPlan.student_id, FeeStudentPlan.id).where(
                            FeeStudentPlan.school_code == school_code,
                            FeeStudentPlan.academic_year_id == ay_id,
                            FeeStudentPlan.student_id.in_(command.student_ids),
                        )
                    )
                ).all()
            }
        plan_ids = [existing[sid] for sid in command.student_ids]

        await db.execute(delete(FeeStudentPlanItem).where(FeeStudentPlanItem.plan_id.in_(plan_ids)))
        await db.execute(insert(FeeStudentPlanItem), command.item_rows(plan_ids))
        await log_fee_audit(
            db, school_code, "class_instances", cl.id,
            "BULK_APPLY", None,
            {
                "academic_year_id": str(ay_id),
                "student_count": command.student_count,
                "items": {str(i.component_type_id): i.amount_minor_units for i in command.template},
            },
            created_by,
        )
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        command.revert()
        logger.exception("Failed to apply class plan to class %s", class_instance_id)
        raise ServiceError("Failed to apply class plan")

    command.mark_applied(plan_ids)
    logger.info(
        "Applied class plan to %s: %d students, %d plans created",
        cl.display_name, command.student_count, len(missing),
    )
    return ClassPlanApplyResponse(
        class_instance_id=cl.id,
        academic_year_id=ay_id,
        state=command.state,
        student_count=command.student_count,
        plans_created=len(missing),
        plan_ids=command.plan_ids,
        message=f"Applied fee plan to {command.student_count} students in {cl.display_name}.",
    )
