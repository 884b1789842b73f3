"""Fees read service: loads plans and payments, hands them to the ledger functions."""

from collections import defaultdict
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from fee_ledger.core.enums import PlanFilter
from fee_ledger.core.models import ClassInstance, FeeComponentType, FeePayment, FeeStudentPlan, FeeStudentPlanItem
from fee_ledger.core.scope import get_class_instance, get_class_roster, get_student, resolve_academic_year_id

from .ledger import (
    LedgerItem,
    LedgerPayment,
    LedgerPlan,
    StudentFeeRow,
    aggregate_class,
    class_analytics,
    compute_summary,
    filter_students,
    school_rollup,
)
from .schemas import (
    ClassAnalyticsResponse,
    ClassFeesResponse,
    SchoolRollupResponse,
    StudentFeeItem,
    StudentFeesResponse,
    StudentPaymentEntry,
)


async def _plans_for(
    db: AsyncSession,
    school_code: str,
    academic_year_id: UUID,
    student_ids: List[UUID],
) -> Dict[UUID, LedgerPlan]:
    """student_id -> plan with its items, for students that have one this year."""
    if not student_ids:
        return {}
    plans = (
        await db.execute(
            select(FeeStudentPlan.student_id, FeeStudentPlan.id).where(
                FeeStudentPlan.school_code == school_code,
                FeeStudentPlan.academic_year_id == academic_year_id,
                FeeStudentPlan.student_id.in_(student_ids),
            )
        )
    ).all()
    if not plans:
        return {}
    items_by_plan = defaultdict(list)
    result = await db.execute(
        select(
            FeeStudentPlanItem.plan_id,
            FeeStudentPlanItem.component_type_id,
            FeeStudentPlanItem.amount_minor_units,
        ).where(FeeStudentPlanItem.plan_id.in_([pid for _, pid in plans]))
    )
    for pid, cid, amount in result.all():
        items_by_plan[pid].append(LedgerItem(component_type_id=cid, amount_minor_units=int(amount)))
    return {sid: LedgerPlan(id=pid, items=items_by_plan[pid]) for sid, pid in plans}


async def _payments_for(
    db: AsyncSession,
    school_code: str,
    student_ids: List[UUID],
) -> Dict[UUID, List[LedgerPayment]]:
    # Every payment of the student counts, whichever plan (or none) it was recorded against
    if not student_ids:
        return {}
    result = await db.execute(
        select(FeePayment.student_id, FeePayment.plan_id, FeePayment.amount_minor_units).where(
            FeePayment.school_code == school_code,
            FeePayment.student_id.in_(student_ids),
        )
    )
    by_student = defaultdict(list)
    for sid, pid, amount in result.all():
        by_student[sid].append(LedgerPayment(amount_minor_units=int(amount), plan_id=pid))
    return by_student


async def _class_rows(
    db: AsyncSession,
    school_code: str,
    class_instance_id: UUID,
    academic_year_id: UUID,
) -> List[StudentFeeRow]:
    roster = await get_class_roster(db, school_code, class_instance_id)
    ids = [s.id for s in roster]
    plans = await _plans_for(db, school_code, academic_year_id, ids)
    payments = await _payments_for(db, school_code, ids)
    return [
        StudentFeeRow(
            student_id=s.id,
            full_name=s.full_name,
            student_code=s.student_code,
            plan_id=plans[s.id].id if s.id in plans else None,
            summary=compute_summary(plans.get(s.id), payments.get(s.id, [])),
        )
        for s in roster
    ]


async def get_student_fees(
    db: AsyncSession,
    school_code: str,
    student_id: UUID,
    academic_year_id: Optional[UUID] = None,
    session_year: Optional[UUID] = None,
) -> StudentFeesResponse:
    student = await get_student(db, school_code, student_id)
    ay_id = await resolve_academic_year_id(db, school_code, academic_year_id, session_year)
    plan = (await _plans_for(db, school_code, ay_id, [student.id])).get(student.id)

    pay_rows = (
        await db.execute(
            select(FeePayment)
            .where(FeePayment.school_code == school_code, FeePayment.student_id == student.id)
            .order_by(FeePayment.payment_date.desc(), FeePayment.created_at.desc())
        )
    ).scalars().all()
    payments = [
        LedgerPayment(amount_minor_units=int(p.amount_minor_units), plan_id=p.plan_id) for p in pay_rows
    ]

    paid_by_component: Dict[UUID, int] = defaultdict(int)
    for p in pay_rows:
        paid_by_component[p.component_type_id] += int(p.amount_minor_units)
    items: List[StudentFeeItem] = []
    if plan is not None and plan.items:
        names = dict(
            (
                await db.execute(
                    select(FeeComponentType.id, FeeComponentType.name).where(
                        FeeComponentType.id.in_([i.component_type_id for i in plan.items])
                    )
                )
            ).all()
        )
        items = sorted(
            (
                StudentFeeItem(
                    component_type_id=i.component_type_id,
                    component_name=names.get(i.component_type_id),
                    amount_minor_units=i.amount_minor_units,
                    paid_minor_units=paid_by_component.get(i.component_type_id, 0),
                )
                for i in plan.items
            ),
            key=lambda i: i.component_name or "",
        )

    return StudentFeesResponse(
        student_id=student.id,
        full_name=student.full_name,
        student_code=student.student_code,
        class_instance_id=student.class_instance_id,
        academic_year_id=ay_id,
        plan_id=plan.id if plan else None,
        items=items,
        payments=[StudentPaymentEntry.model_validate(p) for p in pay_rows],
        summary=compute_summary(plan, payments),
    )


async def get_class_fees(
    db: AsyncSession,
    school_code: str,
    class_instance_id: UUID,
    search: Optional[str] = None,
    plan_filter: PlanFilter = PlanFilter.ALL,
    academic_year_id: Optional[UUID] = None,
    session_year: Optional[UUID] = None,
) -> ClassFeesResponse:
    """Per-student rows after search/plan filter; totals cover the visible rows only."""
    cl = await get_class_instance(db, school_code, class_instance_id)
    ay_id = await resolve_academic_year_id(db, school_code, academic_year_id, session_year)
    rows = filter_students(
        await _class_rows(db, school_code, cl.id, ay_id),
        search=search,
        plan_filter=plan_filter,
    )
    totals = aggregate_class(rows)
    return ClassFeesResponse(
        class_instance_id=cl.id,
        class_name=cl.display_name,
        academic_year_id=ay_id,
        students=rows,
        total_assigned=totals.total_assigned,
        total_pending=totals.total_pending,
    )


async def get_class_analytics(
    db: AsyncSession,
    school_code: str,
    class_instance_id: UUID,
    academic_year_id: Optional[UUID] = None,
    session_year: Optional[UUID] = None,
) -> ClassAnalyticsResponse:
    cl = await get_class_instance(db, school_code, class_instance_id)
    ay_id = await resolve_academic_year_id(db, school_code, academic_year_id, session_year)
    analytics = class_analytics(await _class_rows(db, school_code, cl.id, ay_id))
    return ClassAnalyticsResponse(
        class_instance_id=cl.id,
        class_name=cl.display_name,
        academic_year_id=ay_id,
        **analytics.model_dump(),
    )


async def get_school_rollup(
    db: AsyncSession,
    school_code: str,
    academic_year_id: Optional[UUID] = None,
    session_year: Optional[UUID] = None,
) -> SchoolRollupResponse:
    ay_id = await resolve_academic_year_id(db, school_code, academic_year_id, session_year)
    classes = (
        await db.execute(
            select(ClassInstance)
            .where(
                ClassInstance.school_code == school_code,
                or_(ClassInstance.academic_year_id == ay_id, ClassInstance.academic_year_id.is_(None)),
            )
            .order_by(ClassInstance.display_order, ClassInstance.grade, ClassInstance.section)
        )
    ).scalars().all()
    class_rows = []
    for cl in classes:
        class_rows.append((cl.id, cl.display_name, await _class_rows(db, school_code, cl.id, ay_id)))
    rollup = school_rollup(class_rows)
    return SchoolRollupResponse(academic_year_id=ay_id, **rollup.model_dump())
