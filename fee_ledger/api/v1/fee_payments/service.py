"""Fee payments service: append-only payment ledger, history listing, pending students."""

import logging
from datetime import date
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fee_ledger.core.audit import log_fee_audit
from fee_ledger.core.config import settings
from fee_ledger.core.enums import PaymentMethod
from fee_ledger.core.exceptions import ServiceError, ValidationError
from fee_ledger.core.models import FeeComponentType, FeePayment, FeeStudentPlan, FeeStudentPlanItem, Student
from fee_ledger.core.money import MAX_MINOR_UNITS, format_amount, parse_amount
from fee_ledger.api.v1.fees.ledger import name_sort_key
from fee_ledger.core.scope import (
    ensure_writable_year,
    get_class_instance,
    get_class_roster,
    get_student,
    resolve_academic_year_id,
)

from .schemas import (
    PaymentCreate,
    PaymentHistoryResponse,
    PaymentResponse,
    PendingStudent,
    PendingStudentsResponse,
)

logger = logging.getLogger(__name__)

NO_PLAN_MESSAGE = "This student does not have a fee plan. Please create a fee plan first."


def _resolve_amount(payload: PaymentCreate) -> int:
    if payload.amount_minor_units is not None:
        amount = payload.amount_minor_units
    elif payload.amount is not None:
        try:
            amount = parse_amount(payload.amount)
        except ValueError:
            raise ValidationError("Please enter a valid amount")
    else:
        raise ValidationError("Amount is required")
    if amount <= 0:
        raise ValidationError("Amount must be greater than zero")
    if amount > MAX_MINOR_UNITS:
        raise ValidationError("Amount is too large")
    return amount


def _to_response(
    pt: FeePayment,
    student_name: Optional[str] = None,
    component_name: Optional[str] = None,
    plan_total: Optional[int] = None,
) -> PaymentResponse:
    return PaymentResponse(
        id=pt.id,
        student_id=pt.student_id,
        student_name=student_name,
        plan_id=pt.plan_id,
        component_type_id=pt.component_type_id,
        component_name=component_name,
        amount_minor_units=int(pt.amount_minor_units),
        amount_display=format_amount(int(pt.amount_minor_units)),
        payment_date=pt.payment_date,
        payment_method=pt.payment_method,
        transaction_id=pt.transaction_id,
        receipt_number=pt.receipt_number,
        remarks=pt.remarks,
        created_by=pt.created_by,
        created_at=pt.created_at,
        plan_total_minor_units=plan_total,
    )


async def _plan_totals(db: AsyncSession, plan_ids: Iterable[UUID]) -> Dict[UUID, int]:
    ids = {pid for pid in plan_ids if pid is not None}
    if not ids:
        return {}
    result = await db.execute(
        select(FeeStudentPlanItem.plan_id, func.coalesce(func.sum(FeeStudentPlanItem.amount_minor_units), 0))
        .where(FeeStudentPlanItem.plan_id.in_(ids))
        .group_by(FeeStudentPlanItem.plan_id)
    )
    return {pid: int(total) for pid, total in result.all()}


def _check_date_range(date_from: Optional[date], date_to: Optional[date]) -> None:
    if date_from and date_to and date_from > date_to:
        raise ValidationError("Start date must be on or before end date")


def _window_filters(
    date_from: Optional[date],
    date_to: Optional[date],
    payment_method: Optional[PaymentMethod],
) -> list:
    conds = []
    if date_from is not None:
        conds.append(FeePayment.payment_date >= date_from)
    if date_to is not None:
        conds.append(FeePayment.payment_date <= date_to)
    if payment_method is not None:
        conds.append(FeePayment.payment_method == PaymentMethod(payment_method).value)
    return conds


async def record_payment(
    db: AsyncSession,
    school_code: str,
    payload: PaymentCreate,
    session_year: Optional[UUID] = None,
    created_by: Optional[UUID] = None,
) -> PaymentResponse:
    """Append one payment against a component of the student's current plan. Nothing else is updated."""
    amount = _resolve_amount(payload)
    student = await get_student(db, school_code, payload.student_id)
    ay_id = await resolve_academic_year_id(db, school_code, payload.academic_year_id, session_year)
    await ensure_writable_year(db, ay_id)

    plan = (
        await db.execute(
            select(FeeStudentPlan).where(
                FeeStudentPlan.school_code == school_code,
                FeeStudentPlan.student_id == student.id,
                FeeStudentPlan.academic_year_id == ay_id,
            )
        )
    ).scalar_one_or_none()
    if not plan:
        raise ValidationError(NO_PLAN_MESSAGE)

    item_component = (
        await db.execute(
            select(FeeComponentType.name)
            .join(FeeStudentPlanItem, FeeStudentPlanItem.component_type_id == FeeComponentType.id)
            .where(
                FeeStudentPlanItem.plan_id == plan.id,
                FeeStudentPlanItem.component_type_id == payload.component_type_id,
            )
        )
    ).scalar_one_or_none()
    if item_component is None:
        raise ValidationError("Please select a fee component from this student's plan")

    try:
        pt = FeePayment(
            school_code=school_code,
            student_id=student.id,
            plan_id=plan.id,
            component_type_id=payload.component_type_id,
            amount_minor_units=amount,
            payment_date=payload.payment_date or date.today(),
            payment_method=payload.payment_method.value if payload.payment_method else None,
            transaction_id=(payload.transaction_id or "").strip() or None,
            receipt_number=(payload.receipt_number or "").strip() or None,
            remarks=(payload.remarks or "").strip() or None,
            created_by=created_by,
        )
        db.add(pt)
        await db.flush()
        await log_fee_audit(
            db, school_code, "fee_payments", pt.id,
            "CREATE", None,
            {
                "student_id": str(student.id),
                "plan_id": str(plan.id),
                "component_type_id": str(payload.component_type_id),
                "amount_minor_units": amount,
                "payment_method": pt.payment_method,
            },
            created_by,
        )
        await db.commit()
        await db.refresh(pt)
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Failed to record payment for student %s", student.id)
        raise ServiceError("Failed to record payment")

    logger.info(
        "Recorded payment %s of %d for student %s (%s)",
        pt.id, amount, student.id, item_component,
    )
    plan_totals = await _plan_totals(db, [plan.id])
    return _to_response(pt, student.full_name, item_component, plan_totals.get(plan.id, 0))


async def list_payments(
    db: AsyncSession,
    school_code: str,
    class_instance_id: Optional[UUID] = None,
    student_id: Optional[UUID] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    payment_method: Optional[PaymentMethod] = None,
    search: Optional[str] = None,
) -> PaymentHistoryResponse:
    """Payment history, newest first, capped at PAYMENT_HISTORY_LIMIT rows."""
    _check_date_range(date_from, date_to)
    limit = settings.payment_history_limit

    stmt = (
        select(FeePayment, Student.full_name, FeeComponentType.name)
        .join(Student, FeePayment.student_id == Student.id)
        .outerjoin(FeeComponentType, FeePayment.component_type_id == FeeComponentType.id)
        .where(FeePayment.school_code == school_code)
    )
    if class_instance_id is not None:
        await get_class_instance(db, school_code, class_instance_id)
        stmt = stmt.where(Student.class_instance_id == class_instance_id)
    if student_id is not None:
        stmt = stmt.where(FeePayment.student_id == student_id)
    for cond in _window_filters(date_from, date_to, payment_method):
        stmt = stmt.where(cond)
    if search and search.strip():
        stmt = stmt.where(Student.full_name.ilike(f"%{search.strip()}%"))
    stmt = stmt.order_by(FeePayment.payment_date.desc(), FeePayment.created_at.desc()).limit(limit)

    rows = (await db.execute(stmt)).all()
    plan_totals = await _plan_totals(db, (pt.plan_id for pt, _, _ in rows))
    items = [
        _to_response(
            pt,
            student_name,
            component_name,
            plan_totals.get(pt.plan_id, 0) if pt.plan_id else None,
        )
        for pt, student_name, component_name in rows
    ]
    return PaymentHistoryResponse(
        items=items,
        total_collected_minor_units=sum(i.amount_minor_units for i in items),
        limit=limit,
    )


async def list_pending_students(
    db: AsyncSession,
    school_code: str,
    class_instance_id: UUID,
    academic_year_id: Optional[UUID] = None,
    session_year: Optional[UUID] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    payment_method: Optional[PaymentMethod] = None,
    search: Optional[str] = None,
) -> PendingStudentsResponse:
    """
    Roster students without a payment in the window, with what each still owes on their plan.

    A payment only marks its student as paid when it passes the same filters as the history
    list, name search included, so a search narrows the paid set rather than the roster.
    """
    _check_date_range(date_from, date_to)
    await get_class_instance(db, school_code, class_instance_id)
    ay_id = await resolve_academic_year_id(db, school_code, academic_year_id, session_year)
    roster = await get_class_roster(db, school_code, class_instance_id)
    if not roster:
        return PendingStudentsResponse(students=[], pending_due_total_minor_units=0)
    roster_ids = [s.id for s in roster]

    paid_stmt = select(FeePayment.student_id).where(
        FeePayment.school_code == school_code,
        FeePayment.student_id.in_(roster_ids),
    )
    for cond in _window_filters(date_from, date_to, payment_method):
        paid_stmt = paid_stmt.where(cond)
    if search and search.strip():
        paid_stmt = paid_stmt.join(Student, FeePayment.student_id == Student.id).where(
            Student.full_name.ilike(f"%{search.strip()}%")
        )
    paid_ids = set((await db.execute(paid_stmt.distinct())).scalars().all())

    plan_by_student = {
        sid: pid
        for sid, pid in (
            await db.execute(
                select(FeeStudentPlan.student_id, FeeStudentPlan.id).where(
                    FeeStudentPlan.school_code == school_code,
                    FeeStudentPlan.academic_year_id == ay_id,
                    FeeStudentPlan.student_id.in_(roster_ids),
                )
            )
        ).all()
    }
    plan_ids = list(plan_by_student.values())
    plan_totals = await _plan_totals(db, plan_ids)
    plan_paid: Dict[UUID, int] = {}
    if plan_ids:
        result = await db.execute(
            select(FeePayment.plan_id, func.coalesce(func.sum(FeePayment.amount_minor_units), 0))
            .where(FeePayment.plan_id.in_(plan_ids))
            .group_by(FeePayment.plan_id)
        )
        plan_paid = {pid: int(total) for pid, total in result.all()}

    pending: List[PendingStudent] = []
    for s in sorted(roster, key=lambda s: (name_sort_key(s.full_name), s.student_code)):
        if s.id in paid_ids:
            continue
        plan_id = plan_by_student.get(s.id)
        due = 0
        if plan_id is not None:
            due = max(plan_totals.get(plan_id, 0) - plan_paid.get(plan_id, 0), 0)
        pending.append(
            PendingStudent(
                student_id=s.id,
                full_name=s.full_name,
                student_code=s.student_code,
                plan_id=plan_id,
                due_minor_units=due,
            )
        )
    return PendingStudentsResponse(
        students=pending,
        pending_due_total_minor_units=sum(p.due_minor_units for p in pending),
    )
