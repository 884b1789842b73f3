"""
Fee ledger arithmetic. Pure functions over plan and payment DTOs: no database, no clock.

Balances are never stored; every read recomputes them from plan items and payments.
"""

import unicodedata
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional, Sequence
from uuid import UUID

from pydantic import BaseModel

from fee_ledger.core.enums import PlanFilter, StudentFeeStatus


class LedgerItem(BaseModel):
    component_type_id: UUID
    amount_minor_units: int


class LedgerPlan(BaseModel):
    id: UUID
    items: List[LedgerItem] = []


class LedgerPayment(BaseModel):
    amount_minor_units: int
    plan_id: Optional[UUID] = None


class FeeSummary(BaseModel):
    total_due: int
    total_paid: int
    balance: int
    percentage: int
    has_plan: bool
    status: StudentFeeStatus


class StudentFeeRow(BaseModel):
    student_id: UUID
    full_name: str
    student_code: str
    plan_id: Optional[UUID] = None
    summary: FeeSummary


class ClassTotals(BaseModel):
    total_assigned: int
    total_pending: int


class ClassAnalytics(BaseModel):
    total_students: int
    total_due: int
    total_paid: int
    # Signed: negative when the class is overpaid overall
    total_balance: int
    collection_rate: float
    overdue_students: int
    fully_paid_students: int
    overpaid_students: int


class ClassRollup(BaseModel):
    class_instance_id: UUID
    class_name: str
    total_students: int
    total_due: int
    total_paid: int
    total_pending: int


class SchoolRollup(BaseModel):
    classes: List[ClassRollup]
    total_students: int
    total_due: int
    total_paid: int
    total_pending: int
    collection_rate: float


def _round_half_up(value: Decimal, places: str = "1") -> Decimal:
    return value.quantize(Decimal(places), rounding=ROUND_HALF_UP)


def _rate(paid: int, due: int) -> float:
    if due <= 0:
        return 0.0
    return float(_round_half_up(Decimal(paid) * 100 / Decimal(due), "0.1"))


def compute_summary(plan: Optional[LedgerPlan], payments: Iterable[LedgerPayment]) -> FeeSummary:
    """
    total_due is the sum of the plan's items (0 without a plan). total_paid counts every
    payment given for the student regardless of plan_id. balance is floored at 0 and
    percentage is rounded half up and capped to 0..100.
    """
    total_due = sum(i.amount_minor_units for i in plan.items) if plan is not None else 0
    total_paid = sum(p.amount_minor_units for p in payments)
    if total_due > 0:
        pct = _round_half_up(Decimal(total_paid) * 100 / Decimal(total_due))
        percentage = int(min(Decimal(100), max(Decimal(0), pct)))
    else:
        percentage = 0
    if total_due > 0 and total_paid >= total_due:
        status = StudentFeeStatus.paid
    elif total_paid > 0:
        status = StudentFeeStatus.partial
    else:
        status = StudentFeeStatus.unpaid
    return FeeSummary(
        total_due=total_due,
        total_paid=total_paid,
        balance=max(total_due - total_paid, 0),
        percentage=percentage,
        has_plan=plan is not None,
        status=status,
    )


def name_sort_key(name: str) -> str:
    # Accent- and case-insensitive: "Émile" sorts with "emile"
    decomposed = unicodedata.normalize("NFKD", name or "")
    return "".join(c for c in decomposed if not unicodedata.combining(c)).casefold()


def filter_students(
    rows: Iterable[StudentFeeRow],
    search: Optional[str] = None,
    plan_filter: PlanFilter = PlanFilter.ALL,
) -> List[StudentFeeRow]:
    needle = name_sort_key(search.strip()) if search and search.strip() else ""
    plan_filter = PlanFilter(plan_filter)
    out = []
    for row in rows:
        if needle and needle not in name_sort_key(row.full_name) and needle not in row.student_code.casefold():
            continue
        if plan_filter == PlanFilter.HAS_PLAN and not row.summary.has_plan:
            continue
        if plan_filter == PlanFilter.NO_PLAN and row.summary.has_plan:
            continue
        out.append(row)
    return sorted(out, key=lambda r: (name_sort_key(r.full_name), r.student_code))


def aggregate_class(rows: Iterable[StudentFeeRow]) -> ClassTotals:
    """Totals over the rows given, i.e. whatever the current filter left visible."""
    rows = list(rows)
    return ClassTotals(
        total_assigned=sum(r.summary.total_due for r in rows),
        total_pending=sum(r.summary.balance for r in rows),
    )


def class_analytics(rows: Sequence[StudentFeeRow]) -> ClassAnalytics:
    total_due = 0
    total_paid = 0
    overdue = 0
    fully_paid = 0
    overpaid = 0
    for r in rows:
        due = r.summary.total_due
        paid = r.summary.total_paid
        total_due += due
        total_paid += paid
        signed = due - paid
        if signed > 0:
            overdue += 1
        elif signed == 0 and paid > 0:
            fully_paid += 1
        elif signed < 0:
            overpaid += 1
    return ClassAnalytics(
        total_students=len(rows),
        total_due=total_due,
        total_paid=total_paid,
        total_balance=total_due - total_paid,
        collection_rate=_rate(total_paid, total_due),
        overdue_students=overdue,
        fully_paid_students=fully_paid,
        overpaid_students=overpaid,
    )


def school_rollup(class_rows: Iterable[tuple]) -> SchoolRollup:
    """class_rows: (class_instance_id, class_name, rows) per class."""
    classes = []
    for class_instance_id, class_name, rows in class_rows:
        rows = list(rows)
        totals = aggregate_class(rows)
        classes.append(
            ClassRollup(
                class_instance_id=class_instance_id,
                class_name=class_name,
                total_students=len(rows),
                total_due=totals.total_assigned,
                total_paid=sum(r.summary.total_paid for r in rows),
                total_pending=totals.total_pending,
            )
        )
    total_due = sum(c.total_due for c in classes)
    total_paid = sum(c.total_paid for c in classes)
    return SchoolRollup(
        classes=classes,
        total_students=sum(c.total_students for c in classes),
        total_due=total_due,
        total_paid=total_paid,
        total_pending=sum(c.total_pending for c in classes),
        collection_rate=_rate(total_paid, total_due),
    )
