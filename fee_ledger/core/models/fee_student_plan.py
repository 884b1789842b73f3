"""Student fee plan: one per (school, student, academic year); items are replaced wholesale on edit."""

import uuid
from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, Column, DateTime, ForeignKey, String, UniqueConstraint, Uuid

from fee_ledger.db.session import Base


class FeeStudentPlan(Base):
    """
    Per-student fee plan for an academic year. Created lazily on first edit and never
    deleted by the ledger; only its items change.
    """

    __tablename__ = "fee_student_plans"
    __table_args__ = (
        # Natural key; plan creation is an insert-on-conflict-do-nothing against it
        UniqueConstraint("school_code", "student_id", "academic_year_id", name="uq_fee_student_plan_student_year"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_code = Column(String(50), nullable=False, index=True)
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    class_instance_id = Column(Uuid, ForeignKey("class_instances.id"), nullable=True)
    academic_year_id = Column(Uuid, ForeignKey("academic_years.id", ondelete="RESTRICT"), nullable=False)
    status = Column(String(20), nullable=False, default="active")
    created_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)


class FeeStudentPlanItem(Base):
    """Student owes amount_minor_units for component_type_id under plan_id."""

    __tablename__ = "fee_student_plan_items"
    __table_args__ = (
        CheckConstraint("amount_minor_units >= 0", name="chk_fee_student_plan_item_amount"),
    )

    plan_id = Column(Uuid, ForeignKey("fee_student_plans.id", ondelete="CASCADE"), primary_key=True)
    component_type_id = Column(Uuid, ForeignKey("fee_component_types.id", ondelete="RESTRICT"), primary_key=True)
    amount_minor_units = Column(BigInteger, nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
