"""Fee payment: append-only ledger of money received against a student's fee component."""

import uuid
from datetime import date, datetime

from sqlalchemy import BigInteger, CheckConstraint, Column, Date, DateTime, ForeignKey, String, Text, Uuid

from fee_ledger.db.session import Base


class FeePayment(Base):
    """
    Never updated or deleted; corrections are new rows. plan_id is nullable for payments
    recorded before the student had a plan.
    """

    __tablename__ = "fee_payments"
    __table_args__ = (
        CheckConstraint("amount_minor_units > 0", name="chk_fee_payment_amount_positive"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_code = Column(String(50), nullable=False, index=True)
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    plan_id = Column(Uuid, ForeignKey("fee_student_plans.id", ondelete="SET NULL"), nullable=True, index=True)
    component_type_id = Column(Uuid, ForeignKey("fee_component_types.id", ondelete="RESTRICT"), nullable=False)
    amount_minor_units = Column(BigInteger, nullable=False)
    payment_date = Column(Date, nullable=False, default=date.today)
    payment_method = Column(String(30), nullable=True)  # cash, card, online, cheque, bank_transfer
    transaction_id = Column(String(100), nullable=True)
    receipt_number = Column(String(100), nullable=True)
    remarks = Column(Text, nullable=True)
    created_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
