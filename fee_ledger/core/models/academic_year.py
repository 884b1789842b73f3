import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, String, UniqueConstraint, Uuid

from fee_ledger.db.session import Base


class AcademicYear(Base):
    """
    Academic year per school. The active year (is_active = true) is the default scope
    for fee plans. CLOSED years are read-only; plans and payments cannot be modified.
    """

    __tablename__ = "academic_years"
    __table_args__ = (
        UniqueConstraint("school_code", "name", name="uq_academic_year_school_name"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_code = Column(String(50), nullable=False, index=True)
    name = Column(String(50), nullable=False)  # e.g. "2025-2026"
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    is_active = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default="ACTIVE")  # ACTIVE | CLOSED
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
