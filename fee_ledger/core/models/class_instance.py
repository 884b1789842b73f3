"""Class instance: one grade + section of a school in an academic year (e.g. Grade 5 / A)."""
import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Uuid

from fee_ledger.db.session import Base


class ClassInstance(Base):
    __tablename__ = "class_instances"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_code = Column(String(50), nullable=False, index=True)
    academic_year_id = Column(Uuid, ForeignKey("academic_years.id", ondelete="RESTRICT"), nullable=True)
    grade = Column(String(50), nullable=False)
    section = Column(String(20), nullable=True)
    display_order = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    @property
    def display_name(self) -> str:
        return f"{self.grade} {self.section}" if self.section else self.grade
