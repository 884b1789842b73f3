import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint, Uuid

from fee_ledger.db.session import Base


class Student(Base):
    """
    Student roster row. Read-only for the fee ledger: rosters are managed elsewhere and
    only consulted here to resolve a class's students.
    """

    __tablename__ = "students"
    __table_args__ = (
        UniqueConstraint("school_code", "student_code", name="uq_student_school_code"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_code = Column(String(50), nullable=False, index=True)
    class_instance_id = Column(Uuid, ForeignKey("class_instances.id"), nullable=True, index=True)
    full_name = Column(String(255), nullable=False)
    student_code = Column(String(50), nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
