"""School / academic year / class lookups shared by the fee services. All school-scoped."""

from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fee_ledger.core.exceptions import ServiceError
from fee_ledger.core.models import AcademicYear, ClassInstance, Student

NO_ACADEMIC_YEAR_MESSAGE = "No active academic year found. Please set up an active academic year first."


async def resolve_academic_year_id(
    db: AsyncSession,
    school_code: str,
    requested: Optional[UUID] = None,
    session_year: Optional[UUID] = None,
) -> UUID:
    """Explicit year, else the session's year, else the school's active year."""
    academic_year_id = requested or session_year
    if academic_year_id is not None:
        ay = await db.get(AcademicYear, academic_year_id)
        if not ay or ay.school_code != school_code:
            raise ServiceError("Invalid academic year", status.HTTP_400_BAD_REQUEST)
        return ay.id
    result = await db.execute(
        select(AcademicYear.id).where(
            AcademicYear.school_code == school_code,
            AcademicYear.is_active.is_(True),
        )
    )
    active_id = result.scalars().first()
    if active_id is None:
        raise ServiceError(NO_ACADEMIC_YEAR_MESSAGE, status.HTTP_400_BAD_REQUEST)
    return active_id


async def ensure_writable_year(db: AsyncSession, academic_year_id: UUID) -> None:
    ay = await db.get(AcademicYear, academic_year_id)
    if ay is not None and ay.status == "CLOSED":
        raise ServiceError(
            "Cannot modify fees for a CLOSED academic year",
            status.HTTP_400_BAD_REQUEST,
        )


async def get_class_instance(db: AsyncSession, school_code: str, class_instance_id: UUID) -> ClassInstance:
    cl = await db.get(ClassInstance, class_instance_id)
    if not cl or cl.school_code != school_code:
        raise ServiceError("Class not found", status.HTTP_404_NOT_FOUND)
    return cl


async def get_student(db: AsyncSession, school_code: str, student_id: UUID) -> Student:
    student = await db.get(Student, student_id)
    if not student or student.school_code != school_code:
        raise ServiceError("Student not found", status.HTTP_404_NOT_FOUND)
    return student


async def get_class_roster(db: AsyncSession, school_code: str, class_instance_id: UUID) -> List[Student]:
    result = await db.execute(
        select(Student)
        .where(
            Student.school_code == school_code,
            Student.class_instance_id == class_instance_id,
        )
        .order_by(Student.full_name)
    )
    return list(result.scalars().all())
