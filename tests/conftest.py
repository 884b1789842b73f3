import os
from datetime import date
from types import SimpleNamespace
from typing import AsyncGenerator, Dict, Optional

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from fee_ledger.auth.security import create_access_token
from fee_ledger.core.models import AcademicYear, ClassInstance, FeeComponentType, Student
from fee_ledger.db.session import Base, get_db
from fee_ledger.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite://"
SCHOOL_CODE = "SCH001"


@pytest.fixture()
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory DB per test; the same session backs the app's get_db."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:

        async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
            yield session

        app.dependency_overrides[get_db] = override_get_db
        yield session

    app.dependency_overrides.pop(get_db, None)
    await engine.dispose()


@pytest.fixture()
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def make_token(
    school_code: str = SCHOOL_CODE,
    role: str = "ADMIN",
    permissions: Optional[Dict[str, Dict[str, bool]]] = None,
    academic_year_id=None,
    academic_year_status: Optional[str] = None,
) -> str:
    subject = {
        "sub": "11111111-1111-1111-1111-111111111111",
        "school_code": school_code,
        "role": role,
        "permissions": permissions or {},
    }
    if academic_year_id is not None:
        subject["academic_year_id"] = str(academic_year_id)
    if academic_year_status is not None:
        subject["academic_year_status"] = academic_year_status
    return create_access_token(subject=subject)


@pytest.fixture()
def auth_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture()
def make_headers():
    def _make(**kwargs) -> Dict[str, str]:
        return {"Authorization": f"Bearer {make_token(**kwargs)}"}

    return _make


@pytest.fixture()
async def school(db_session: AsyncSession) -> SimpleNamespace:
    """Active year, one class (Grade 5 A) with three students."""
    ay = AcademicYear(
        school_code=SCHOOL_CODE,
        name="2025-2026",
        start_date=date(2025, 6, 1),
        end_date=date(2026, 3, 31),
        is_active=True,
        status="ACTIVE",
    )
    db_session.add(ay)
    await db_session.flush()
    cl = ClassInstance(school_code=SCHOOL_CODE, academic_year_id=ay.id, grade="Grade 5", section="A", display_order=5)
    db_session.add(cl)
    await db_session.flush()
    students = [
        Student(school_code=SCHOOL_CODE, class_instance_id=cl.id, full_name=name, student_code=code)
        for name, code in (("Zara Khan", "S003"), ("Aarav Shah", "S001"), ("Émile Roy", "S002"))
    ]
    db_session.add_all(students)
    await db_session.commit()
    students = sorted(students, key=lambda s: s.student_code)
    # Plain ids: a rollback inside a request expires the ORM instances above
    return SimpleNamespace(
        school_code=SCHOOL_CODE,
        academic_year=ay,
        class_instance=cl,
        students=students,
        academic_year_id=ay.id,
        class_id=cl.id,
        student_ids=[s.id for s in students],
    )


@pytest.fixture()
def make_component(db_session: AsyncSession):
    async def _make(name: str, code: str, default_amount: Optional[int] = None, school_code: str = SCHOOL_CODE):
        fc = FeeComponentType(
            school_code=school_code,
            code=code,
            name=name,
            default_amount_minor_units=default_amount,
        )
        db_session.add(fc)
        await db_session.commit()
        return fc

    return _make
