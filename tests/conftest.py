import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ["BATCH_REAPER_INTERVAL_SECONDS"] = "0"

from datetime import date
from types import SimpleNamespace
from typing import AsyncGenerator, List, Optional
from uuid import UUID

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from academic_ops.auth.models import Role, User  # registers users/roles tables
from academic_ops.auth.security import create_access_token
from academic_ops.core import clock
from academic_ops.core.models import (
    AcademicSession,
    ClassArm,
    ClassSection,
    Parent,
    School,
    SchoolClass,
    Student,
    Term,
)
from academic_ops.db.session import Base, get_db
from academic_ops.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture()
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database per test; the app's get_db is overridden to share this session."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async_session = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    async with async_session() as session:

        async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
            yield session

        app.dependency_overrides[get_db] = override_get_db
        yield session

    app.dependency_overrides.clear()
    await engine.dispose()


@pytest.fixture()
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def _headers(user_id: UUID, school_id: UUID, role: str) -> dict:
    token = create_access_token(
        subject={"sub": str(user_id), "user_id": str(user_id), "school_id": str(school_id), "role": role}
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
async def school(db_session: AsyncSession) -> SimpleNamespace:
    """School with an admin and a read-only teacher. Plain values only, so app-side rollbacks never touch them."""
    s = School(name="Greenfield College", code="GFC")
    db_session.add(s)
    await db_session.flush()
    admin = User(school_id=s.id, full_name="Ada Admin", email="admin@gfc.test", role="ADMIN")
    teacher = User(school_id=s.id, full_name="Tunde Teacher", email="teacher@gfc.test", role="TEACHER")
    db_session.add_all([admin, teacher])
    db_session.add(
        Role(
            school_id=s.id,
            name="TEACHER",
            permissions={"promotions": {"read": True}, "sessions": {"read": True}},
        )
    )
    await db_session.commit()
    return SimpleNamespace(
        id=s.id,
        admin_id=admin.id,
        admin_name=admin.full_name,
        teacher_id=teacher.id,
        admin_headers=_headers(admin.id, s.id, "ADMIN"),
        teacher_headers=_headers(teacher.id, s.id, "TEACHER"),
    )


@pytest.fixture()
async def period(db_session: AsyncSession, school: SimpleNamespace) -> SimpleNamespace:
    """
    Two sessions (2023/2024 current, 2024/2025) with three terms each, classes JSS 1 (arms A, B;
    A has section Gold) and JSS 2 (arm A with section Blue), and one parent.
    """
    s1 = AcademicSession(
        school_id=school.id, name="2023/2024", start_date=date(2023, 9, 4), end_date=date(2024, 7, 19), is_current=True
    )
    s2 = AcademicSession(school_id=school.id, name="2024/2025", start_date=date(2024, 9, 2), end_date=date(2025, 7, 18))
    db_session.add_all([s1, s2])
    await db_session.flush()
    terms = [
        Term(school_id=school.id, session_id=s1.id, name="1st", start_date=date(2023, 9, 4), end_date=date(2023, 12, 15)),
        Term(school_id=school.id, session_id=s1.id, name="2nd", start_date=date(2024, 1, 8), end_date=date(2024, 4, 5)),
        Term(school_id=school.id, session_id=s1.id, name="3rd", start_date=date(2024, 4, 22), end_date=date(2024, 7, 19)),
        Term(school_id=school.id, session_id=s2.id, name="1st", start_date=date(2024, 9, 2), end_date=date(2024, 12, 13)),
        Term(school_id=school.id, session_id=s2.id, name="2nd", start_date=date(2025, 1, 6), end_date=date(2025, 4, 4)),
        Term(school_id=school.id, session_id=s2.id, name="3rd", start_date=date(2025, 4, 21), end_date=date(2025, 7, 18)),
    ]
    db_session.add_all(terms)

    jss1 = SchoolClass(school_id=school.id, name="JSS 1", display_order=1)
    jss2 = SchoolClass(school_id=school.id, name="JSS 2", display_order=2)
    db_session.add_all([jss1, jss2])
    await db_session.flush()
    jss1_a = ClassArm(school_id=school.id, school_class_id=jss1.id, name="A")
    jss1_b = ClassArm(school_id=school.id, school_class_id=jss1.id, name="B")
    jss2_a = ClassArm(school_id=school.id, school_class_id=jss2.id, name="A")
    db_session.add_all([jss1_a, jss1_b, jss2_a])
    await db_session.flush()
    gold = ClassSection(school_id=school.id, class_arm_id=jss1_a.id, name="Gold")
    blue = ClassSection(school_id=school.id, class_arm_id=jss2_a.id, name="Blue")
    parent = Parent(school_id=school.id, full_name="Grace Obi", email="grace.obi@example.com")
    db_session.add_all([gold, blue, parent])
    await db_session.commit()

    return SimpleNamespace(
        school_id=school.id,
        session_2324=s1.id,
        session_2425=s2.id,
        terms_2324=[t.id for t in terms[:3]],
        terms_2425=[t.id for t in terms[3:]],
        jss1=jss1.id,
        jss1_a=jss1_a.id,
        jss1_b=jss1_b.id,
        jss1_a_gold=gold.id,
        jss2=jss2.id,
        jss2_a=jss2_a.id,
        jss2_a_blue=blue.id,
        parent_id=parent.id,
    )


async def add_students(
    db: AsyncSession,
    period: SimpleNamespace,
    count: int,
    *,
    prefix: str = "ADM",
    status: str = "ACTIVE",
    session_id: Optional[UUID] = None,
    school_class_id: Optional[UUID] = None,
    class_arm_id: Optional[UUID] = None,
    class_section_id: Optional[UUID] = None,
) -> List[UUID]:
    """Insert students placed in JSS 1 / A for 2023/2024 unless told otherwise; returns their ids."""
    students = []
    for i in range(count):
        student = Student(
            school_id=period.school_id,
            admission_no=f"{prefix}-{i + 1:04d}",
            first_name="Student",
            last_name=f"{prefix}{i + 1}",
            school_class_id=school_class_id or period.jss1,
            class_arm_id=class_arm_id or period.jss1_a,
            class_section_id=class_section_id,
            current_session_id=session_id or period.session_2324,
            current_term_id=period.terms_2324[0],
            status=status,
        )
        db.add(student)
        students.append(student)
    await db.commit()
    return [s.id for s in students]


@pytest.fixture()
def make_students(db_session: AsyncSession, period: SimpleNamespace):
    async def _make(count: int, **kwargs) -> List[UUID]:
        return await add_students(db_session, period, count, **kwargs)

    return _make


@pytest.fixture()
def pin_today(monkeypatch: pytest.MonkeyPatch):
    """Fix the date services see as today."""

    def _pin(day: date) -> None:
        monkeypatch.setattr(clock, "today", lambda: day)

    return _pin
