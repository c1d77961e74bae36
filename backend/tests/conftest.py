"""
CDC Admin - Test Configuration and Fixtures
"""
import os
import tempfile
from datetime import datetime, timedelta
from typing import AsyncGenerator
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from faker import Faker

TEST_DIR = tempfile.mkdtemp(prefix="cdc_admin_tests_")

# Set testing environment before the app reads its settings
os.environ['TESTING'] = 'true'
os.environ['DATABASE_URL'] = f'sqlite+aiosqlite:///{TEST_DIR}/test.db'
os.environ['SECRET_KEY'] = 'test-secret-key-for-testing-only'
os.environ['JWT_SECRET_KEY'] = 'test-jwt-secret-key-for-testing'
os.environ['BCRYPT_ROUNDS'] = '4'
os.environ['UPLOAD_DIR'] = os.path.join(TEST_DIR, 'uploads')
os.environ['SMTP_USER'] = ''
os.environ['SMTP_PASSWORD'] = ''

from cdc_admin.main import app
from cdc_admin.core.clock import FixedClock, get_clock
from cdc_admin.core.database import Base, get_db, configure_sqlite_engine
from cdc_admin.core.security import get_password_hash, create_access_token
from cdc_admin.models import (
    User, UserRole, Department, DepartmentName, Course, CourseCategory, Batch, TimeSlot, Student, PC,
)
from cdc_admin.services.email_service import get_email_service

fake = Faker()

# "Now" for every test: 2025-01-15 10:00 local time
NOW = datetime(2025, 1, 15, 10, 0, 0)

# Test database setup
TEST_DATABASE_URL = os.environ['DATABASE_URL']
test_engine = configure_sqlite_engine(
    create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
)
TestSessionLocal = async_sessionmaker(
    bind=test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


class RecordingNotifier:
    """Stand-in for the SMTP notifier; remembers every send and fails listed addresses"""

    def __init__(self):
        self.sent = []
        self.failing = set()

    async def send_notification_email(self, to_email, teacher_name, title, message,
                                      notification_type, priority, sender_name="Administration"):
        self.sent.append({"to": to_email, "title": title, "priority": priority})
        return to_email not in self.failing


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture(scope='function')
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test"""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session
        await session.rollback()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client(db_session: AsyncSession, clock: FixedClock, notifier: RecordingNotifier) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database, clock and notifier overrides"""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_email_service] = lambda: notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac

    app.dependency_overrides.clear()


async def _make_user(db_session: AsyncSession, role: UserRole, password: str, **fields) -> User:
    user = User(
        name=fields.pop("name", fake.name()),
        email=fields.pop("email", fake.unique.email()),
        hashed_password=get_password_hash(password),
        role=role,
        is_active=True,
        **fields,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await _make_user(db_session, UserRole.ADMIN, 'adminpassword123', name="Admin")


@pytest.fixture
async def teacher_user(db_session: AsyncSession) -> User:
    return await _make_user(db_session, UserRole.TEACHER, 'teacherpassword123', name="Asha Teacher")


@pytest.fixture
async def other_teacher(db_session: AsyncSession) -> User:
    return await _make_user(db_session, UserRole.TEACHER, 'teacherpassword123', name="Ravi Teacher")


def auth_headers_for(user: User) -> dict:
    """Generate authentication headers for a user"""
    token = create_access_token({'sub': str(user.id), 'role': UserRole(user.role).value})
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def admin_headers(admin_user: User) -> dict:
    return auth_headers_for(admin_user)


@pytest.fixture
def teacher_headers(teacher_user: User) -> dict:
    return auth_headers_for(teacher_user)


@pytest.fixture
def other_teacher_headers(other_teacher: User) -> dict:
    return auth_headers_for(other_teacher)


@pytest.fixture
async def hierarchy(db_session: AsyncSession, teacher_user: User) -> dict:
    """
    Department -> course -> batch owned by ``teacher_user``, plus a second
    course with its own batch for mismatch checks.
    """
    department = Department(name=DepartmentName.CADD, code="CADD")
    db_session.add(department)
    await db_session.flush()

    course = Course(
        name="AutoCAD Professional", code="ACAD", department_id=department.id,
        duration_months=3, fee_amount=15000, category=CourseCategory.CAD, max_students_per_batch=20,
    )
    other_course = Course(
        name="Revit Architecture", code="RVT", department_id=department.id,
        duration_months=2, fee_amount=12000, category=CourseCategory.DESIGN,
    )
    db_session.add_all([course, other_course])
    await db_session.flush()

    batch = Batch(
        name="ACAD Morning", course_id=course.id, academic_year="2024-25", section="A",
        timing=TimeSlot.SLOT_0900, start_date=NOW - timedelta(days=90), max_students=20,
        created_by_id=teacher_user.id,
    )
    other_batch = Batch(
        name="RVT Evening", course_id=other_course.id, academic_year="2024-25", section="B",
        timing=TimeSlot.SLOT_1530, start_date=NOW - timedelta(days=30), max_students=20,
        created_by_id=teacher_user.id,
    )
    db_session.add_all([batch, other_batch])
    await db_session.commit()

    return {
        "department": department,
        "course": course,
        "batch": batch,
        "other_course": other_course,
        "other_batch": other_batch,
    }


async def add_students(db_session: AsyncSession, batch: Batch, count: int) -> list:
    course = await db_session.get(Course, batch.course_id)
    students = [
        Student(
            name=fake.name(), roll_no=str(i + 1), department_id=course.department_id,
            course_id=course.id, batch_id=batch.id, total_fees=15000, fees_paid=0,
        )
        for i in range(count)
    ]
    db_session.add_all(students)
    await db_session.commit()
    return students


@pytest.fixture
async def students(db_session: AsyncSession, hierarchy: dict) -> list:
    return await add_students(db_session, hierarchy["batch"], 5)


@pytest.fixture
async def pc(db_session: AsyncSession) -> PC:
    machine = PC(pc_number="PC17", row="2", position=7)
    db_session.add(machine)
    await db_session.commit()
    return machine


@pytest.fixture
def make_students(db_session: AsyncSession):
    """Factory: ``await make_students(batch, n)``"""
    async def _make(batch: Batch, count: int) -> list:
        return await add_students(db_session, batch, count)
    return _make


@pytest.fixture
def headers_for():
    return auth_headers_for


@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory: ``await make_user(role, **fields)``"""
    async def _make(role: UserRole, password: str = 'password123', **fields) -> User:
        return await _make_user(db_session, role, password, **fields)
    return _make
