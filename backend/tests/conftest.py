"""
Exam Portal - Test Configuration
Pytest fixtures and configuration for testing
"""
import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

import exam_portal.models  # noqa: F401  (registers tables)
from exam_portal.core.database import Base, get_db
from exam_portal.core.security import create_access_token
from exam_portal.main import app
from exam_portal.models.exam import Exam, Question
from exam_portal.models.user import User, UserRole
from exam_portal.schemas.exam import ChoiceAnswer, Module, QuestionSpec
from exam_portal.schemas.submission import SubmissionState


# Test database URL (in-memory SQLite, one database per test)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeClock:
    """Controllable clock for lifecycle tests."""
    
    def __init__(self, start: datetime):
        self.now = start
    
    def __call__(self) -> datetime:
        return self.now
    
    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def submission() -> SubmissionState:
    """A freshly started submission, all modules not started."""
    return SubmissionState(
        id=str(uuid.uuid4()),
        user_id=str(uuid.uuid4()),
        exam_id=str(uuid.uuid4()),
        ticket_id="TKT-0000000001",
    )


@pytest.fixture
def listening_bank() -> dict[str, QuestionSpec]:
    """Ten single-choice listening questions, all keyed to option 'A'."""
    return {
        f"L{i}": QuestionSpec(
            id=f"L{i}",
            module=Module.LISTENING,
            question_type="multiple-choice-single",
            correct_answer=ChoiceAnswer(option_id="A"),
        )
        for i in range(1, 11)
    }


# ============================================================================
# Database / HTTP fixtures
# ============================================================================

@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session
    
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session override."""
    
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session
    
    app.dependency_overrides[get_db] = override_get_db
    
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac
    
    app.dependency_overrides.clear()


async def _create_user(db: AsyncSession, email: str, role: UserRole) -> User:
    user = User(
        email=email,
        first_name="Test",
        last_name=role.value.title(),
        role=role,
        is_active=True,
    )
    db.add(user)
    await db.flush()
    return user


@pytest_asyncio.fixture
async def candidate(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "candidate@example.com", UserRole.CANDIDATE)


@pytest_asyncio.fixture
async def other_candidate(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "someone.else@example.com", UserRole.CANDIDATE)


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "admin@example.com", UserRole.ADMIN)


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(str(user.id))}"}


@pytest.fixture
def candidate_headers(candidate: User) -> dict[str, str]:
    return auth_headers(candidate)


@pytest.fixture
def admin_headers(admin: User) -> dict[str, str]:
    return auth_headers(admin)


# (module, question_type, correct_answer) in exam order
SAMPLE_QUESTIONS: list[tuple[str, str, dict[str, Any] | None]] = [
    ("listening", "multiple-choice-single", {"kind": "choice", "option_id": "B"}),
    ("listening", "sentence-completion", {"kind": "text", "value": "river"}),
    ("listening", "multiple-choice-multiple", {"kind": "multi_choice", "values": ["A", "C"]}),
    ("reading", "identifying-information", {"kind": "choice", "option_id": "TRUE"}),
    ("reading", "short-answer-questions", {"kind": "text", "value": "1987"}),
    ("writing", "task-2-essay", None),
    ("speaking", "part-1", None),
]


@pytest_asyncio.fixture
async def exam(db_session: AsyncSession) -> Exam:
    """A full four-module academic exam with a small question set."""
    questions = []
    for module, question_type, correct in SAMPLE_QUESTIONS:
        question = Question(
            module=module,
            question_type=question_type,
            title=f"{module} {question_type}",
            correct_answer=correct,
            points=1.0,
        )
        db_session.add(question)
        questions.append(question)
    await db_session.flush()
    
    exam = Exam(
        title="Academic Practice Test 1",
        exam_type="academic",
        modules={
            "listening": {"enabled": True, "duration_minutes": 30},
            "reading": {"enabled": True, "duration_minutes": 60},
            "writing": {"enabled": True, "duration_minutes": 60},
            "speaking": {"enabled": True, "duration_minutes": 15},
        },
        question_ids=[str(q.id) for q in questions],
        is_free=True,
        price=0.0,
        is_active=True,
    )
    db_session.add(exam)
    await db_session.flush()
    return exam


@pytest.fixture
def question_ids(exam: Exam) -> dict[str, str]:
    """Question ids keyed by question type."""
    return {question_type: exam.question_ids[i] for i, (_, question_type, _) in enumerate(SAMPLE_QUESTIONS)}


@pytest.fixture
def other_headers(other_candidate: User) -> dict[str, str]:
    return auth_headers(other_candidate)


@pytest_asyncio.fixture
async def examiner(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "examiner@example.com", UserRole.EXAMINER)


@pytest.fixture
def examiner_headers(examiner: User) -> dict[str, str]:
    return auth_headers(examiner)
