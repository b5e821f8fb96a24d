"""
Pytest configuration for backend tests.

Why: Force AnyIO to use the asyncio backend to avoid sandbox restrictions
that can affect the Trio backend (e.g., socketpair permission errors), make
`backend.*` importable from a plain checkout, and provide a controllable clock
so submission windows can be tested to the second.
"""
import os
import sys
from pathlib import Path

import pytest

# Keep the suite hermetic: no .env, no database, no prod guards.
os.environ["COURSEHUB_ENABLE_DOTENV"] = "false"
os.environ["COURSEHUB_ENV"] = "test"
os.environ["COURSEHUB_STORE"] = "memory"
os.environ.pop("COURSEHUB_AUTH_PROVIDER", None)

# Ensure `backend.*` and the shared `utils` helpers are importable across tests
REPO_ROOT = Path(__file__).resolve().parents[2]
TESTS_DIR = REPO_ROOT / "backend" / "tests"
for p in (str(REPO_ROOT), str(TESTS_DIR)):
    if p not in sys.path:
        sys.path.insert(0, p)

from backend.courses.services.courses import CoursesService  # noqa: E402
from backend.courses.services.grading import GradingEngine  # noqa: E402
from backend.courses.services.submissions import SubmissionsService  # noqa: E402
from backend.courses.store import InMemoryCourseStore  # noqa: E402
from backend.identity_access.domain import Principal  # noqa: E402
from utils.factories import FakeClock, assignment_payload, quiz_payload  # noqa: E402


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryCourseStore:
    return InMemoryCourseStore()


@pytest.fixture
def courses(store, clock) -> CoursesService:
    return CoursesService(store=store, clock=clock)


@pytest.fixture
def submissions(store, clock) -> SubmissionsService:
    return SubmissionsService(store=store, clock=clock)


@pytest.fixture
def grading(store, clock) -> GradingEngine:
    return GradingEngine(store=store, clock=clock)


@pytest.fixture
def teacher() -> Principal:
    return Principal(id="teacher-1", role="teacher")


@pytest.fixture
def other_teacher() -> Principal:
    return Principal(id="teacher-2", role="teacher")


@pytest.fixture
def student() -> Principal:
    return Principal(id="student-1", role="student")


@pytest.fixture
def other_student() -> Principal:
    return Principal(id="student-2", role="student")


@pytest.fixture
def course_with_assignment(courses, teacher, student):
    """One chapter with an assignment and a quiz (both open T0..T0+1h); `student` is enrolled."""
    course = courses.create_course(
        teacher,
        title="Biology",
        description="Cells and systems",
        chapters=[{"title": "Cells", "assignments": [assignment_payload()], "quizzes": [quiz_payload()]}],
    )
    courses.enroll(student, course.id)
    return courses.get_course(teacher, course.id)
