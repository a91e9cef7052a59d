import os
import tempfile

# Point the app at a throwaway SQLite file before anything imports the settings
TEST_DB_DIR = tempfile.mkdtemp(prefix="school_portal_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{TEST_DB_DIR}/test_school_portal.db"
os.environ["DIRECT_URL"] = ""
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["LOG_LEVEL"] = "WARNING"

from datetime import datetime, timedelta, timezone  # noqa: E402
from types import SimpleNamespace  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import SQLModel, Session  # noqa: E402

from school_portal.core.cache import query_cache  # noqa: E402
from school_portal.core.database import engine, get_session  # noqa: E402
from school_portal.core.security import create_access_token, get_password_hash  # noqa: E402
from school_portal.main import app  # noqa: E402
from school_portal.models import (  # noqa: E402
    Assignment, AssignmentQuestion, Course, GradingMode, QuestionType, StudentCourse, User, UserRole
)

T0 = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)


def override_get_session():
    with Session(engine) as session:
        yield session


@pytest.fixture(autouse=True)
def clean_db():
    """Fresh schema and empty cache for each test."""
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    query_cache.clear()
    yield
    query_cache.clear()


@pytest.fixture()
def session():
    with Session(engine) as session:
        yield session


def _user(session, email, role, name):
    user = User(email=email, name=name, role=role, hashed_password=get_password_hash("password123"))
    session.add(user)
    return user


@pytest.fixture()
def seed(session):
    """Admin, two teachers, three students; one course taught by `teacher` with two enrolled students."""
    admin = _user(session, "admin@school.com", UserRole.ADMIN, "Admin")
    teacher = _user(session, "teacher@school.com", UserRole.TEACHER, "Teacher One")
    other_teacher = _user(session, "teacher2@school.com", UserRole.TEACHER, "Teacher Two")
    student = _user(session, "student1@school.com", UserRole.STUDENT, "Student One")
    student2 = _user(session, "student2@school.com", UserRole.STUDENT, "Student Two")
    outsider = _user(session, "outsider@school.com", UserRole.STUDENT, "Outsider")
    session.commit()

    course = Course(name="Mathematics", description="Algebra", instructor_id=teacher.id)
    session.add(course)
    session.commit()

    session.add(StudentCourse(student_id=student.id, course_id=course.id))
    session.add(StudentCourse(student_id=student2.id, course_id=course.id))
    session.commit()

    for obj in (admin, teacher, other_teacher, student, student2, outsider, course):
        session.refresh(obj)

    return SimpleNamespace(
        admin=admin, teacher=teacher, other_teacher=other_teacher,
        student=student, student2=student2, outsider=outsider, course=course,
    )


@pytest.fixture()
def client():
    """Test client without lifespan events: no countdown tasks, expiry happens on read."""
    app.dependency_overrides[get_session] = override_get_session
    c = TestClient(app)
    yield c
    app.dependency_overrides.clear()


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(data={'sub': user.id})}"}


@pytest.fixture()
def make_assignment(session, seed):
    """Create an assignment directly in the database.

    `questions` is a list of (text, type, points, options, correct_answer).
    """
    def _make(questions=(), **fields):
        values = dict(
            course_id=seed.course.id,
            title="Quiz 1",
            grading_mode=GradingMode.MANUAL,
            is_published=True,
            created_by=seed.teacher.id,
        )
        values.update(fields)
        assignment = Assignment(**values)
        session.add(assignment)
        session.commit()
        session.refresh(assignment)

        for index, (text, question_type, points, options, correct_answer) in enumerate(questions):
            question = AssignmentQuestion(
                assignment_id=assignment.id,
                question_text=text,
                question_type=question_type,
                points=points,
                correct_answer=correct_answer,
                question_order=index,
                position=index,
            )
            question.set_options(options)
            session.add(question)
        session.commit()
        return assignment

    return _make


TWO_MCQ = [
    ("2 + 2 = ?", QuestionType.MCQ, 1.0, ["3", "4"], "4"),
    ("Capital of France?", QuestionType.MCQ, 1.0, ["Paris", "Rome"], "Paris"),
]


def question_ids(session, assignment):
    from school_portal.services.grading import load_questions
    return [q.id for q in load_questions(session, assignment.id)]


def minutes_after_t0(minutes, seconds=0):
    return T0 + timedelta(minutes=minutes, seconds=seconds)
