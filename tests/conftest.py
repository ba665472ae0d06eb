"""
Shared pytest fixtures for LessonLoop tests.

Fixture summary
---------------
Database:
    db_path              -- temp .db file path with cleanup
    db_session           -- SQLAlchemy session bound to a fresh temp DB

Config:
    test_config          -- config dict using the mock LLM provider

Data builders:
    make_user            -- factory that inserts a User
    make_class           -- factory that inserts a Class owned by a teacher
    enroll               -- enroll students in a class
    make_quiz            -- factory that creates (and optionally publishes) a Quiz
    make_result          -- factory that inserts a QuizResult with a given score

Flask:
    flask_app            -- Flask app on a temp DB
    client               -- test client
    seeded               -- teacher, two enrolled students, an outsider and a class,
                            with bearer-token headers for each user
"""

import os
import tempfile
from types import SimpleNamespace

import pytest

from lessonloop.database import (
    QUIZ_PUBLISHED,
    ROLE_STUDENT,
    ROLE_TEACHER,
    Class,
    Enrollment,
    Question,
    Quiz,
    QuizResult,
    get_engine,
    get_session,
    init_db,
)
from lessonloop.users import create_user

# ---------------------------------------------------------------------------
# Core database fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def db_path():
    """Provide a temporary database file path with cleanup."""
    tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
    tmp.close()
    yield tmp.name
    try:
        if os.path.exists(tmp.name):
            os.remove(tmp.name)
    except OSError:
        pass  # Windows may still hold the lock


@pytest.fixture
def db_session(db_path):
    """Provide a session bound to a freshly created temp DB."""
    engine = get_engine(db_path)
    init_db(engine)
    session = get_session(engine)
    yield session
    session.close()
    engine.dispose()


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def test_config(db_path, tmp_path):
    return {
        "paths": {"database_file": db_path, "upload_dir": str(tmp_path / "uploads")},
        "auth": {"token_ttl_seconds": 3600, "teacher_registration_code": "letmeteach"},
        "cors": {"allowed_origin": "http://localhost:3000"},
        "llm": {"provider": "mock", "model_name": "gemini-2.5-flash"},
    }


# ---------------------------------------------------------------------------
# Data builder fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def make_user():
    """Factory fixture: ``create(session, name, role="Student", **kwargs)``."""

    def _create(session, name, role=ROLE_STUDENT, email=None, password="password123"):
        email = email or f"{name.lower().replace(' ', '.')}@example.com"
        return create_user(session, name, email, password=password, role=role)

    return _create


@pytest.fixture
def make_class():
    """Factory fixture: ``create(session, teacher, name="Algebra I", invite_code=None)``."""
    counter = {"n": 0}

    def _create(session, teacher, name="Algebra I", invite_code=None):
        counter["n"] += 1
        cls = Class(name=name, teacher_id=teacher.id, invite_code=invite_code or f"INV{counter['n']:05d}")
        session.add(cls)
        session.commit()
        return cls

    return _create


@pytest.fixture
def enroll():
    def _enroll(session, class_obj, *students):
        for student in students:
            session.add(Enrollment(class_id=class_obj.id, student_id=student.id))
        session.commit()

    return _enroll


@pytest.fixture
def make_quiz():
    """Factory fixture: insert a quiz with ``num_questions`` 4-option questions.

    Every question's correct answer is option 0. Published by default.
    """

    def _create(session, class_obj, title="Quiz", topic="Algebra", num_questions=10, status=QUIZ_PUBLISHED, **kw):
        quiz = Quiz(
            class_id=class_obj.id,
            title=title,
            topic=topic,
            difficulty=kw.get("difficulty", "Medium"),
            status=status,
            due_at=kw.get("due_at"),
            created_by=class_obj.teacher_id,
        )
        quiz.questions = [
            Question(sort_order=i, text=f"{title} Q{i + 1}", options=["A", "B", "C", "D"], correct_index=0)
            for i in range(num_questions)
        ]
        session.add(quiz)
        session.commit()
        return quiz

    return _create


@pytest.fixture
def make_result():
    """Factory fixture: ``create(session, quiz, student, score, total=None)``."""

    def _create(session, quiz, student, score, total=None, is_late=False):
        result = QuizResult(
            quiz_id=quiz.id,
            student_id=student.id,
            answers=[],
            score=score,
            total_questions=total if total is not None else len(quiz.questions),
            is_late=is_late,
        )
        session.add(result)
        session.commit()
        return result

    return _create


# ---------------------------------------------------------------------------
# Flask test client fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def flask_app(test_config, monkeypatch):
    """Provide a Flask test app with a temporary database.

    The engine is disposed on teardown before file cleanup.
    """
    monkeypatch.setenv("SECRET_KEY", "test-secret-key")
    monkeypatch.delenv("DATABASE_URL", raising=False)

    from lessonloop.web.app import create_app

    app = create_app(test_config)
    app.config["TESTING"] = True

    yield app

    app.config["DB_ENGINE"].dispose()


@pytest.fixture
def client(flask_app):
    with flask_app.test_client() as c:
        yield c


def _headers(app, user):
    token = app.config["IDENTITY_PROVIDER"].issue_token(user.uid, user.email)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def seeded(flask_app):
    """Seed a teacher, two enrolled students, an outsider student and a class.

    Returns a namespace of plain ids plus auth headers (no live ORM objects),
    so tests never hold a database transaction open across requests.
    """
    session = get_session(flask_app.config["DB_ENGINE"])
    try:
        teacher = create_user(session, "Ms Frizzle", "frizzle@example.com", "password123", ROLE_TEACHER)
        other_teacher = create_user(session, "Mr Ratburn", "ratburn@example.com", "password123", ROLE_TEACHER)
        alice = create_user(session, "Alice", "alice@example.com", "password123", ROLE_STUDENT)
        bob = create_user(session, "Bob", "bob@example.com", "password123", ROLE_STUDENT)
        outsider = create_user(session, "Olive", "olive@example.com", "password123", ROLE_STUDENT)

        cls = Class(name="Period 1 Science", teacher_id=teacher.id, invite_code="JOINME01")
        session.add(cls)
        session.commit()
        session.add_all(
            [
                Enrollment(class_id=cls.id, student_id=alice.id),
                Enrollment(class_id=cls.id, student_id=bob.id),
            ]
        )
        session.commit()

        return SimpleNamespace(
            class_id=cls.id,
            invite_code=cls.invite_code,
            teacher_id=teacher.id,
            alice_id=alice.id,
            bob_id=bob.id,
            outsider_id=outsider.id,
            teacher=_headers(flask_app, teacher),
            other_teacher=_headers(flask_app, other_teacher),
            alice=_headers(flask_app, alice),
            bob=_headers(flask_app, bob),
            outsider=_headers(flask_app, outsider),
        )
    finally:
        session.close()


@pytest.fixture
def sample_questions():
    """Two questions in the client payload shape; option 1 is always correct."""
    return [
        {"questionText": "2 + 2 = ?", "options": [{"text": "3"}, {"text": "4"}, {"text": "5"}], "correctAnswer": 1},
        {"questionText": "3 * 3 = ?", "options": [{"text": "6"}, {"text": "9"}, {"text": "12"}], "correctAnswer": 1},
    ]
