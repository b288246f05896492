"""
Pytest configuration and fixtures for testing.

Every test gets a fresh application backed by an in-memory SQLite
database. Service-level tests run inside ``app_ctx``; API tests go through
``client`` and seed data with the factory helpers inside their own app
context, so each request resolves its bearer token independently.
"""
import os
from datetime import datetime, timedelta

import pytest

os.environ.setdefault('FLASK_ENV', 'testing')
os.environ.setdefault('SECRET_KEY', 'test-secret-key-for-the-quiz-hub-suite')

from quizhub import create_app, db  # noqa: E402
from quizhub.audit import AuditRecorder  # noqa: E402
from quizhub.auth.models import ROLE_ADMIN, ROLE_PROFESSOR, ROLE_STUDENT, User  # noqa: E402
from quizhub.auth.tokens import create_token  # noqa: E402
from quizhub.auth.utils import hash_password  # noqa: E402
from quizhub.classes.models import Class, Enrollment  # noqa: E402
from quizhub.persistence import UnitOfWork  # noqa: E402
from quizhub.quiz.authoring import AuthoringLimits, QuizAuthoringService  # noqa: E402
from quizhub.quiz.scoring import ScoringPolicy  # noqa: E402
from quizhub.quiz.submissions import SubmissionService  # noqa: E402

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite://',
    'SECRET_KEY': 'test-secret-key-for-the-quiz-hub-suite',
    'JWT_SECRET': 'test-jwt-secret-for-the-quiz-hub-suite-0123456789',
    'BCRYPT_ROUNDS': 4,
    'MIN_PASSWORD_LENGTH': 6,
}

PASSWORD = 'password123'


class FakeClock:
    """Deterministic clock for services; advance it to simulate time passing."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 2, 9, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def app_ctx(app):
    """Application context for service-level tests."""
    with app.app_context():
        yield app
        db.session.remove()


@pytest.fixture
def clock():
    return FakeClock()


# -- factories ------------------------------------------------------------

def make_user(username: str, role: str = ROLE_STUDENT, is_active: bool = True) -> User:
    user = User(
        username=username,
        email=f"{username}@example.com",
        password_hash=hash_password(PASSWORD),
        first_name=username.capitalize(),
        last_name='Tester',
        role=role,
        is_active=is_active,
    )
    db.session.add(user)
    db.session.commit()
    return user


def make_class(professor: User, students=(), name: str = 'Algorithms', code: str | None = None) -> Class:
    klass = Class(
        name=name,
        professor_id=professor.id,
        enrollment_code=code or f"C{professor.id:03d}{name[:4].upper()}"[:8],
    )
    db.session.add(klass)
    db.session.flush()
    for student in students:
        db.session.add(Enrollment(class_id=klass.id, student_id=student.id))
    db.session.commit()
    return klass


STANDARD_QUESTIONS = [
    {
        'question_type': 'multiple_choice',
        'question_text': 'Which structure is LIFO?',
        'options': [
            {'option_text': 'Queue', 'is_correct': False},
            {'option_text': 'Stack', 'is_correct': True},
            {'option_text': 'Heap', 'is_correct': False},
        ],
    },
    {
        'question_type': 'true_false',
        'question_text': 'Binary search needs sorted input.',
        'correct_answer': True,
    },
    {
        'question_type': 'text',
        'question_text': 'Name the sort that repeatedly swaps adjacent items.',
        'accepted_answers': ['Bubble sort', 'bubblesort'],
        'points': 2,
    },
]


def authoring(clock=None) -> QuizAuthoringService:
    kwargs = {'audit': AuditRecorder(db.session)}
    if clock is not None:
        kwargs['clock'] = clock
    return QuizAuthoringService(UnitOfWork(db.session), AuthoringLimits(), **kwargs)


def make_quiz(klass: Class, professor: User, questions=None, activate: bool = True, clock=None, **settings):
    service = authoring(clock)
    data = {'title': 'Week 1 quiz', 'time_limit_minutes': 30}
    data.update(settings)
    quiz = service.create_quiz(klass, professor.id, data)
    for question in (STANDARD_QUESTIONS if questions is None else questions):
        service.add_question(quiz, question, professor.id)
    if activate:
        service.activate(quiz, professor.id)
    return quiz


def submission_service(clock, weighted: bool = False, text_match: str = 'case_insensitive_trim') -> SubmissionService:
    return SubmissionService(
        UnitOfWork(db.session),
        ScoringPolicy(weighted=weighted, text_match=text_match),
        audit=AuditRecorder(db.session),
        clock=clock,
    )


def auth_headers(user: User) -> dict:
    return {'Authorization': f"Bearer {create_token(user)}"}


# -- common scenario ------------------------------------------------------

@pytest.fixture
def people(app_ctx):
    """Admin, two professors and three students; only two students are enrolled."""
    admin = make_user('admin', ROLE_ADMIN)
    prof = make_user('prof', ROLE_PROFESSOR)
    other_prof = make_user('otherprof', ROLE_PROFESSOR)
    alice = make_user('alice')
    bob = make_user('bob')
    carol = make_user('carol')
    klass = make_class(prof, students=[alice, bob], code='ALGO0001')
    return {
        'admin': admin,
        'prof': prof,
        'other_prof': other_prof,
        'alice': alice,
        'bob': bob,
        'carol': carol,
        'klass': klass,
    }


@pytest.fixture
def seeded(app):
    """
    Same scenario for API tests: ids and bearer headers, plus one active
    quiz with the standard questions.
    """
    with app.app_context():
        admin = make_user('admin', ROLE_ADMIN)
        prof = make_user('prof', ROLE_PROFESSOR)
        other_prof = make_user('otherprof', ROLE_PROFESSOR)
        alice = make_user('alice')
        bob = make_user('bob')
        carol = make_user('carol')
        klass = make_class(prof, students=[alice, bob], code='ALGO0001')
        quiz = make_quiz(klass, prof)
        data = {
            'class_id': klass.id,
            'quiz_id': quiz.id,
            'question_ids': [q.id for q in quiz.questions],
            'ids': {u.username: u.id for u in (admin, prof, other_prof, alice, bob, carol)},
            'headers': {u.username: auth_headers(u) for u in (admin, prof, other_prof, alice, bob, carol)},
        }
        db.session.remove()
    return data
