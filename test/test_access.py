"""
Test cases for capability resolution and ownership scoping.
"""
from types import SimpleNamespace

import pytest

from conftest import make_quiz, submission_service
from quizhub import db
from quizhub.access import Capability, resolve_permissions
from quizhub.classes.models import Enrollment
from quizhub.errors import Forbidden


def _user(uid, role, is_active=True):
    return SimpleNamespace(id=uid, role=role, is_active=is_active)


PROF = _user(1, 'professor')
OTHER_PROF = _user(2, 'professor')
STUDENT = _user(3, 'student')
ADMIN = _user(9, 'admin')

KLASS = SimpleNamespace(id=10, professor_id=PROF.id)
QUIZ = SimpleNamespace(id=20, professor_id=PROF.id, klass=KLASS)
SUBMISSION = SimpleNamespace(id=30, student_id=STUDENT.id, quiz=QUIZ)


class TestCapabilities:
    def test_admin_has_every_capability(self):
        perms = resolve_permissions(ADMIN)
        assert all(perms.has(c) for c in Capability)

    def test_professor_capabilities(self):
        perms = resolve_permissions(PROF)
        assert perms.has(Capability.AUTHOR_QUIZZES)
        assert perms.has(Capability.VIEW_RESULTS)
        assert not perms.has(Capability.TAKE_QUIZZES)
        assert not perms.has(Capability.MANAGE_USERS)

    def test_student_capabilities(self):
        perms = resolve_permissions(STUDENT)
        assert perms.has(Capability.TAKE_QUIZZES)
        assert not perms.has(Capability.AUTHOR_QUIZZES)
        with pytest.raises(Forbidden):
            perms.require(Capability.VIEW_AUDIT_LOGS)

    def test_inactive_user_rejected(self):
        with pytest.raises(Forbidden):
            resolve_permissions(_user(4, 'student', is_active=False))

    def test_unknown_role_has_nothing(self):
        assert resolve_permissions(_user(5, 'guest')).capabilities == frozenset()


class TestOwnership:
    def test_owner_and_admin_manage_quiz(self):
        resolve_permissions(PROF).ensure_quiz_owner(QUIZ)
        resolve_permissions(ADMIN).ensure_quiz_owner(QUIZ)
        with pytest.raises(Forbidden):
            resolve_permissions(OTHER_PROF).ensure_quiz_owner(QUIZ)

    def test_class_owner_manages_colleague_quiz(self):
        quiz = SimpleNamespace(id=21, professor_id=OTHER_PROF.id, klass=KLASS)
        resolve_permissions(PROF).ensure_quiz_owner(quiz)

    def test_submission_access(self):
        resolve_permissions(STUDENT).ensure_submission_access(SUBMISSION)
        resolve_permissions(PROF).ensure_submission_access(SUBMISSION)
        resolve_permissions(ADMIN).ensure_submission_access(SUBMISSION)
        with pytest.raises(Forbidden):
            resolve_permissions(OTHER_PROF).ensure_submission_access(SUBMISSION)
        with pytest.raises(Forbidden):
            resolve_permissions(_user(6, 'student')).ensure_submission_access(SUBMISSION)

    def test_only_owner_writes_submission(self):
        resolve_permissions(STUDENT).ensure_submission_owner(SUBMISSION)
        with pytest.raises(Forbidden):
            resolve_permissions(PROF).ensure_submission_owner(SUBMISSION)


class TestEnrollmentScoping:
    """Test cases for submission access tied to an active enrollment."""

    def test_unenrolled_student_loses_submission_access(self, people, clock):
        quiz = make_quiz(people['klass'], people['prof'], clock=clock)
        submission = submission_service(clock).start(people['alice'].id, quiz.id).submission
        perms = resolve_permissions(people['alice'])
        perms.ensure_submission_owner(submission, db.session)

        Enrollment.query.filter_by(student_id=people['alice'].id).one().is_active = False
        db.session.commit()

        with pytest.raises(Forbidden):
            perms.ensure_submission_owner(submission, db.session)
        with pytest.raises(Forbidden):
            perms.ensure_submission_access(submission, db.session)
        resolve_permissions(people['prof']).ensure_submission_access(submission, db.session)
        resolve_permissions(people['admin']).ensure_submission_owner(submission, db.session)
