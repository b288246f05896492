"""
Access scoping.

Every operation asks ``resolve_permissions(user)`` for a PermissionSet and
checks capabilities and ownership through it, instead of comparing role
strings in each handler. Admins bypass ownership scoping.

Out-of-scope access to an existing resource raises Forbidden; a missing
resource is NotFound.
"""
import enum
from dataclasses import dataclass

from sqlalchemy.orm import Session

from quizhub.auth.models import ROLE_ADMIN, ROLE_PROFESSOR, ROLE_STUDENT
from quizhub.errors import Forbidden


class Capability(enum.Enum):
    MANAGE_USERS = "manage_users"
    VIEW_AUDIT_LOGS = "view_audit_logs"
    VIEW_SYSTEM_STATS = "view_system_stats"
    MANAGE_CLASSES = "manage_classes"
    AUTHOR_QUIZZES = "author_quizzes"
    VIEW_RESULTS = "view_results"
    JOIN_CLASSES = "join_classes"
    TAKE_QUIZZES = "take_quizzes"


ROLE_CAPABILITIES = {
    ROLE_ADMIN: frozenset(Capability),
    ROLE_PROFESSOR: frozenset({
        Capability.MANAGE_CLASSES,
        Capability.AUTHOR_QUIZZES,
        Capability.VIEW_RESULTS,
    }),
    ROLE_STUDENT: frozenset({
        Capability.JOIN_CLASSES,
        Capability.TAKE_QUIZZES,
    }),
}


@dataclass(frozen=True)
class PermissionSet:
    user_id: int
    role: str
    capabilities: frozenset

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def has(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def require(self, capability: Capability) -> None:
        if not self.has(capability):
            raise Forbidden()

    def owns_class(self, klass) -> bool:
        return self.is_admin or klass.professor_id == self.user_id

    def ensure_class_owner(self, klass) -> None:
        if not self.owns_class(klass):
            raise Forbidden()

    def ensure_quiz_owner(self, quiz) -> None:
        # The class owner may manage every quiz of the class
        if not (self.is_admin or quiz.professor_id == self.user_id
                or quiz.klass.professor_id == self.user_id):
            raise Forbidden()

    def ensure_submission_access(self, submission, session: Session | None = None) -> None:
        """
        Owner student, the professor owning the quiz, or an admin. With a
        session, the owner student must still be enrolled in the class.
        """
        if self.is_admin:
            return
        if submission.student_id == self.user_id:
            self._ensure_still_enrolled(submission, session)
            return
        if self.role == ROLE_PROFESSOR:
            self.ensure_quiz_owner(submission.quiz)
            return
        raise Forbidden()

    def ensure_submission_owner(self, submission, session: Session | None = None) -> None:
        """Writes to a submission: the student who owns it, or an admin."""
        if self.is_admin:
            return
        if submission.student_id != self.user_id:
            raise Forbidden()
        self._ensure_still_enrolled(submission, session)

    def _ensure_still_enrolled(self, submission, session: Session | None) -> None:
        if session is None or self.role != ROLE_STUDENT:
            return
        if not is_actively_enrolled(session, submission.student_id, submission.quiz.class_id):
            raise Forbidden()


def resolve_permissions(user) -> PermissionSet:
    """Map an authenticated, active user onto its PermissionSet."""
    if user is None or not getattr(user, 'is_active', False):
        raise Forbidden()
    return PermissionSet(
        user_id=user.id,
        role=user.role,
        capabilities=ROLE_CAPABILITIES.get(user.role, frozenset()),
    )


def is_actively_enrolled(session: Session, student_id: int, class_id: int) -> bool:
    from quizhub.classes.models import Enrollment

    return session.query(Enrollment.id).filter_by(
        class_id=class_id,
        student_id=student_id,
        is_active=True,
    ).first() is not None
