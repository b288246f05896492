"""
User administration and system statistics.
"""
from datetime import timedelta

from flask import current_app
from sqlalchemy import func

from quizhub.audit import AuditRecorder, RequestContext
from quizhub.audit.models import AuditLog
from quizhub.auth.models import ROLE_ADMIN, ROLE_PROFESSOR, ROLE_STUDENT, VALID_ROLES, User
from quizhub.classes.models import Class, Enrollment
from quizhub.common.timeutils import Clock, utcnow
from quizhub.errors import Forbidden, ValidationError
from quizhub.persistence import UnitOfWork
from quizhub.quiz.models import Quiz, Submission


class AdminService:
    def __init__(self, uow: UnitOfWork, audit: AuditRecorder | None = None, clock: Clock = utcnow):
        self.uow = uow
        self.audit = audit
        self.clock = clock

    def change_role(self, actor_id: int, target: User, role,
                    context: RequestContext | None = None) -> User:
        if role not in VALID_ROLES:
            raise ValidationError(f"role must be one of: {', '.join(VALID_ROLES)}")
        if target.id == actor_id:
            raise Forbidden("You cannot change your own role")

        before = target.role
        if before == role:
            return target
        with self.uow.transaction():
            target.role = role

        current_app.logger.info(f"User {target.id} role changed from {before} to {role} by {actor_id}")
        self._audit(actor_id, 'ROLE_CHANGE', target.id, {'role': before}, {'role': role}, context)
        return target

    def set_active(self, actor_id: int, target: User, active: bool,
                   context: RequestContext | None = None) -> User:
        if not isinstance(active, bool):
            raise ValidationError("is_active must be a boolean")
        if target.id == actor_id and not active:
            raise Forbidden("You cannot deactivate your own account")
        if target.is_active == active:
            return target
        with self.uow.transaction():
            target.is_active = active
        action = 'USER_ACTIVATE' if active else 'USER_DEACTIVATE'
        self._audit(actor_id, action, target.id, {'is_active': not active}, {'is_active': active}, context)
        return target

    def dependency_counts(self, user: User) -> dict:
        session = self.uow.session
        return {
            'classes': session.query(func.count(Class.id)).filter(Class.professor_id == user.id).scalar(),
            'enrollments': session.query(func.count(Enrollment.id)).filter(Enrollment.student_id == user.id).scalar(),
            'submissions': session.query(func.count(Submission.id)).filter(Submission.student_id == user.id).scalar(),
            'quizzes': session.query(func.count(Quiz.id)).filter(Quiz.professor_id == user.id).scalar(),
        }

    def delete_user(self, actor_id: int, target: User,
                    context: RequestContext | None = None) -> str:
        """
        Hard-delete a user without dependent rows; otherwise deactivate.
        Returns 'deleted' or 'deactivated'.
        """
        if target.id == actor_id:
            raise Forbidden("You cannot delete your own account")

        dependencies = self.dependency_counts(target)
        snapshot = {'username': target.username, 'email': target.email, 'role': target.role}
        if any(dependencies.values()):
            with self.uow.transaction():
                target.is_active = False
            self._audit(actor_id, 'USER_DEACTIVATE', target.id, snapshot,
                        {'is_active': False, 'dependencies': dependencies}, context)
            return 'deactivated'

        target_id = target.id
        with self.uow.transaction() as session:
            session.delete(target)
        current_app.logger.info(f"User {target_id} deleted by {actor_id}")
        self._audit(actor_id, 'USER_DELETE', target_id, snapshot, None, context)
        return 'deleted'

    def system_stats(self) -> dict:
        session = self.uow.session
        now = self.clock()

        def count(model, *criteria):
            return session.query(func.count(model.id)).filter(*criteria).scalar()

        return {
            'total_users': count(User, User.is_active == True),  # noqa: E712
            'admin_count': count(User, User.role == ROLE_ADMIN, User.is_active == True),  # noqa: E712
            'professor_count': count(User, User.role == ROLE_PROFESSOR, User.is_active == True),  # noqa: E712
            'student_count': count(User, User.role == ROLE_STUDENT, User.is_active == True),  # noqa: E712
            'active_last_24h': count(User, User.last_login >= now - timedelta(days=1)),
            'active_last_week': count(User, User.last_login >= now - timedelta(days=7)),
            'new_users_last_month': count(User, User.created_at >= now - timedelta(days=30)),
            'total_classes': count(Class, Class.is_active == True),  # noqa: E712
            'total_quizzes': count(Quiz, Quiz.is_active == True),  # noqa: E712
            'total_submissions': count(Submission, Submission.is_completed == True),  # noqa: E712
            'submissions_last_week': count(
                Submission,
                Submission.is_completed == True,  # noqa: E712
                Submission.submitted_at >= now - timedelta(days=7),
            ),
        }

    def audit_logs(self, action: str | None = None, user_id: int | None = None,
                   limit: int | None = None) -> list[AuditLog]:
        """Newest audit records first, capped at AUDIT_LOG_LIMIT."""
        cap = int(current_app.config.get('AUDIT_LOG_LIMIT', 200))
        limit = cap if limit is None else max(1, min(limit, cap))

        query = self.uow.session.query(AuditLog)
        if action:
            query = query.filter(AuditLog.action == action.upper())
        if user_id is not None:
            query = query.filter(AuditLog.user_id == user_id)
        return query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()

    def _audit(self, actor_id, action, entity_id, before, after, context) -> None:
        if self.audit is not None:
            self.audit.record(actor_id, action, User.__tablename__, entity_id, before, after, context)
