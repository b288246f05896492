"""
Class and enrollment management.
"""
import secrets
import string

from flask import current_app
from sqlalchemy.exc import IntegrityError

from quizhub.audit import AuditRecorder, RequestContext
from quizhub.auth.models import ROLE_STUDENT, User
from quizhub.classes.models import Class, Enrollment
from quizhub.errors import Conflict, NotFound, TransactionFailed, ValidationError
from quizhub.persistence import UnitOfWork

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_ATTEMPTS = 5


def generate_enrollment_code(length: int = 8) -> str:
    return ''.join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def _clean_name(value) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("name is required")
    name = value.strip()
    if len(name) > 255:
        raise ValidationError("name must be at most 255 characters")
    return name


def _clean_description(value) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("description must be a string")
    return value.strip() or None


class ClassService:
    def __init__(self, uow: UnitOfWork, audit: AuditRecorder | None = None):
        self.uow = uow
        self.audit = audit

    def create_class(self, professor_id: int, data: dict,
                     context: RequestContext | None = None) -> Class:
        """Create a class with a fresh enrollment code."""
        name = _clean_name(data.get('name'))
        description = _clean_description(data.get('description'))
        length = int(current_app.config.get('ENROLLMENT_CODE_LENGTH', 8))

        for _ in range(CODE_ATTEMPTS):
            klass = Class(
                name=name,
                description=description,
                professor_id=professor_id,
                enrollment_code=generate_enrollment_code(length),
            )
            try:
                with self.uow.transaction() as session:
                    session.add(klass)
                    session.flush()
            except IntegrityError:
                current_app.logger.warning("Enrollment code collision, generating a new one")
                continue
            break
        else:
            raise TransactionFailed("Could not generate a unique enrollment code")

        current_app.logger.info(f"Class {klass.id} created by professor {professor_id}")
        self._audit(professor_id, 'CLASS_CREATE', Class.__tablename__, klass.id, None,
                    {'name': klass.name, 'enrollment_code': klass.enrollment_code}, context)
        return klass

    def update_class(self, klass: Class, data: dict, actor_id: int,
                     context: RequestContext | None = None) -> Class:
        changes = {}
        if 'name' in data:
            changes['name'] = _clean_name(data.get('name'))
        if 'description' in data:
            changes['description'] = _clean_description(data.get('description'))
        if 'is_active' in data:
            if not isinstance(data['is_active'], bool):
                raise ValidationError("is_active must be a boolean")
            changes['is_active'] = data['is_active']

        before = {k: getattr(klass, k) for k in changes}
        with self.uow.transaction():
            for key, value in changes.items():
                setattr(klass, key, value)
        if changes:
            self._audit(actor_id, 'CLASS_UPDATE', Class.__tablename__, klass.id, before, changes, context)
        return klass

    def join_by_code(self, student_id: int, code, context: RequestContext | None = None) -> Enrollment:
        """Enroll a student using a class enrollment code."""
        if not isinstance(code, str) or not code.strip():
            raise ValidationError("enrollment_code is required")
        klass = Class.query.filter_by(enrollment_code=code.strip().upper()).first()
        if klass is None or not klass.is_active:
            raise NotFound("No active class with that enrollment code")
        return self._enroll(klass, student_id, student_id, context)

    def add_student(self, klass: Class, student_id, actor_id: int,
                    context: RequestContext | None = None) -> Enrollment:
        """Enroll a student by id on behalf of the class owner."""
        if not isinstance(student_id, int) or isinstance(student_id, bool):
            raise ValidationError("student_id is required")
        student = self.uow.get(User, student_id)
        if student is None:
            raise NotFound("Student not found")
        if student.role != ROLE_STUDENT or not student.is_active:
            raise ValidationError("Only active students can be enrolled")
        return self._enroll(klass, student_id, actor_id, context)

    def set_enrollment_active(self, klass: Class, student_id: int, active: bool, actor_id: int,
                              context: RequestContext | None = None) -> Enrollment:
        """Deactivate or reactivate an enrollment. Rows are never deleted."""
        enrollment = Enrollment.query.filter_by(class_id=klass.id, student_id=student_id).first()
        if enrollment is None:
            raise NotFound("Enrollment not found")
        if enrollment.is_active == active:
            return enrollment
        with self.uow.transaction():
            enrollment.is_active = active
        action = 'ENROLLMENT_ACTIVATE' if active else 'ENROLLMENT_DEACTIVATE'
        self._audit(actor_id, action, Enrollment.__tablename__, enrollment.id,
                    {'is_active': not active}, {'is_active': active}, context)
        return enrollment

    def _enroll(self, klass: Class, student_id: int, actor_id: int, context) -> Enrollment:
        existing = Enrollment.query.filter_by(class_id=klass.id, student_id=student_id).first()
        if existing is not None:
            if existing.is_active:
                raise Conflict("Student is already enrolled in this class")
            with self.uow.transaction():
                existing.is_active = True
            self._audit(actor_id, 'ENROLLMENT_ACTIVATE', Enrollment.__tablename__, existing.id,
                        {'is_active': False}, {'is_active': True}, context)
            return existing

        enrollment = Enrollment(class_id=klass.id, student_id=student_id)
        try:
            with self.uow.transaction() as session:
                session.add(enrollment)
                session.flush()
        except IntegrityError:
            raise Conflict("Student is already enrolled in this class")

        current_app.logger.info(f"Student {student_id} enrolled in class {klass.id}")
        self._audit(actor_id, 'ENROLLMENT_CREATE', Enrollment.__tablename__, enrollment.id, None,
                    {'class_id': klass.id, 'student_id': student_id}, context)
        return enrollment

    def _audit(self, actor_id, action, table, entity_id, before, after, context) -> None:
        if self.audit is not None:
            self.audit.record(actor_id, action, table, entity_id, before, after, context)
