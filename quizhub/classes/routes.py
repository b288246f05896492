from flask import jsonify, request
from flask_login import login_required

from quizhub import db
from quizhub.access import Capability, is_actively_enrolled
from quizhub.audit import AuditRecorder, RequestContext
from quizhub.classes import classes_bp
from quizhub.classes.models import Class, Enrollment
from quizhub.classes.service import ClassService
from quizhub.common.decorators import capability_required, current_permissions, json_body
from quizhub.errors import Forbidden, NotFound
from quizhub.persistence import UnitOfWork
from quizhub.quiz.models import Quiz
from quizhub.quiz.services import results_service, scoring_policy


def _service() -> ClassService:
    return ClassService(UnitOfWork(db.session), audit=AuditRecorder(db.session))


def _context() -> RequestContext:
    return RequestContext.from_request(request)


def _get_class(class_id: int) -> Class:
    klass = db.session.get(Class, class_id)
    if klass is None:
        raise NotFound("Class not found")
    return klass


def _owned_class(class_id: int) -> Class:
    klass = _get_class(class_id)
    current_permissions().ensure_class_owner(klass)
    return klass


@classes_bp.route('', methods=['GET'])
@login_required
def list_classes():
    """Classes owned by a professor, or joined by a student. Admins see all."""
    perms = current_permissions()
    if perms.is_admin:
        classes = Class.query.order_by(Class.created_at.desc()).all()
        return jsonify({'success': True, 'classes': [c.to_dict() for c in classes]}), 200

    if perms.has(Capability.MANAGE_CLASSES):
        classes = Class.query.filter_by(professor_id=perms.user_id).order_by(Class.created_at.desc()).all()
        return jsonify({'success': True, 'classes': [c.to_dict() for c in classes]}), 200

    classes = Class.query.join(Enrollment, Enrollment.class_id == Class.id).filter(
        Enrollment.student_id == perms.user_id,
        Enrollment.is_active == True,  # noqa: E712
    ).order_by(Class.name).all()
    return jsonify({
        'success': True,
        'classes': [c.to_dict(include_code=False) for c in classes],
    }), 200


@classes_bp.route('', methods=['POST'])
@login_required
@capability_required(Capability.MANAGE_CLASSES)
def create_class():
    perms = current_permissions()
    klass = _service().create_class(perms.user_id, json_body(), _context())
    return jsonify({'success': True, 'class': klass.to_dict()}), 201


@classes_bp.route('/<int:class_id>', methods=['GET'])
@login_required
def get_class(class_id):
    klass = _get_class(class_id)
    perms = current_permissions()
    if perms.owns_class(klass):
        return jsonify({'success': True, 'class': klass.to_dict()}), 200
    if is_actively_enrolled(db.session, perms.user_id, klass.id):
        return jsonify({'success': True, 'class': klass.to_dict(include_code=False)}), 200
    raise Forbidden()


@classes_bp.route('/<int:class_id>', methods=['PUT', 'PATCH'])
@login_required
@capability_required(Capability.MANAGE_CLASSES)
def update_class(class_id):
    klass = _owned_class(class_id)
    klass = _service().update_class(klass, json_body(), current_permissions().user_id, _context())
    return jsonify({'success': True, 'class': klass.to_dict()}), 200


@classes_bp.route('/join', methods=['POST'])
@login_required
@capability_required(Capability.JOIN_CLASSES)
def join_class():
    """Join a class with its enrollment code."""
    data = json_body()
    enrollment = _service().join_by_code(current_permissions().user_id, data.get('enrollment_code'), _context())
    return jsonify({
        'success': True,
        'message': f"Enrolled in {enrollment.klass.name}",
        'enrollment': enrollment.to_dict(),
    }), 201


@classes_bp.route('/<int:class_id>/students', methods=['GET'])
@login_required
@capability_required(Capability.MANAGE_CLASSES)
def list_students(class_id):
    klass = _owned_class(class_id)
    enrollments = klass.enrollments.order_by(Enrollment.enrolled_at).all()
    return jsonify({'success': True, 'students': [e.to_dict() for e in enrollments]}), 200


@classes_bp.route('/<int:class_id>/students', methods=['POST'])
@login_required
@capability_required(Capability.MANAGE_CLASSES)
def add_student(class_id):
    klass = _owned_class(class_id)
    data = json_body()
    enrollment = _service().add_student(klass, data.get('student_id'), current_permissions().user_id, _context())
    return jsonify({'success': True, 'enrollment': enrollment.to_dict()}), 201


@classes_bp.route('/<int:class_id>/students/<int:student_id>', methods=['DELETE'])
@login_required
@capability_required(Capability.MANAGE_CLASSES)
def remove_student(class_id, student_id):
    """Deactivate an enrollment."""
    klass = _owned_class(class_id)
    enrollment = _service().set_enrollment_active(klass, student_id, False, current_permissions().user_id, _context())
    return jsonify({'success': True, 'enrollment': enrollment.to_dict()}), 200


@classes_bp.route('/<int:class_id>/students/<int:student_id>/reactivate', methods=['POST'])
@login_required
@capability_required(Capability.MANAGE_CLASSES)
def reactivate_student(class_id, student_id):
    klass = _owned_class(class_id)
    enrollment = _service().set_enrollment_active(klass, student_id, True, current_permissions().user_id, _context())
    return jsonify({'success': True, 'enrollment': enrollment.to_dict()}), 200


@classes_bp.route('/<int:class_id>/results', methods=['GET'])
@login_required
@capability_required(Capability.VIEW_RESULTS)
def class_results(class_id):
    """Aggregated results over every quiz of the class."""
    klass = _owned_class(class_id)
    return jsonify({'success': True, 'results': results_service().class_summary(klass)}), 200


@classes_bp.route('/<int:class_id>/quizzes', methods=['GET'])
@login_required
def class_quizzes(class_id):
    """Quizzes of a class; enrolled students only see active ones."""
    klass = _get_class(class_id)
    perms = current_permissions()
    query = klass.quizzes
    if not perms.owns_class(klass):
        if not is_actively_enrolled(db.session, perms.user_id, klass.id):
            raise Forbidden()
        query = query.filter_by(is_active=True)
    quizzes = query.order_by(Quiz.created_at, Quiz.id).all()
    return jsonify({'success': True, 'quizzes': [q.to_dict(scoring_policy()) for q in quizzes]}), 200
