"""
Professor routes for quiz management.

Professors can:
- Create draft quizzes in classes they own
- Add, edit and remove questions
- Activate and deactivate quizzes
- View submissions and aggregated results
"""
from flask import jsonify, request
from flask_login import login_required

from quizhub import db
from quizhub.access import Capability, is_actively_enrolled
from quizhub.classes.models import Class
from quizhub.common.decorators import capability_required, current_permissions, json_body
from quizhub.common.timeutils import utcnow
from quizhub.errors import Forbidden, ValidationError
from quizhub.quiz import quiz_bp
from quizhub.quiz.models import Question, Quiz
from quizhub.quiz.services import (
    authoring_service,
    get_or_404,
    request_context,
    results_service,
    scoring_policy,
    submission_service,
)


def _owned_quiz(quiz_id: int) -> Quiz:
    quiz = get_or_404(Quiz, quiz_id, "Quiz not found")
    current_permissions().ensure_quiz_owner(quiz)
    return quiz


def _owned_question(quiz_id: int, question_id: int) -> Question:
    quiz = _owned_quiz(quiz_id)
    question = get_or_404(Question, question_id, "Question not found")
    if question.quiz_id != quiz.id:
        raise ValidationError("Question does not belong to this quiz")
    return question


def _quiz_detail(quiz: Quiz, reveal_answers: bool) -> dict:
    data = quiz.to_dict(scoring_policy())
    data['questions'] = [q.to_dict(reveal_answers=reveal_answers) for q in quiz.questions]
    return data


@quiz_bp.route('', methods=['GET'])
@login_required
def list_quizzes():
    """
    List quizzes visible to the caller.

    Professors see the quizzes of their classes, students the active
    quizzes of classes they are enrolled in. ``class_id`` narrows the list.
    """
    perms = current_permissions()
    query = Quiz.query.join(Class, Quiz.class_id == Class.id)

    class_id = request.args.get('class_id', type=int)
    if class_id is not None:
        query = query.filter(Quiz.class_id == class_id)

    if perms.has(Capability.AUTHOR_QUIZZES):
        if not perms.is_admin:
            query = query.filter(Class.professor_id == perms.user_id)
    elif perms.has(Capability.TAKE_QUIZZES):
        from quizhub.classes.models import Enrollment
        query = query.join(Enrollment, Enrollment.class_id == Class.id).filter(
            Enrollment.student_id == perms.user_id,
            Enrollment.is_active == True,  # noqa: E712
            Class.is_active == True,  # noqa: E712
            Quiz.is_active == True,  # noqa: E712
        )
    else:
        raise Forbidden()

    quizzes = query.order_by(Quiz.created_at.desc(), Quiz.id.desc()).all()
    return jsonify({
        'success': True,
        'quizzes': [q.to_dict(scoring_policy()) for q in quizzes],
    }), 200


@quiz_bp.route('', methods=['POST'])
@login_required
@capability_required(Capability.AUTHOR_QUIZZES)
def create_quiz():
    """Create a draft quiz. Body: class_id, title, and optional settings."""
    data = json_body()
    class_id = data.get('class_id')
    if not isinstance(class_id, int) or isinstance(class_id, bool):
        raise ValidationError("class_id is required")

    klass = get_or_404(Class, class_id, "Class not found")
    perms = current_permissions()
    perms.ensure_class_owner(klass)

    quiz = authoring_service().create_quiz(klass, perms.user_id, data, request_context())
    return jsonify({
        'success': True,
        'message': 'Quiz created as a draft',
        'quiz': _quiz_detail(quiz, reveal_answers=True),
    }), 201


@quiz_bp.route('/<int:quiz_id>', methods=['GET'])
@login_required
def get_quiz(quiz_id):
    """
    Quiz with its questions. Owners see correct answers; enrolled students
    see an active quiz, with answers only after the deadline.
    """
    quiz = get_or_404(Quiz, quiz_id, "Quiz not found")
    perms = current_permissions()

    if perms.has(Capability.AUTHOR_QUIZZES):
        perms.ensure_quiz_owner(quiz)
        return jsonify({'success': True, 'quiz': _quiz_detail(quiz, reveal_answers=True)}), 200

    if not (quiz.is_active and is_actively_enrolled(db.session, perms.user_id, quiz.class_id)):
        raise Forbidden()
    reveal = quiz.deadline_passed(utcnow())
    if reveal:
        # An attempt still running past the deadline keeps the answers hidden
        service = submission_service()
        open_attempt = service.in_progress_for(perms.user_id, quiz.id)
        if open_attempt is not None and not service.auto_expire(open_attempt.id):
            reveal = False
    return jsonify({'success': True, 'quiz': _quiz_detail(quiz, reveal_answers=reveal)}), 200


@quiz_bp.route('/<int:quiz_id>', methods=['PUT', 'PATCH'])
@login_required
@capability_required(Capability.AUTHOR_QUIZZES)
def update_quiz(quiz_id):
    quiz = _owned_quiz(quiz_id)
    quiz = authoring_service().update_quiz(
        quiz, json_body(), current_permissions().user_id, request_context(),
    )
    return jsonify({'success': True, 'quiz': _quiz_detail(quiz, reveal_answers=True)}), 200


@quiz_bp.route('/<int:quiz_id>', methods=['DELETE'])
@login_required
@capability_required(Capability.AUTHOR_QUIZZES)
def delete_quiz(quiz_id):
    """Delete a quiz; one with submissions is deactivated instead."""
    quiz = _owned_quiz(quiz_id)
    outcome = authoring_service().delete_quiz(quiz, current_permissions().user_id, request_context())
    message = 'Quiz deleted' if outcome == 'deleted' else 'Quiz has submissions and was deactivated'
    return jsonify({'success': True, 'result': outcome, 'message': message}), 200


@quiz_bp.route('/<int:quiz_id>/activate', methods=['POST'])
@login_required
@capability_required(Capability.AUTHOR_QUIZZES)
def activate_quiz(quiz_id):
    quiz = _owned_quiz(quiz_id)
    quiz = authoring_service().activate(quiz, current_permissions().user_id, request_context())
    return jsonify({'success': True, 'quiz': quiz.to_dict(scoring_policy())}), 200


@quiz_bp.route('/<int:quiz_id>/deactivate', methods=['POST'])
@login_required
@capability_required(Capability.AUTHOR_QUIZZES)
def deactivate_quiz(quiz_id):
    quiz = _owned_quiz(quiz_id)
    quiz = authoring_service().deactivate(quiz, current_permissions().user_id, request_context())
    return jsonify({'success': True, 'quiz': quiz.to_dict(scoring_policy())}), 200


@quiz_bp.route('/<int:quiz_id>/questions', methods=['POST'])
@login_required
@capability_required(Capability.AUTHOR_QUIZZES)
def add_question(quiz_id):
    """
    Add a question.

    Body: question_type, question_text, optional points and order_index,
    and one of options (list of {option_text, is_correct, order_index}),
    correct_answer (true_false) or accepted_answers (text).
    """
    quiz = _owned_quiz(quiz_id)
    question = authoring_service().add_question(
        quiz, json_body(), current_permissions().user_id, request_context(),
    )
    return jsonify({'success': True, 'question': question.to_dict(reveal_answers=True)}), 201


@quiz_bp.route('/<int:quiz_id>/questions/<int:question_id>', methods=['PUT', 'PATCH'])
@login_required
@capability_required(Capability.AUTHOR_QUIZZES)
def update_question(quiz_id, question_id):
    question = _owned_question(quiz_id, question_id)
    question = authoring_service().update_question(
        question, json_body(), current_permissions().user_id, request_context(),
    )
    return jsonify({'success': True, 'question': question.to_dict(reveal_answers=True)}), 200


@quiz_bp.route('/<int:quiz_id>/questions/<int:question_id>', methods=['DELETE'])
@login_required
@capability_required(Capability.AUTHOR_QUIZZES)
def delete_question(quiz_id, question_id):
    question = _owned_question(quiz_id, question_id)
    authoring_service().delete_question(question, current_permissions().user_id, request_context())
    return jsonify({'success': True, 'message': 'Question deleted'}), 200


@quiz_bp.route('/<int:quiz_id>/submissions', methods=['GET'])
@login_required
@capability_required(Capability.VIEW_RESULTS)
def list_quiz_submissions(quiz_id):
    quiz = _owned_quiz(quiz_id)
    return jsonify({
        'success': True,
        'quiz_id': quiz.id,
        'quiz_title': quiz.title,
        'submissions': results_service().quiz_submissions(quiz),
    }), 200


@quiz_bp.route('/<int:quiz_id>/results', methods=['GET'])
@login_required
@capability_required(Capability.VIEW_RESULTS)
def quiz_results(quiz_id):
    """Aggregated statistics and per-question poll results."""
    quiz = _owned_quiz(quiz_id)
    return jsonify({'success': True, 'results': results_service().quiz_summary(quiz)}), 200
