"""
Student routes for taking quizzes.

Students can:
- Start (or resume) a timed submission
- Save answers while the submission is in progress
- Complete the submission and review their results
"""
from flask import jsonify, request
from flask_login import login_required

from quizhub import db
from quizhub.access import Capability
from quizhub.common.decorators import capability_required, current_permissions, json_body
from quizhub.errors import ValidationError
from quizhub.quiz import quiz_bp, submissions_bp
from quizhub.quiz.models import Submission
from quizhub.quiz.services import (
    get_or_404,
    request_context,
    results_service,
    submission_service,
)


def _student_view(submission: Submission) -> dict:
    """Submission as its student sees it. Correctness stays hidden until it is completed."""
    return results_service().submission_result(submission, reveal=submission.is_completed)


def _accessible_submission(submission_id: int) -> Submission:
    submission = get_or_404(Submission, submission_id, "Submission not found")
    current_permissions().ensure_submission_access(submission, db.session)
    return submission


def _owned_submission(submission_id: int) -> Submission:
    submission = get_or_404(Submission, submission_id, "Submission not found")
    current_permissions().ensure_submission_owner(submission, db.session)
    return submission


@quiz_bp.route('/<int:quiz_id>/start', methods=['POST'])
@login_required
@capability_required(Capability.TAKE_QUIZZES)
def start_quiz(quiz_id):
    """
    Start a submission. Returns the open submission instead when one is
    already in progress (200 rather than 201).
    """
    perms = current_permissions()
    result = submission_service().start(perms.user_id, quiz_id, request_context())
    return jsonify({
        'success': True,
        'resumed': not result.created,
        'submission': _student_view(result.submission),
    }), 201 if result.created else 200


@submissions_bp.route('/mine', methods=['GET'])
@login_required
@capability_required(Capability.TAKE_QUIZZES)
def my_results():
    """The caller's completed submissions."""
    perms = current_permissions()
    return jsonify({
        'success': True,
        'results': results_service().student_results(perms.user_id),
    }), 200


@submissions_bp.route('/<int:submission_id>', methods=['GET'])
@login_required
def get_submission(submission_id):
    """
    A submission with its questions and answers. Reading a submission
    whose time is up finalizes it first.
    """
    _accessible_submission(submission_id)
    submission = submission_service().get_submission(submission_id)

    perms = current_permissions()
    if perms.user_id == submission.student_id:
        data = _student_view(submission)
    else:
        data = results_service().submission_result(submission, reveal=True)
    return jsonify({'success': True, 'submission': data}), 200


@submissions_bp.route('/<int:submission_id>/answers', methods=['POST', 'PUT'])
@login_required
@capability_required(Capability.TAKE_QUIZZES)
def save_answer(submission_id):
    """
    Save one answer. Body: question_id plus option_ids / option_id or
    answer_text. Saving again replaces the previous answer.
    """
    _owned_submission(submission_id)
    data = json_body()
    question_id = data.get('question_id')
    if not isinstance(question_id, int) or isinstance(question_id, bool):
        raise ValidationError("question_id is required")

    answer = submission_service().record_answer(submission_id, question_id, data)
    return jsonify({
        'success': True,
        'answer': answer.to_dict(reveal_correctness=False),
    }), 200


@submissions_bp.route('/<int:submission_id>/complete', methods=['POST'])
@login_required
@capability_required(Capability.TAKE_QUIZZES)
def complete_submission(submission_id):
    """
    Complete and score the submission. Completing twice returns the stored
    result unless ``?strict=true`` is given, which answers 409 instead.
    """
    _owned_submission(submission_id)
    strict = request.args.get('strict', 'false').lower() in ('1', 'true', 'yes')
    perms = current_permissions()
    result = submission_service().complete(
        submission_id, strict=strict, actor_id=perms.user_id, context=request_context(),
    )
    return jsonify({
        'success': True,
        'newly_completed': result.newly_completed,
        'submission': _student_view(result.submission),
    }), 200
