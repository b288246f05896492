"""
Quiz module: authoring, taking quizzes, and results.

Professors create and manage quizzes in their classes; students take
them as timed submissions that are scored on completion.
"""
from flask import Blueprint

quiz_bp = Blueprint('quiz', __name__, url_prefix='/api/quizzes')
submissions_bp = Blueprint('submissions', __name__, url_prefix='/api/submissions')

from quizhub.quiz import professor_routes  # noqa: E402,F401
from quizhub.quiz import student_routes  # noqa: E402,F401
