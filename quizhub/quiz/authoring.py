"""
Quiz authoring.

Professors build quizzes as drafts and activate them explicitly. Question
and option order is caller supplied; equal order values keep insertion
order. Editing questions never touches the max_score already frozen on
existing submissions.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Mapping

from flask import current_app

from quizhub.audit import AuditRecorder, RequestContext
from quizhub.common.timeutils import Clock, utcnow
from quizhub.errors import ValidationError
from quizhub.persistence import UnitOfWork
from quizhub.quiz.models import (
    QUESTION_TYPES,
    AnswerOption,
    Question,
    Quiz,
)


@dataclass(frozen=True)
class AuthoringLimits:
    default_time_limit: int = 30
    max_time_limit: int = 120
    max_questions: int = 50

    @classmethod
    def from_config(cls, config: Mapping) -> "AuthoringLimits":
        return cls(
            default_time_limit=int(config.get('DEFAULT_TIME_LIMIT_MINUTES', 30)),
            max_time_limit=int(config.get('MAX_TIME_LIMIT_MINUTES', 120)),
            max_questions=int(config.get('MAX_QUESTIONS_PER_QUIZ', 50)),
        )


def parse_deadline(value) -> datetime | None:
    """ISO 8601 string to naive UTC datetime; None or '' clears it."""
    if value in (None, ''):
        return None
    if not isinstance(value, str):
        raise ValidationError("deadline must be an ISO 8601 string")
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        raise ValidationError("deadline must be an ISO 8601 string")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _parse_int(value, name: str, minimum: int, maximum: int | None = None) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer")
    if number < minimum or (maximum is not None and number > maximum):
        bound = f"between {minimum} and {maximum}" if maximum is not None else f"at least {minimum}"
        raise ValidationError(f"{name} must be {bound}")
    return number


def _parse_text(value, name: str, required: bool = True) -> str | None:
    text = (value or '').strip() if isinstance(value, str) or value is None else None
    if text is None:
        raise ValidationError(f"{name} must be a string")
    if required and not text:
        raise ValidationError(f"{name} is required")
    return text or None


def _parse_points(value) -> Decimal:
    try:
        points = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError("points must be a number")
    if points <= 0:
        raise ValidationError("points must be positive")
    return points


def _parse_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('true', '1', 'yes')
    return bool(value)


def build_options(question_type: str, data: dict) -> list[dict]:
    """
    Normalize and validate the options of a question.

    Returns dicts with option_text, is_correct and order_index.
    """
    raw = data.get('options')
    if question_type == 'true_false' and raw is None:
        if 'correct_answer' not in data:
            raise ValidationError("true_false questions need correct_answer or options")
        correct = _parse_bool(data.get('correct_answer'))
        raw = [
            {'option_text': 'True', 'is_correct': correct},
            {'option_text': 'False', 'is_correct': not correct},
        ]
    if question_type == 'text' and raw is None:
        accepted = data.get('accepted_answers')
        if accepted is None and data.get('correct_answer') is not None:
            accepted = [data.get('correct_answer')]
        if not isinstance(accepted, list):
            raise ValidationError("text questions need accepted_answers")
        raw = [{'option_text': a, 'is_correct': True} for a in accepted]

    if not isinstance(raw, list):
        raise ValidationError("options must be a list")

    options = []
    for position, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValidationError("each option must be an object")
        options.append({
            'option_text': _parse_text(item.get('option_text'), 'option_text'),
            'is_correct': _parse_bool(item.get('is_correct', False)),
            'order_index': _parse_int(item.get('order_index', position), 'order_index', 0),
        })
    validate_options(question_type, options)
    return options


def validate_options(question_type: str, options: list) -> None:
    """Structural rules a question must satisfy to be answerable."""
    def correct(o):
        return o['is_correct'] if isinstance(o, dict) else o.is_correct

    correct_count = sum(1 for o in options if correct(o))
    if question_type == 'text':
        if correct_count < 1:
            raise ValidationError("text questions need at least one accepted answer")
        return
    if len(options) < 2:
        raise ValidationError(f"{question_type} questions need at least two options")
    if correct_count < 1:
        raise ValidationError(f"{question_type} questions need at least one correct option")
    if question_type == 'true_false' and (len(options) != 2 or correct_count != 1):
        raise ValidationError("true_false questions need exactly two options with one correct")


class QuizAuthoringService:
    """Creates and edits quizzes, questions and answer options."""

    def __init__(self, uow: UnitOfWork, limits: AuthoringLimits,
                 audit: AuditRecorder | None = None, clock: Clock = utcnow):
        self.uow = uow
        self.limits = limits
        self.audit = audit
        self.clock = clock

    # -- quizzes -----------------------------------------------------------

    def create_quiz(self, klass, professor_id: int, data: dict,
                    context: RequestContext | None = None) -> Quiz:
        """Create a draft quiz in ``klass``."""
        quiz = Quiz(
            class_id=klass.id,
            professor_id=professor_id,
            title=_parse_text(data.get('title'), 'title'),
            description=_parse_text(data.get('description'), 'description', required=False),
            instructions=_parse_text(data.get('instructions'), 'instructions', required=False),
            deadline=parse_deadline(data.get('deadline')),
            time_limit_minutes=_parse_int(
                data.get('time_limit_minutes', self.limits.default_time_limit),
                'time_limit_minutes', 1, self.limits.max_time_limit,
            ),
            max_attempts=self._parse_max_attempts(data.get('max_attempts', 1)),
            is_active=False,
        )
        with self.uow.transaction() as session:
            session.add(quiz)
            session.flush()

        current_app.logger.info(f"Quiz {quiz.id} created in class {klass.id} by user {professor_id}")
        self._audit(professor_id, 'QUIZ_CREATE', Quiz.__tablename__, quiz.id, None,
                    self._quiz_state(quiz), context)
        return quiz

    def update_quiz(self, quiz: Quiz, data: dict, actor_id: int,
                    context: RequestContext | None = None) -> Quiz:
        """Update quiz settings. Activation goes through activate()."""
        if 'is_active' in data:
            raise ValidationError("Use the activate and deactivate endpoints to change is_active")

        changes = {}
        if 'title' in data:
            changes['title'] = _parse_text(data.get('title'), 'title')
        if 'description' in data:
            changes['description'] = _parse_text(data.get('description'), 'description', required=False)
        if 'instructions' in data:
            changes['instructions'] = _parse_text(data.get('instructions'), 'instructions', required=False)
        if 'deadline' in data:
            changes['deadline'] = parse_deadline(data.get('deadline'))
        if 'time_limit_minutes' in data:
            changes['time_limit_minutes'] = _parse_int(
                data['time_limit_minutes'], 'time_limit_minutes', 1, self.limits.max_time_limit,
            )
        if 'max_attempts' in data:
            changes['max_attempts'] = self._parse_max_attempts(data['max_attempts'])

        before = self._quiz_state(quiz)
        with self.uow.transaction():
            for key, value in changes.items():
                setattr(quiz, key, value)
        self._audit(actor_id, 'QUIZ_UPDATE', Quiz.__tablename__, quiz.id, before,
                    self._quiz_state(quiz), context)
        return quiz

    def activate(self, quiz: Quiz, actor_id: int, context: RequestContext | None = None) -> Quiz:
        """Draft to active. Requires at least one answerable question."""
        if not quiz.questions:
            raise ValidationError("A quiz needs at least one question before it can be activated")
        for question in quiz.questions:
            try:
                validate_options(question.question_type, question.options)
            except ValidationError as e:
                raise ValidationError(f"Question {question.id}: {e.message}")
        if not quiz.klass.is_active:
            raise ValidationError("Quizzes of an inactive class cannot be activated")
        if quiz.deadline_passed(self.clock()):
            raise ValidationError("The deadline of this quiz has already passed")
        return self._set_active(quiz, True, actor_id, 'QUIZ_ACTIVATE', context)

    def deactivate(self, quiz: Quiz, actor_id: int, context: RequestContext | None = None) -> Quiz:
        return self._set_active(quiz, False, actor_id, 'QUIZ_DEACTIVATE', context)

    def _set_active(self, quiz: Quiz, active: bool, actor_id: int, action: str, context) -> Quiz:
        before = quiz.is_active
        quiz.is_active = active
        self.uow.commit()
        if before != active:
            current_app.logger.info(f"Quiz {quiz.id} {'activated' if active else 'deactivated'} by user {actor_id}")
            self._audit(actor_id, action, Quiz.__tablename__, quiz.id,
                        {'is_active': before}, {'is_active': active}, context)
        return quiz

    def delete_quiz(self, quiz: Quiz, actor_id: int, context: RequestContext | None = None) -> str:
        """
        Delete a quiz without submissions; a quiz with submissions is
        deactivated instead. Returns 'deleted' or 'deactivated'.
        """
        if quiz.submissions.count() > 0:
            self._set_active(quiz, False, actor_id, 'QUIZ_DEACTIVATE', context)
            return 'deactivated'

        quiz_id = quiz.id
        before = self._quiz_state(quiz)
        with self.uow.transaction() as session:
            session.delete(quiz)
        current_app.logger.info(f"Quiz {quiz_id} deleted by user {actor_id}")
        self._audit(actor_id, 'QUIZ_DELETE', Quiz.__tablename__, quiz_id, before, None, context)
        return 'deleted'

    # -- questions ---------------------------------------------------------

    def add_question(self, quiz: Quiz, data: dict, actor_id: int,
                     context: RequestContext | None = None) -> Question:
        question_type = (data.get('question_type') or '').strip() if isinstance(data.get('question_type'), str) else ''
        if question_type not in QUESTION_TYPES:
            raise ValidationError(f"question_type must be one of: {', '.join(QUESTION_TYPES)}")
        if len(quiz.questions) >= self.limits.max_questions:
            raise ValidationError(f"A quiz can have at most {self.limits.max_questions} questions")

        question = Question(
            quiz_id=quiz.id,
            question_type=question_type,
            question_text=_parse_text(data.get('question_text'), 'question_text'),
            points=_parse_points(data.get('points', 1)),
            order_index=_parse_int(data.get('order_index', len(quiz.questions)), 'order_index', 0),
        )
        question.options = [AnswerOption(**o) for o in build_options(question_type, data)]

        with self.uow.transaction() as session:
            session.add(question)
            session.flush()
        # The ordered collection is rebuilt on next access
        self.uow.session.expire(quiz, ['questions'])

        self._audit(actor_id, 'QUESTION_CREATE', Question.__tablename__, question.id, None,
                    self._question_state(question), context)
        return question

    def update_question(self, question: Question, data: dict, actor_id: int,
                        context: RequestContext | None = None) -> Question:
        """
        Edit a question. Supplying ``options`` (or the true_false / text
        shortcuts) replaces the whole option list.
        """
        if 'question_type' in data and data['question_type'] != question.question_type:
            raise ValidationError("question_type cannot be changed; add a new question instead")

        changes = {}
        if 'question_text' in data:
            changes['question_text'] = _parse_text(data.get('question_text'), 'question_text')
        if 'points' in data:
            changes['points'] = _parse_points(data['points'])
        if 'order_index' in data:
            changes['order_index'] = _parse_int(data['order_index'], 'order_index', 0)
        options = None
        if any(k in data for k in ('options', 'correct_answer', 'accepted_answers')):
            options = build_options(question.question_type, data)

        before = self._question_state(question)
        with self.uow.transaction():
            for key, value in changes.items():
                setattr(question, key, value)
            if options is not None:
                question.options = [AnswerOption(**o) for o in options]
        self.uow.session.expire(question.quiz, ['questions'])
        self._audit(actor_id, 'QUESTION_UPDATE', Question.__tablename__, question.id, before,
                    self._question_state(question), context)
        return question

    def delete_question(self, question: Question, actor_id: int,
                        context: RequestContext | None = None) -> None:
        quiz = question.quiz
        if quiz.is_active and len(quiz.questions) <= 1:
            raise ValidationError("An active quiz must keep at least one question")

        question_id = question.id
        before = self._question_state(question)
        with self.uow.transaction() as session:
            session.delete(question)
        self.uow.session.expire(quiz, ['questions'])
        self._audit(actor_id, 'QUESTION_DELETE', Question.__tablename__, question_id, before, None, context)

    # -- helpers -----------------------------------------------------------

    @staticmethod
    def _parse_max_attempts(value) -> int | None:
        if value in (None, ''):
            return None
        return _parse_int(value, 'max_attempts', 1)

    @staticmethod
    def _quiz_state(quiz: Quiz) -> dict:
        return {
            'title': quiz.title,
            'class_id': quiz.class_id,
            'deadline': quiz.deadline,
            'time_limit_minutes': quiz.time_limit_minutes,
            'max_attempts': quiz.max_attempts,
            'is_active': quiz.is_active,
        }

    @staticmethod
    def _question_state(question: Question) -> dict:
        return {
            'quiz_id': question.quiz_id,
            'question_type': question.question_type,
            'question_text': question.question_text,
            'points': question.points,
            'order_index': question.order_index,
            'options': [
                {'option_text': o.option_text, 'is_correct': o.is_correct, 'order_index': o.order_index}
                for o in question.options
            ],
        }

    def _audit(self, actor_id, action, table, entity_id, before, after, context) -> None:
        if self.audit is not None:
            self.audit.record(actor_id, action, table, entity_id, before, after, context)
