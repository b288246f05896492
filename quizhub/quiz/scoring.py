"""
Scoring rules.

Option questions (multiple choice, true/false) are correct only when the
selected set equals the set of correct options: no partial credit and no
penalty beyond losing the point. Text answers match any correct option
under the configured text policy. Answers whose question no longer exists
are skipped.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Mapping

from quizhub.errors import ValidationError

TEXT_POLICIES = ('case_insensitive_trim', 'exact')


@dataclass(frozen=True)
class ScoringPolicy:
    weighted: bool = False
    text_match: str = 'case_insensitive_trim'

    def __post_init__(self):
        if self.text_match not in TEXT_POLICIES:
            raise ValueError(f"Unknown text match policy: {self.text_match}")

    @classmethod
    def from_config(cls, config: Mapping) -> "ScoringPolicy":
        return cls(
            weighted=bool(config.get('WEIGHTED_SCORING', False)),
            text_match=config.get('TEXT_MATCH_POLICY', 'case_insensitive_trim'),
        )

    def question_points(self, question) -> Decimal:
        if self.weighted:
            return Decimal(str(question.points))
        return Decimal(1)

    def max_score(self, questions: Iterable) -> Decimal:
        return sum((self.question_points(q) for q in questions), Decimal(0))

    def normalize_text(self, value: str | None) -> str:
        value = value or ''
        if self.text_match == 'exact':
            return value
        return value.strip().lower()


@dataclass(frozen=True)
class GradedAnswer:
    answer: object
    is_correct: bool | None
    points: Decimal


@dataclass
class ScoreResult:
    total: Decimal = Decimal(0)
    graded: list[GradedAnswer] = field(default_factory=list)


def is_answer_correct(question, selected_option_ids, answer_text, policy: ScoringPolicy) -> bool:
    correct = question.correct_options()
    if not correct:
        return False

    if question.question_type == 'text':
        given = policy.normalize_text(answer_text)
        if not given:
            return False
        return any(policy.normalize_text(o.option_text) == given for o in correct)

    selected = set(selected_option_ids or [])
    return selected == {o.id for o in correct}


def score_answers(questions_by_id: Mapping[int, object], answers: Iterable, policy: ScoringPolicy) -> ScoreResult:
    """
    Grade ``answers`` against the current questions. Nothing is mutated;
    the caller applies the GradedAnswer values.
    """
    result = ScoreResult()
    for answer in answers:
        question = questions_by_id.get(answer.question_id)
        if question is None:
            result.graded.append(GradedAnswer(answer, None, Decimal(0)))
            continue
        correct = is_answer_correct(question, answer.selected_option_ids, answer.answer_text, policy)
        points = policy.question_points(question) if correct else Decimal(0)
        result.total += points
        result.graded.append(GradedAnswer(answer, correct, points))
    return result


def parse_answer_payload(question, payload: dict) -> tuple[list[int] | None, str | None]:
    """
    Validate an answer payload for ``question`` and return
    (selected_option_ids, answer_text).

    Option questions take ``option_ids`` (or ``option_id``); true/false
    also accepts ``answer_text`` "true"/"false". Text questions take
    ``answer_text``.
    """
    if question.question_type == 'text':
        text = payload.get('answer_text')
        if text is not None and not isinstance(text, str):
            raise ValidationError("answer_text must be a string")
        return None, text

    raw = payload.get('option_ids')
    if raw is None and payload.get('option_id') is not None:
        raw = [payload.get('option_id')]

    if raw is None and question.question_type == 'true_false' and payload.get('answer_text') is not None:
        wanted = str(payload.get('answer_text')).strip().lower()
        matches = [o.id for o in question.options if o.option_text.strip().lower() == wanted]
        if not matches:
            raise ValidationError("answer_text must be 'true' or 'false'")
        return matches, None

    if raw is None:
        return [], None
    if not isinstance(raw, list):
        raise ValidationError("option_ids must be a list")
    try:
        selected = sorted({int(v) for v in raw})
    except (TypeError, ValueError):
        raise ValidationError("option_ids must be integers")

    valid_ids = {o.id for o in question.options}
    if not set(selected) <= valid_ids:
        raise ValidationError("Selected option does not belong to this question")
    return selected, None
