"""
Database models for quiz functionality.

Supports three question types:
- multiple_choice: options, one or more of them correct
- true_false: two options, exactly one correct
- text: free text, the correct options are the accepted answers
"""
from datetime import datetime, timedelta

from quizhub import db
from quizhub.common.timeutils import utcnow
from quizhub.quiz.scoring import ScoringPolicy

QUESTION_TYPES = ('multiple_choice', 'true_false', 'text')
OPTION_QUESTION_TYPES = ('multiple_choice', 'true_false')


class Quiz(db.Model):
    """
    A quiz within a class.

    Quizzes start as drafts (is_active False) and are activated explicitly
    once they have questions.
    """
    __tablename__ = "quizzes"

    id = db.Column(db.Integer, primary_key=True)
    class_id = db.Column(db.Integer, db.ForeignKey("classes.id"), nullable=False, index=True)
    professor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    instructions = db.Column(db.Text, nullable=True)
    deadline = db.Column(db.DateTime, nullable=True, index=True)
    time_limit_minutes = db.Column(db.Integer, nullable=False, default=30)
    max_attempts = db.Column(db.Integer, nullable=True)  # None means unlimited
    is_active = db.Column(db.Boolean, default=False, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    professor = db.relationship("User", foreign_keys=[professor_id])
    questions = db.relationship(
        "Question", backref="quiz", cascade="all, delete-orphan",
        order_by=lambda: [Question.order_index, Question.id],
    )
    submissions = db.relationship("Submission", backref="quiz", lazy="dynamic")

    __table_args__ = (
        db.Index('ix_quizzes_class_active', 'class_id', 'is_active'),
    )

    def __repr__(self) -> str:
        return f"<Quiz {self.id}: {self.title}>"

    def deadline_passed(self, now: datetime) -> bool:
        return self.deadline is not None and now >= self.deadline

    def get_question_count(self) -> int:
        return len(self.questions)

    def to_dict(self, policy: ScoringPolicy | None = None) -> dict:
        """``total_points`` is the max score an attempt started now would get."""
        policy = policy or ScoringPolicy()
        return {
            'id': self.id,
            'class_id': self.class_id,
            'professor_id': self.professor_id,
            'title': self.title,
            'description': self.description,
            'instructions': self.instructions,
            'deadline': self.deadline.isoformat() if self.deadline else None,
            'time_limit_minutes': self.time_limit_minutes,
            'max_attempts': self.max_attempts,
            'is_active': self.is_active,
            'question_count': self.get_question_count(),
            'total_points': float(policy.max_score(self.questions)),
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class Question(db.Model):
    """A question; display order is (order_index, id)."""
    __tablename__ = "questions"

    id = db.Column(db.Integer, primary_key=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey("quizzes.id", ondelete='CASCADE'), nullable=False, index=True)
    question_type = db.Column(db.String(50), nullable=False)
    question_text = db.Column(db.Text, nullable=False)
    points = db.Column(db.Numeric(5, 2), nullable=False, default=1)
    order_index = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    options = db.relationship(
        "AnswerOption", backref="question", cascade="all, delete-orphan",
        order_by=lambda: [AnswerOption.order_index, AnswerOption.id],
    )

    __table_args__ = (
        db.Index('ix_questions_quiz_order', 'quiz_id', 'order_index'),
    )

    def __repr__(self) -> str:
        return f"<Question {self.id}: {self.question_type}>"

    def correct_options(self) -> list["AnswerOption"]:
        return [o for o in self.options if o.is_correct]

    def to_dict(self, reveal_answers: bool) -> dict:
        """
        Serialize the question. ``is_correct`` is only present when
        ``reveal_answers`` is set.
        """
        data = {
            'id': self.id,
            'question_type': self.question_type,
            'question_text': self.question_text,
            'points': float(self.points),
            'order_index': self.order_index,
        }
        if self.question_type in OPTION_QUESTION_TYPES or reveal_answers:
            data['options'] = [o.to_dict(reveal_answers) for o in self.options]
        return data


class AnswerOption(db.Model):
    __tablename__ = "answer_options"

    id = db.Column(db.Integer, primary_key=True)
    question_id = db.Column(db.Integer, db.ForeignKey("questions.id", ondelete='CASCADE'), nullable=False, index=True)
    option_text = db.Column(db.Text, nullable=False)
    is_correct = db.Column(db.Boolean, default=False, nullable=False)
    order_index = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        db.Index('ix_answer_options_question_order', 'question_id', 'order_index'),
    )

    def __repr__(self) -> str:
        return f"<AnswerOption {self.id}: {self.option_text[:50]}>"

    def to_dict(self, reveal_answers: bool) -> dict:
        data = {
            'id': self.id,
            'option_text': self.option_text,
            'order_index': self.order_index,
        }
        if reveal_answers:
            data['is_correct'] = self.is_correct
        return data


class Submission(db.Model):
    """
    One student's attempt at one quiz.

    ``in_progress`` is True while the attempt is open and NULL once it is
    completed, so the unique constraint on (student, quiz, in_progress)
    admits at most one open attempt and any number of completed ones.
    """
    __tablename__ = "quiz_submissions"

    id = db.Column(db.Integer, primary_key=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey("quizzes.id"), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    started_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    submitted_at = db.Column(db.DateTime, nullable=True)
    is_completed = db.Column(db.Boolean, default=False, nullable=False, index=True)
    in_progress = db.Column(db.Boolean, default=True, nullable=True)
    auto_submitted = db.Column(db.Boolean, default=False, nullable=False)
    total_score = db.Column(db.Numeric(7, 2), nullable=True)
    max_score = db.Column(db.Numeric(7, 2), nullable=False)
    time_taken_minutes = db.Column(db.Numeric(7, 2), nullable=True)

    student = db.relationship("User", foreign_keys=[student_id], backref="submissions")
    answers = db.relationship("StudentAnswer", backref="submission", cascade="all, delete-orphan")

    __table_args__ = (
        db.UniqueConstraint('student_id', 'quiz_id', 'in_progress', name='uq_submission_in_progress'),
        db.Index('ix_quiz_submissions_quiz_completed', 'quiz_id', 'is_completed'),
    )

    def __repr__(self) -> str:
        return f"<Submission {self.id}: Student {self.student_id}, Quiz {self.quiz_id}>"

    def expires_at(self) -> datetime:
        return self.started_at + timedelta(minutes=self.quiz.time_limit_minutes)

    def is_expired(self, now: datetime) -> bool:
        """Time is up but the attempt has not been finalized yet."""
        return not self.is_completed and now >= self.expires_at()

    def status(self, now: datetime) -> str:
        if self.is_completed:
            return 'completed'
        if self.is_expired(now):
            return 'expired'
        return 'in_progress'

    def percentage(self) -> float | None:
        if not self.is_completed or not self.max_score:
            return None
        return round(float(self.total_score or 0) / float(self.max_score) * 100, 2)

    def to_dict(self, now: datetime) -> dict:
        return {
            'id': self.id,
            'quiz_id': self.quiz_id,
            'student_id': self.student_id,
            'status': self.status(now),
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'submitted_at': self.submitted_at.isoformat() if self.submitted_at else None,
            'expires_at': self.expires_at().isoformat(),
            'is_completed': self.is_completed,
            'auto_submitted': self.auto_submitted,
            'total_score': float(self.total_score) if self.total_score is not None else None,
            'max_score': float(self.max_score),
            'percentage': self.percentage(),
            'time_taken_minutes': float(self.time_taken_minutes) if self.time_taken_minutes is not None else None,
        }


class StudentAnswer(db.Model):
    """
    One answer within a submission. Correctness stays NULL until the
    submission is completed.
    """
    __tablename__ = "student_answers"

    id = db.Column(db.Integer, primary_key=True)
    submission_id = db.Column(db.Integer, db.ForeignKey("quiz_submissions.id"), nullable=False, index=True)
    # SET NULL keeps the answer row when its question is removed later on
    question_id = db.Column(db.Integer, db.ForeignKey("questions.id", ondelete='SET NULL'), nullable=True, index=True)
    selected_option_ids = db.Column(db.JSON, nullable=True)
    answer_text = db.Column(db.Text, nullable=True)
    is_correct = db.Column(db.Boolean, nullable=True)
    points_earned = db.Column(db.Numeric(5, 2), nullable=True)
    answered_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint('submission_id', 'question_id', name='uq_submission_question'),
    )

    def __repr__(self) -> str:
        return f"<StudentAnswer {self.id}: Question {self.question_id}>"

    def to_dict(self, reveal_correctness: bool) -> dict:
        data = {
            'question_id': self.question_id,
            'selected_option_ids': self.selected_option_ids or [],
            'answer_text': self.answer_text,
            'answered_at': self.answered_at.isoformat() if self.answered_at else None,
        }
        if reveal_correctness:
            data['is_correct'] = self.is_correct
            data['points_earned'] = float(self.points_earned) if self.points_earned is not None else 0.0
        return data
