"""
Submission lifecycle: start, record answers, complete, and lazy expiry.

A submission is IN_PROGRESS from start until it is completed, either
explicitly or because its time limit elapsed. Expiry is detected on the
next access; there is no background timer.
"""
from dataclasses import dataclass
from decimal import Decimal

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from quizhub.access import is_actively_enrolled
from quizhub.audit import AuditRecorder, RequestContext
from quizhub.common.timeutils import Clock, minutes_between, utcnow
from quizhub.errors import (
    AlreadyAttempted,
    AlreadyCompleted,
    AlreadyInProgress,
    NotEligible,
    NotFound,
    NotInProgress,
    TransactionFailed,
    ValidationError,
)
from quizhub.persistence import UnitOfWork
from quizhub.quiz.models import Question, Quiz, StudentAnswer, Submission
from quizhub.quiz.scoring import ScoringPolicy, parse_answer_payload, score_answers


@dataclass
class StartResult:
    submission: Submission
    created: bool


@dataclass
class CompletionResult:
    submission: Submission
    newly_completed: bool


class SubmissionService:
    """Owns every state change of a Submission."""

    def __init__(self, uow: UnitOfWork, policy: ScoringPolicy,
                 audit: AuditRecorder | None = None, clock: Clock = utcnow):
        self.uow = uow
        self.policy = policy
        self.audit = audit
        self.clock = clock

    # -- queries -----------------------------------------------------------

    def get_submission(self, submission_id: int) -> Submission:
        """Load a submission, finalizing it first if its time is up."""
        self.auto_expire(submission_id)
        return self._get(self.uow.session, submission_id)

    def in_progress_for(self, student_id: int, quiz_id: int) -> Submission | None:
        return self._in_progress(self.uow.session, student_id, quiz_id)

    # -- start -------------------------------------------------------------

    def start(self, student_id: int, quiz_id: int,
              context: RequestContext | None = None) -> StartResult:
        """
        Start an attempt, or return the open one.

        Raises NotEligible, AlreadyAttempted or NotFound.
        """
        # Finalize a stale attempt in its own transaction so a later
        # eligibility failure does not roll the expiry back.
        stale = self._in_progress(self.uow.session, student_id, quiz_id)
        if stale is not None:
            self.auto_expire(stale.id)

        def work(session: Session) -> Submission:
            quiz = session.get(Quiz, quiz_id)
            if quiz is None:
                raise NotFound("Quiz not found")
            now = self.clock()
            self._check_eligibility(session, student_id, quiz, now)

            existing = self._in_progress(session, student_id, quiz_id)
            if existing is not None:
                if not existing.is_expired(now):
                    raise AlreadyInProgress(existing)
                self._finalize(session, existing, now, auto=True)

            self._check_attempts(session, student_id, quiz)

            submission = Submission(
                quiz_id=quiz.id,
                student_id=student_id,
                started_at=now,
                is_completed=False,
                in_progress=True,
                max_score=self.policy.max_score(quiz.questions),
            )
            session.add(submission)
            session.flush()
            return submission

        try:
            submission = self.uow.run(work, "start quiz")
        except AlreadyInProgress as e:
            current_app.logger.info(
                f"Resuming submission {e.submission.id} for student {student_id}, quiz {quiz_id}"
            )
            return StartResult(e.submission, created=False)
        except IntegrityError:
            # A concurrent start inserted the open attempt first
            self.uow.rollback()
            existing = self._in_progress(self.uow.session, student_id, quiz_id)
            if existing is None:
                raise TransactionFailed()
            current_app.logger.info(
                f"Concurrent start for student {student_id}, quiz {quiz_id}; "
                f"returning submission {existing.id}"
            )
            return StartResult(existing, created=False)

        current_app.logger.info(
            f"Submission {submission.id} started: student {student_id}, quiz {quiz_id}, "
            f"max_score {submission.max_score}"
        )
        self._audit(student_id, 'SUBMISSION_START', submission, None, {
            'quiz_id': quiz_id,
            'max_score': submission.max_score,
            'started_at': submission.started_at,
        }, context)
        return StartResult(submission, created=True)

    def _check_eligibility(self, session: Session, student_id: int, quiz: Quiz, now) -> None:
        if not is_actively_enrolled(session, student_id, quiz.class_id):
            raise NotEligible("You are not enrolled in the class for this quiz")
        if not quiz.klass.is_active:
            raise NotEligible("This class is no longer active")
        if not quiz.is_active:
            raise NotEligible("This quiz is not available")
        if quiz.deadline_passed(now):
            raise NotEligible("The deadline for this quiz has passed")

    def _check_attempts(self, session: Session, student_id: int, quiz: Quiz) -> None:
        if quiz.max_attempts is None:
            return
        completed = session.query(Submission).filter_by(
            quiz_id=quiz.id,
            student_id=student_id,
            is_completed=True,
        ).count()
        if completed >= quiz.max_attempts:
            raise AlreadyAttempted(
                f"Maximum attempts ({quiz.max_attempts}) reached for this quiz"
            )

    # -- answers -----------------------------------------------------------

    def record_answer(self, submission_id: int, question_id: int, payload: dict) -> StudentAnswer:
        """
        Upsert the answer to one question. Last write wins.

        Correctness is not computed here. Raises NotInProgress once the
        submission is completed or its time limit has elapsed.
        """
        if self.auto_expire(submission_id):
            raise NotInProgress("Time limit reached; your answers were submitted automatically")

        def work(session: Session) -> StudentAnswer:
            submission = self._get(session, submission_id)
            if submission.is_completed:
                raise NotInProgress()
            if submission.is_expired(self.clock()):
                raise NotInProgress("Time limit reached")

            question = session.get(Question, question_id)
            if question is None or question.quiz_id != submission.quiz_id:
                raise ValidationError("Question does not belong to this quiz")
            selected, text = parse_answer_payload(question, payload)

            answer = session.query(StudentAnswer).filter_by(
                submission_id=submission.id,
                question_id=question.id,
            ).first()
            if answer is None:
                answer = StudentAnswer(submission_id=submission.id, question_id=question.id)
                session.add(answer)
            answer.selected_option_ids = selected
            answer.answer_text = text
            answer.answered_at = self.clock()
            session.flush()
            return answer

        try:
            return self.uow.run(work, "record answer")
        except IntegrityError:
            # Two first answers to the same question raced; the retry updates
            self.uow.rollback()
            return self.uow.run(work, "record answer")

    # -- completion --------------------------------------------------------

    def complete(self, submission_id: int, strict: bool = False, actor_id: int | None = None,
                 context: RequestContext | None = None) -> CompletionResult:
        """
        Score and freeze a submission.

        Calling it again is a no-op returning the stored result, or raises
        AlreadyCompleted when ``strict`` is set.
        """
        def work(session: Session) -> bool:
            submission = self._get(session, submission_id)
            if submission.is_completed:
                return False
            now = self.clock()
            return self._finalize(session, submission, now, auto=submission.is_expired(now))

        newly_completed = self.uow.run(work, "complete submission")
        submission = self._get(self.uow.session, submission_id)
        if not newly_completed:
            if strict:
                raise AlreadyCompleted()
            return CompletionResult(submission, newly_completed=False)

        current_app.logger.info(
            f"Submission {submission.id} completed: score {submission.total_score}/{submission.max_score}"
        )
        self._audit(actor_id or submission.student_id, 'SUBMISSION_COMPLETE', submission,
                    {'is_completed': False}, self._frozen_state(submission), context)
        return CompletionResult(submission, newly_completed=True)

    def auto_expire(self, submission_id: int) -> bool:
        """
        Finalize the submission with its recorded answers if its time limit
        has elapsed. Returns True when this call finalized it.
        """
        def work(session: Session) -> bool:
            submission = self._get(session, submission_id)
            now = self.clock()
            if not submission.is_expired(now):
                return False
            return self._finalize(session, submission, now, auto=True)

        finalized = self.uow.run(work, "expire submission")
        if finalized:
            submission = self._get(self.uow.session, submission_id)
            current_app.logger.info(
                f"Submission {submission.id} auto-submitted after time limit: "
                f"score {submission.total_score}/{submission.max_score}"
            )
            self._audit(submission.student_id, 'SUBMISSION_AUTO_EXPIRE', submission,
                        {'is_completed': False}, self._frozen_state(submission), None)
        return finalized

    def _finalize(self, session: Session, submission: Submission, now, auto: bool) -> bool:
        """
        Score and mark completed. The conditional UPDATE makes this apply
        at most once; returns False when another caller got there first.
        """
        quiz = submission.quiz
        questions_by_id = {q.id: q for q in quiz.questions}
        result = score_answers(questions_by_id, submission.answers, self.policy)

        submitted_at = min(now, submission.expires_at()) if auto else now
        elapsed = minutes_between(submission.started_at, submitted_at)
        time_taken = Decimal(str(round(min(max(elapsed, 0.0), quiz.time_limit_minutes), 2)))

        updated = session.execute(
            update(Submission)
            .where(Submission.id == submission.id, Submission.is_completed == False)  # noqa: E712
            .values(
                is_completed=True,
                in_progress=None,
                submitted_at=submitted_at,
                total_score=result.total,
                time_taken_minutes=time_taken,
                auto_submitted=auto,
            )
            .execution_options(synchronize_session=False)
        ).rowcount
        if updated == 0:
            return False

        for graded in result.graded:
            graded.answer.is_correct = graded.is_correct
            graded.answer.points_earned = graded.points
        session.flush()
        session.expire(submission)
        return True

    # -- helpers -----------------------------------------------------------

    @staticmethod
    def _get(session: Session, submission_id: int) -> Submission:
        submission = session.get(Submission, submission_id)
        if submission is None:
            raise NotFound("Submission not found")
        return submission

    @staticmethod
    def _in_progress(session: Session, student_id: int, quiz_id: int) -> Submission | None:
        return session.query(Submission).filter_by(
            student_id=student_id,
            quiz_id=quiz_id,
            is_completed=False,
        ).first()

    @staticmethod
    def _frozen_state(submission: Submission) -> dict:
        return {
            'is_completed': True,
            'total_score': submission.total_score,
            'max_score': submission.max_score,
            'submitted_at': submission.submitted_at,
            'time_taken_minutes': submission.time_taken_minutes,
            'auto_submitted': submission.auto_submitted,
        }

    def _audit(self, actor_id, action, submission, before, after, context) -> None:
        if self.audit is None:
            return
        self.audit.record(actor_id, action, Submission.__tablename__, submission.id,
                          before, after, context)
