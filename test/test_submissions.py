"""
Test cases for the submission lifecycle: start, answer, complete, expiry.
"""
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import authoring, make_quiz, submission_service
from quizhub import db
from quizhub.audit.models import AuditLog
from quizhub.classes.models import Enrollment
from quizhub.errors import (
    AlreadyAttempted,
    AlreadyCompleted,
    NotEligible,
    NotFound,
    NotInProgress,
    ValidationError,
)
from quizhub.quiz.models import StudentAnswer, Submission


def _option(question, text):
    return next(o for o in question.options if o.option_text == text)


def _answer_all_correctly(service, submission, quiz):
    mc, tf, text = quiz.questions
    service.record_answer(submission.id, mc.id, {'option_ids': [_option(mc, 'Stack').id]})
    service.record_answer(submission.id, tf.id, {'answer_text': 'true'})
    service.record_answer(submission.id, text.id, {'answer_text': '  BUBBLE SORT '})


class TestStart:
    """Test cases for starting submissions."""

    def test_start_creates_in_progress_submission(self, people, clock):
        quiz = make_quiz(people['klass'], people['prof'], clock=clock)
        service = submission_service(clock)

        result = service.start(people['alice'].id, quiz.id)

        assert result.created is True
        submission = result.submission
        assert submission.is_completed is False
        assert submission.in_progress is True
        assert submission.started_at == clock.now
        assert submission.max_score == Decimal('3')
        assert submission.status(clock.now) == 'in_progress'

    def test_start_twice_yields_one_submission(self, people, clock):
        quiz = make_quiz(people['klass'], people['prof'], clock=clock)
        service = submission_service(clock)

        first = service.start(people['alice'].id, quiz.id)
        clock.advance(seconds=1)
        second = service.start(people['alice'].id, quiz.id)

        assert second.created is False
        assert second.submission.id == first.submission.id
        assert Submission.query.filter_by(student_id=people['alice'].id, quiz_id=quiz.id).count() == 1

    def test_second_open_attempt_rejected_by_database(self, people, clock):
        """The unique constraint admits one open attempt per student and quiz."""
        quiz = make_quiz(people['klass'], people['prof'], clock=clock)
        submission_service(clock).start(people['alice'].id, quiz.id)

        db.session.add(Submission(
            quiz_id=quiz.id,
            student_id=people['alice'].id,
            started_at=clock.now,
            in_progress=True,
            max_score=3,
        ))
        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()

    def test_student_not_enrolled_is_not_eligible(self, people, clock):
        quiz = make_quiz(people['klass'], people['prof'], clock=clock)
        with pytest.raises(NotEligible):
            submission_service(clock).start(people['carol'].id, quiz.id)
        assert Submission.query.count() == 0

    def test_deactivated_enrollment_is_not_eligible(self, people, clock):
        quiz = make_quiz(people['klass'], people['prof'], clock=clock)
        enrollment = Enrollment.query.filter_by(student_id=people['bob'].id).first()
        enrollment.is_active = False
        db.session.commit()

        with pytest.raises(NotEligible):
            submission_service(clock).start(people['bob'].id, quiz.id)

    def test_inactive_quiz_is_not_eligible(self, people, clock):
        quiz = make_quiz(people['klass'], people['prof'], activate=False, clock=clock)
        with pytest.raises(NotEligible):
            submission_service(clock).start(people['alice'].id, quiz.id)

    def test_inactive_class_is_not_eligible(self, people, clock):
        quiz = make_quiz(people['klass'], people['prof'], clock=clock)
        people['klass'].is_active = False
        db.session.commit()
        with pytest.raises(NotEligible):
            submission_service(clock).start(people['alice'].id, quiz.id)

    def test_deadline_passed_is_not_eligible(self, people, clock):
        deadline = (clock.now + timedelta(hours=1)).isoformat()
        quiz = make_quiz(people['klass'], people['prof'], clock=clock, deadline=deadline)
        clock.advance(hours=1)
        with pytest.raises(NotEligible):
            submission_service(clock).start(people['alice'].id, quiz.id)

    def test_unknown_quiz_is_not_found(self, people, clock):
        with pytest.raises(NotFound):
            submission_service(clock).start(people['alice'].id, 9999)

    def test_attempt_limit_reached(self, people, clock):
        quiz = make_quiz(people['klass'], people['prof'], clock=clock)
        service = submission_service(clock)
        submission = service.start(people['alice'].id, quiz.id).submission
        service.complete(submission.id)

        with pytest.raises(AlreadyAttempted):
            service.start(people['alice'].id, quiz.id)

    def test_unlimited_attempts_allow_retake(self, people, clock):
        quiz = make_quiz(people['klass'], people['prof'], clock=clock, max_attempts=None)
        db.session.expire(quiz)
        assert quiz.max_attempts is None

        service = submission_service(clock)
        first = service.start(people['alice'].id, quiz.id).submission
        service.complete(first.id)

        retake = service.start(people['alice'].id, quiz.id)

        assert retake.created is True
        assert retake.submission.id != first.id

    def test_start_finalizes_expired_attempt_first(self, people, clock):
        quiz = make_quiz(people['klass'], people['prof'], clock=clock, max_attempts=2)
        service = submission_service(clock)
        stale = service.start(people['alice'].id, quiz.id).submission
        stale_id = stale.id

        clock.advance(minutes=45)
        result = service.start(people['alice'].id, quiz.id)

        assert result.created is True
        old = db.session.get(Submission, stale_id)
        assert old.is_completed is True
        assert old.auto_submitted is True
        assert old.in_progress is None

    def test_expired_attempt_stays_finalized_when_no_attempts_remain(self, people, clock):
        quiz = make_quiz(people['klass'], people['prof'], clock=clock)
        service = submission_service(clock)
        stale_id = service.start(people['alice'].id, quiz.id).submission.id

        clock.advance(minutes=31)
        with pytest.raises(AlreadyAttempted):
            service.start(people['alice'].id, quiz.id)

        assert db.session.get(Submission, stale_id).is_completed is True


class TestRecordAnswer:
    """Test cases for saving answers."""

    def test_answer_is_saved_without_correctness(self, people, clock):
        quiz = make_quiz(people['klass'], people['prof'], clock=clock)
        service = submission_service(clock)
        submission = service.start(people['alice'].id, quiz.id).submission
        mc = quiz.questions[0]

        answer = service.record_answer(submission.id, mc.id, {'option_id': _option(mc, 'Queue').id})

        assert answer.selected_option_ids == [_option(mc, 'Queue').id]
        assert answer.is_correct is None

    def test_last_write_wins(self, people, clock):
        quiz = make_quiz(people['klass'], people['prof'], clock=clock)
        service = submission_service(clock)
        submission = service.start(people['alice'].id, quiz.id).submission
        mc = quiz.questions[0]

        service.record_answer(submission.id, mc.id, {'option_ids': [_option(mc, 'Queue').id]})
        service.record_answer(submission.id, mc.id, {'option_ids': [_option(mc, 'Stack').id]})

        answers = StudentAnswer.query.filter_by(submission_id=submission.id).all()
        assert len(answers) == 1
        assert answers[0].selected_option_ids == [_option(mc, 'Stack').id]

    def test_question_from_other_quiz_rejected(self, people, clock):
        quiz = make_quiz(people['klass'], people['prof'], clock=clock)
        other = make_quiz(people['klass'], people['prof'], clock=clock, title='Other')
        service = submission_service(clock)
        submission = service.start(people['alice'].id, quiz.id).submission

        with pytest.raises(ValidationError):
            service.record_answer(submission.id, other.questions[0].id, {'option_ids': []})

    def test_option_from_other_question_rejected(self, people, clock):
        quiz = make_quiz(people['klass'], people['prof'], clock=clock)
        service = submission_service(clock)
        submission = service.start(people['alice'].id, quiz.id).submission
        mc, tf, _ = quiz.questions

        with pytest.raises(ValidationError):
            service.record_answer(submission.id, mc.id, {'option_ids': [tf.options[0].id]})

    def test_answer_after_completion_rejected(self, people, clock):
        quiz = make_quiz(people['klass'], people['prof'], clock=clock)
        service = submission_service(clock)
        submission = service.start(people['alice'].id, quiz.id).submission
        service.complete(submission.id)

        with pytest.raises(NotInProgress):
            service.record_answer(submission.id, quiz.questions[1].id, {'answer_text': 'true'})


class TestComplete:
    """Test cases for completing and scoring submissions."""

    def test_partial_answers_scenario(self, people, clock):
        """Q1 right, Q2 wrong, Q3 blank scores 1 of 3."""
        quiz = make_quiz(people['klass'], people['prof'], clock=clock)
        service = submission_service(clock)
        submission = service.start(people['alice'].id, quiz.id).submission
        mc, tf, _ = quiz.questions

        service.record_answer(submission.id, mc.id, {'option_ids': [_option(mc, 'Stack').id]})
        service.record_answer(submission.id, tf.id, {'answer_text': 'false'})
        clock.advance(minutes=12)
        result = service.complete(submission.id)

        done = result.submission
        assert result.newly_completed is True
        assert done.total_score == Decimal('1')
        assert done.max_score == Decimal('3')
        assert done.is_completed is True
        assert done.in_progress is None
        assert done.auto_submitted is False
        assert done.submitted_at == clock.now
        assert done.time_taken_minutes == Decimal('12')
        assert done.percentage() == pytest.approx(33.33)

    def test_all_correct(self, people, clock):
        quiz = make_quiz(people['klass'], people['prof'], clock=clock)
        service = submission_service(clock)
        submission = service.start(people['alice'].id, quiz.id).submission
        _answer_all_correctly(service, submission, quiz)

        done = service.complete(submission.id).submission

        assert done.total_score == Decimal('3')
        assert all(a.is_correct for a in done.answers)

    def test_complete_is_idempotent(self, people, clock):
        quiz = make_quiz(people['klass'], people['prof'], clock=clock)
        service = submission_service(clock)
        submission = service.start(people['alice'].id, quiz.id).submission
        _answer_all_correctly(service, submission, quiz)
        clock.advance(minutes=5)
        first = service.complete(submission.id).submission
        score, submitted_at = first.total_score, first.submitted_at

        clock.advance(minutes=5)
        second = service.complete(submission.id)

        assert second.newly_completed is False
        assert second.submission.total_score == score
        assert second.submission.submitted_at == submitted_at

    def test_strict_complete_raises(self, people, clock):
        quiz = make_quiz(people['klass'], people['prof'], clock=clock)
        service = submission_service(clock)
        submission = service.start(people['alice'].id, quiz.id).submission
        service.complete(submission.id)

        with pytest.raises(AlreadyCompleted):
            service.complete(submission.id, strict=True)

    def test_finalize_applies_once(self, people, clock):
        """A second finalization of the same row loses the conditional update."""
        quiz = make_quiz(people['klass'], people['prof'], clock=clock)
        service = submission_service(clock)
        submission_id = service.start(people['alice'].id, quiz.id).submission.id
        service.complete(submission_id)
        clock.advance(minutes=3)

        applied = service.uow.run(
            lambda session: service._finalize(session, session.get(Submission, submission_id), clock(), auto=False)
        )

        assert applied is False
        assert db.session.get(Submission, submission_id).submitted_at == clock.now - timedelta(minutes=3)

    def test_max_score_frozen_at_start(self, people, clock):
        quiz = make_quiz(people['klass'], people['prof'], clock=clock)
        service = submission_service(clock)
        submission = service.start(people['alice'].id, quiz.id).submission

        authoring(clock).add_question(quiz, {
            'question_type': 'true_false',
            'question_text': 'Added later',
            'correct_answer': False,
        }, people['prof'].id)
        authoring(clock).delete_question(quiz.questions[0], people['prof'].id)

        done = service.complete(submission.id).submission
        assert done.max_score == Decimal('3')
        assert len(quiz.questions) == 3

    def test_answers_to_deleted_questions_are_skipped(self, people, clock):
        quiz = make_quiz(people['klass'], people['prof'], clock=clock)
        service = submission_service(clock)
        submission = service.start(people['alice'].id, quiz.id).submission
        _answer_all_correctly(service, submission, quiz)

        authoring(clock).delete_question(quiz.questions[2], people['prof'].id)
        done = service.complete(submission.id).submission

        assert done.total_score == Decimal('2')
        skipped = [a for a in done.answers if a.is_correct is None]
        assert len(skipped) == 1
        assert skipped[0].points_earned == Decimal('0')

    def test_weighted_scoring_uses_question_points(self, people, clock):
        quiz = make_quiz(people['klass'], people['prof'], clock=clock)
        service = submission_service(clock, weighted=True)
        submission = service.start(people['alice'].id, quiz.id).submission
        text = quiz.questions[2]
        service.record_answer(submission.id, text.id, {'answer_text': 'bubblesort'})

        done = service.complete(submission.id).submission

        assert done.max_score == Decimal('4')
        assert done.total_score == Decimal('2')

    def test_completion_is_audited(self, people, clock):
        quiz = make_quiz(people['klass'], people['prof'], clock=clock)
        service = submission_service(clock)
        submission = service.start(people['alice'].id, quiz.id).submission
        service.complete(submission.id)
        service.complete(submission.id)

        actions = [log.action for log in AuditLog.query.filter_by(table_name='quiz_submissions')]
        assert actions.count('SUBMISSION_START') == 1
        assert actions.count('SUBMISSION_COMPLETE') == 1


class TestAutoExpire:
    """Test cases for lazy expiry once the time limit has elapsed."""

    def test_expired_submission_scores_only_recorded_answers(self, people, clock):
        quiz = make_quiz(people['klass'], people['prof'], clock=clock)
        service = submission_service(clock)
        submission = service.start(people['alice'].id, quiz.id).submission
        started_at = submission.started_at
        mc, tf, _ = quiz.questions
        service.record_answer(submission.id, mc.id, {'option_ids': [_option(mc, 'Stack').id]})

        clock.advance(minutes=31)
        with pytest.raises(NotInProgress):
            service.record_answer(submission.id, tf.id, {'answer_text': 'true'})

        done = db.session.get(Submission, submission.id)
        assert done.is_completed is True
        assert done.auto_submitted is True
        assert done.total_score == Decimal('1')
        assert done.submitted_at == started_at + timedelta(minutes=30)
        assert done.time_taken_minutes == Decimal('30')
        assert StudentAnswer.query.filter_by(submission_id=submission.id).count() == 1

    def test_reading_expired_submission_finalizes_it(self, people, clock):
        quiz = make_quiz(people['klass'], people['prof'], clock=clock)
        service = submission_service(clock)
        submission_id = service.start(people['alice'].id, quiz.id).submission.id

        clock.advance(minutes=29)
        assert service.get_submission(submission_id).is_completed is False

        clock.advance(minutes=2)
        done = service.get_submission(submission_id)
        assert done.is_completed is True
        assert done.status(clock.now) == 'completed'
        assert AuditLog.query.filter_by(action='SUBMISSION_AUTO_EXPIRE').count() == 1

    def test_auto_expire_is_noop_before_time_limit(self, people, clock):
        quiz = make_quiz(people['klass'], people['prof'], clock=clock)
        service = submission_service(clock)
        submission_id = service.start(people['alice'].id, quiz.id).submission.id

        clock.advance(minutes=10)
        assert service.auto_expire(submission_id) is False

    def test_complete_after_expiry_marks_auto_submitted(self, people, clock):
        quiz = make_quiz(people['klass'], people['prof'], clock=clock)
        service = submission_service(clock)
        submission = service.start(people['alice'].id, quiz.id).submission
        started_at = submission.started_at

        clock.advance(hours=2)
        result = service.complete(submission.id)

        assert result.submission.auto_submitted is True
        assert result.submission.submitted_at == started_at + timedelta(minutes=30)
