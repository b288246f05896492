"""
Read-only result aggregation over completed submissions.
"""
from collections import Counter

from sqlalchemy.orm import Session

from quizhub.common.timeutils import Clock, utcnow
from quizhub.quiz.models import Quiz, StudentAnswer, Submission


def _round(value):
    return round(value, 2) if value is not None else None


def _percentage_stats(submissions) -> dict:
    percentages = [s.percentage() for s in submissions]
    percentages = [p for p in percentages if p is not None]
    scores = [float(s.total_score or 0) for s in submissions]
    return {
        'completed_count': len(submissions),
        'mean_score': _round(sum(scores) / len(scores)) if scores else None,
        'mean_percentage': _round(sum(percentages) / len(percentages)) if percentages else None,
        'highest_percentage': max(percentages) if percentages else None,
        'lowest_percentage': min(percentages) if percentages else None,
    }


class ResultsService:
    def __init__(self, session: Session, clock: Clock = utcnow):
        self.session = session
        self.clock = clock

    def completed_submissions(self, quiz_id: int) -> list[Submission]:
        return self.session.query(Submission).filter_by(
            quiz_id=quiz_id,
            is_completed=True,
        ).order_by(Submission.submitted_at, Submission.id).all()

    def quiz_summary(self, quiz: Quiz) -> dict:
        """
        Statistics for one quiz, including per-question poll results:
        how many completed submissions answered each question, how many
        got it right, and how often each option was picked.
        """
        submissions = self.completed_submissions(quiz.id)
        summary = {'quiz_id': quiz.id, 'title': quiz.title}
        summary.update(_percentage_stats(submissions))

        submission_ids = [s.id for s in submissions]
        answers = []
        if submission_ids:
            answers = self.session.query(StudentAnswer).filter(
                StudentAnswer.submission_id.in_(submission_ids)
            ).all()

        by_question = {}
        for answer in answers:
            if answer.question_id is not None:
                by_question.setdefault(answer.question_id, []).append(answer)

        questions = []
        for question in quiz.questions:
            given = by_question.get(question.id, [])
            correct = sum(1 for a in given if a.is_correct)
            entry = {
                'question_id': question.id,
                'question_text': question.question_text,
                'question_type': question.question_type,
                'answered_count': len(given),
                'correct_count': correct,
                # Unanswered questions count as wrong for the fraction
                'fraction_correct': _round(correct / len(submissions)) if submissions else None,
            }
            if question.question_type != 'text':
                picks = Counter()
                for a in given:
                    picks.update(a.selected_option_ids or [])
                entry['option_counts'] = [
                    {'option_id': o.id, 'option_text': o.option_text, 'count': picks.get(o.id, 0)}
                    for o in question.options
                ]
            questions.append(entry)
        summary['questions'] = questions
        return summary

    def class_summary(self, klass) -> dict:
        """Aggregate over every quiz of ``klass``; only completed submissions count."""
        quizzes = klass.quizzes.order_by(Quiz.created_at, Quiz.id).all()
        quiz_rows = []
        all_completed = []
        for quiz in quizzes:
            completed = self.completed_submissions(quiz.id)
            all_completed.extend(completed)
            row = {'quiz_id': quiz.id, 'title': quiz.title, 'is_active': quiz.is_active}
            row.update(_percentage_stats(completed))
            quiz_rows.append(row)

        summary = {
            'class_id': klass.id,
            'name': klass.name,
            'student_count': klass.active_student_count(),
            'quiz_count': len(quizzes),
            'students_with_submissions': len({s.student_id for s in all_completed}),
            'quizzes': quiz_rows,
        }
        summary.update(_percentage_stats(all_completed))
        return summary

    def submission_result(self, submission: Submission, reveal: bool) -> dict:
        """
        One submission with its answers. With ``reveal`` set the answers
        carry correctness and each question lists its correct options.
        """
        data = submission.to_dict(self.clock())
        data['quiz_title'] = submission.quiz.title
        answers_by_question = {a.question_id: a for a in submission.answers}

        items = []
        for question in submission.quiz.questions:
            answer = answers_by_question.get(question.id)
            item = {
                'question': question.to_dict(reveal_answers=reveal),
                'answer': answer.to_dict(reveal_correctness=reveal) if answer else None,
            }
            if reveal:
                item['correct_option_ids'] = [o.id for o in question.correct_options()]
            items.append(item)
        data['questions'] = items
        return data

    def student_results(self, student_id: int) -> list[dict]:
        """A student's completed submissions, newest first."""
        submissions = self.session.query(Submission).filter_by(
            student_id=student_id,
            is_completed=True,
        ).order_by(Submission.submitted_at.desc(), Submission.id.desc()).all()
        now = self.clock()
        results = []
        for submission in submissions:
            row = submission.to_dict(now)
            row['quiz_title'] = submission.quiz.title
            row['class_id'] = submission.quiz.class_id
            results.append(row)
        return results

    def quiz_submissions(self, quiz: Quiz) -> list[dict]:
        """Every submission of a quiz for its professor."""
        now = self.clock()
        rows = []
        for submission in quiz.submissions.order_by(Submission.started_at.desc(), Submission.id.desc()):
            row = submission.to_dict(now)
            row['student_name'] = submission.student.full_name if submission.student else None
            rows.append(row)
        return rows
