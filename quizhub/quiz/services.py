"""Request-scoped service construction for the quiz blueprints."""
from flask import current_app, request

from quizhub import db
from quizhub.audit import AuditRecorder, RequestContext
from quizhub.errors import NotFound
from quizhub.persistence import UnitOfWork
from quizhub.quiz.authoring import AuthoringLimits, QuizAuthoringService
from quizhub.quiz.results import ResultsService
from quizhub.quiz.scoring import ScoringPolicy
from quizhub.quiz.submissions import SubmissionService


def request_context() -> RequestContext:
    return RequestContext.from_request(request)


def scoring_policy() -> ScoringPolicy:
    return ScoringPolicy.from_config(current_app.config)


def submission_service() -> SubmissionService:
    return SubmissionService(
        UnitOfWork(db.session),
        scoring_policy(),
        audit=AuditRecorder(db.session),
    )


def authoring_service() -> QuizAuthoringService:
    return QuizAuthoringService(
        UnitOfWork(db.session),
        AuthoringLimits.from_config(current_app.config),
        audit=AuditRecorder(db.session),
    )


def results_service() -> ResultsService:
    return ResultsService(db.session)


def get_or_404(model, ident, message: str = "Not found"):
    instance = db.session.get(model, ident)
    if instance is None:
        raise NotFound(message)
    return instance
