"""
Domain errors and their JSON rendering.

Business-rule violations carry a specific, user-facing message.
Forbidden and NotFound deliberately carry a generic one.
"""
from flask import Flask, jsonify
from sqlalchemy.exc import SQLAlchemyError


class QuizHubError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500
    default_message = "Request failed"

    def __init__(self, message: str | None = None, **details):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details

    @property
    def code(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        body = {'success': False, 'error': self.message, 'code': self.code}
        if self.details:
            body['details'] = self.details
        return body


class ValidationError(QuizHubError):
    status_code = 400
    default_message = "Invalid request"


class Unauthorized(QuizHubError):
    status_code = 401
    default_message = "Authentication required"


class Forbidden(QuizHubError):
    status_code = 403
    default_message = "Forbidden"


class NotFound(QuizHubError):
    status_code = 404
    default_message = "Not found"


class Conflict(QuizHubError):
    status_code = 409
    default_message = "Conflict"


class NotEligible(Conflict):
    default_message = "You are not eligible to take this quiz"


class AlreadyInProgress(Conflict):
    default_message = "An attempt for this quiz is already in progress"

    def __init__(self, submission, message: str | None = None):
        super().__init__(message, submission_id=submission.id)
        self.submission = submission


class AlreadyAttempted(Conflict):
    default_message = "No attempts remaining for this quiz"


class NotInProgress(Conflict):
    default_message = "This submission is no longer in progress"


class AlreadyCompleted(Conflict):
    default_message = "This submission is already completed"


class TransactionFailed(QuizHubError):
    status_code = 503
    default_message = "The request could not be completed, please retry"


def register_error_handlers(app: Flask) -> None:
    """Render domain errors and unexpected failures as JSON."""

    @app.errorhandler(QuizHubError)
    def handle_domain_error(error: QuizHubError):
        if error.status_code >= 500:
            app.logger.error(f"{error.code}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(error: SQLAlchemyError):
        from quizhub import db
        db.session.rollback()
        app.logger.exception("Unhandled database error")
        return jsonify({'success': False, 'error': 'Internal server error', 'code': 'InternalError'}), 500
