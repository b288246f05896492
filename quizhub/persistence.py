"""
Persistence gateway.

Services receive a ``UnitOfWork`` wrapping the session they should use
instead of reaching for a module-level connection pool.
"""
from contextlib import contextmanager
from typing import Callable, TypeVar

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, scoped_session

from quizhub.errors import QuizHubError, TransactionFailed

T = TypeVar("T")


class UnitOfWork:
    """Transaction boundary around a SQLAlchemy session."""

    def __init__(self, session: Session, retries: int = 1):
        self.session = session
        self.retries = retries

    def current(self) -> Session:
        # Flask-SQLAlchemy hands out a scoped_session registry, not a Session
        if isinstance(self.session, scoped_session):
            return self.session()
        return self.session

    def begin(self) -> None:
        session = self.current()
        if not session.in_transaction():
            session.begin()

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    def add(self, instance) -> None:
        self.session.add(instance)

    def flush(self) -> None:
        self.session.flush()

    def get(self, model, ident):
        return self.session.get(model, ident)

    @contextmanager
    def transaction(self):
        """Commit on success, roll back on any error."""
        self.begin()
        try:
            yield self.session
            self.commit()
        except Exception:
            self.rollback()
            raise

    def run(self, work: Callable[[Session], T], description: str = "transaction") -> T:
        """
        Run ``work`` inside one transaction.

        Lock contention surfaces as OperationalError; that is retried
        ``retries`` times before giving up with TransactionFailed.
        Domain errors roll back and propagate unchanged.
        """
        attempt = 0
        while True:
            try:
                with self.transaction() as session:
                    return work(session)
            except QuizHubError:
                raise
            except OperationalError as e:
                if attempt >= self.retries:
                    current_app.logger.error(f"{description} failed after retry: {e}")
                    raise TransactionFailed() from e
                attempt += 1
                current_app.logger.warning(f"{description} hit a transient error, retrying: {e}")
