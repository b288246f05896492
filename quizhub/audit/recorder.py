"""
Audit recorder.

Records are written after the business transaction has committed. A failure
to write an audit record is logged and never fails the operation that
triggered it.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quizhub.audit.models import AuditLog


@dataclass(frozen=True)
class RequestContext:
    ip_address: str | None = None
    user_agent: str | None = None

    @classmethod
    def from_request(cls, request) -> "RequestContext":
        user_agent = request.headers.get('User-Agent')
        return cls(
            ip_address=request.remote_addr,
            user_agent=user_agent[:255] if user_agent else None,
        )


def _jsonable(values):
    if values is None:
        return None
    if isinstance(values, dict):
        return {str(k): _jsonable(v) for k, v in values.items()}
    if isinstance(values, (list, tuple, set)):
        return [_jsonable(v) for v in values]
    if isinstance(values, datetime):
        return values.isoformat()
    if isinstance(values, Decimal):
        return float(values)
    return values


class AuditRecorder:
    """Fire-and-forget writer of AuditLog rows."""

    def __init__(self, session: Session):
        self.session = session

    def record(self, actor_id: int | None, action: str, entity_table: str | None = None,
               entity_id: int | None = None, before: dict | None = None,
               after: dict | None = None, request_context: RequestContext | None = None) -> bool:
        """
        Append one audit record. Returns False when the write failed.

        Must be called outside of a pending business transaction: the record
        is committed on its own.
        """
        context = request_context or RequestContext()
        try:
            with self.session.begin_nested():
                self.session.add(AuditLog(
                    user_id=actor_id,
                    action=action,
                    table_name=entity_table,
                    record_id=entity_id,
                    old_values=_jsonable(before),
                    new_values=_jsonable(after),
                    ip_address=context.ip_address,
                    user_agent=context.user_agent,
                ))
            self.session.commit()
            return True
        except SQLAlchemyError as e:
            self.session.rollback()
            current_app.logger.error(
                f"Failed to record audit event {action} on {entity_table}:{entity_id} "
                f"by user {actor_id}: {e}"
            )
            return False
