"""Append-only audit trail of user actions."""
from quizhub.audit.recorder import AuditRecorder, RequestContext

__all__ = ['AuditRecorder', 'RequestContext']
