from functools import wraps

from flask import request
from flask_login import current_user

from quizhub.access import Capability, PermissionSet, resolve_permissions
from quizhub.errors import Forbidden, ValidationError


def current_permissions() -> PermissionSet:
    """PermissionSet of the authenticated caller."""
    return resolve_permissions(current_user._get_current_object())


def capability_required(*capabilities: Capability):
    """Decorator to require every listed capability for a route."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            from quizhub.security import SecurityLogger

            perms = current_permissions()
            for capability in capabilities:
                if not perms.has(capability):
                    SecurityLogger.log_forbidden(perms.user_id, request.path, capability.value)
                    raise Forbidden()
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def json_body() -> dict:
    """Request JSON object, or an empty dict when the body is empty."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data
