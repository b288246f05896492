"""Admin routes for managing users, statistics and the audit trail."""
import secrets
import string

from flask import jsonify, request
from flask_login import current_user, login_required
from sqlalchemy import or_

from quizhub import db
from quizhub.access import Capability
from quizhub.admin import admin_bp
from quizhub.admin.service import AdminService
from quizhub.audit import AuditRecorder, RequestContext
from quizhub.auth.models import VALID_ROLES, User
from quizhub.auth.utils import (
    hash_password,
    is_valid_email,
    is_valid_username,
    require_fields,
    validate_password,
)
from quizhub.common.decorators import capability_required, json_body
from quizhub.errors import Conflict, NotFound, ValidationError
from quizhub.persistence import UnitOfWork


def generate_random_password(length: int = 12) -> str:
    """Generate a random secure password."""
    alphabet = string.ascii_letters + string.digits + "!@#$%^&*"
    return ''.join(secrets.choice(alphabet) for _ in range(length))


def _service() -> AdminService:
    return AdminService(UnitOfWork(db.session), audit=AuditRecorder(db.session))


def _context() -> RequestContext:
    return RequestContext.from_request(request)


def _get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


@admin_bp.route('/users', methods=['GET'])
@login_required
@capability_required(Capability.MANAGE_USERS)
def list_users():
    """List users, optionally filtered by role, active flag or search text."""
    query = User.query
    role = request.args.get('role')
    if role:
        if role not in VALID_ROLES:
            raise ValidationError(f"role must be one of: {', '.join(VALID_ROLES)}")
        query = query.filter(User.role == role)
    active = request.args.get('is_active')
    if active is not None:
        query = query.filter(User.is_active == (active.lower() in ('1', 'true', 'yes')))
    search = (request.args.get('search') or '').strip()
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            User.username.ilike(pattern),
            User.email.ilike(pattern),
            User.first_name.ilike(pattern),
            User.last_name.ilike(pattern),
        ))

    users = query.order_by(User.created_at.desc(), User.id.desc()).all()
    return jsonify({'success': True, 'users': [u.to_dict() for u in users], 'total': len(users)}), 200


@admin_bp.route('/users', methods=['POST'])
@login_required
@capability_required(Capability.MANAGE_USERS)
def create_user():
    """
    Create an account with any role. Without a password one is generated
    and returned once in the response.
    """
    data = json_body()
    require_fields(data, ['username', 'email', 'first_name', 'last_name', 'role'])

    username = str(data['username']).strip().lower()
    email = str(data['email']).strip().lower()
    role = data['role']
    if not is_valid_username(username):
        raise ValidationError("Username must be 3-50 characters: letters, digits, '.', '_' or '-'")
    if not is_valid_email(email):
        raise ValidationError("Please provide a valid email address")
    if role not in VALID_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(VALID_ROLES)}")

    generated = data.get('password') is None
    password = generate_random_password() if generated else str(data['password'])
    ok, message = validate_password(password)
    if not ok:
        raise ValidationError(message)

    if User.query.filter(or_(User.username == username, User.email == email)).first():
        raise Conflict("Username or email already taken")

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        first_name=str(data['first_name']).strip(),
        last_name=str(data['last_name']).strip(),
        role=role,
    )
    db.session.add(user)
    db.session.commit()

    AuditRecorder(db.session).record(
        current_user.id, 'USER_CREATE', User.__tablename__, user.id, None,
        {'username': user.username, 'role': user.role}, _context(),
    )
    body = {'success': True, 'user': user.to_dict()}
    if generated:
        body['password'] = password
    return jsonify(body), 201


@admin_bp.route('/users/<int:user_id>', methods=['GET'])
@login_required
@capability_required(Capability.MANAGE_USERS)
def get_user(user_id):
    service = _service()
    user = _get_user(user_id)
    data = user.to_dict()
    data['dependencies'] = service.dependency_counts(user)
    return jsonify({'success': True, 'user': data}), 200


@admin_bp.route('/users/<int:user_id>/role', methods=['PUT'])
@login_required
@capability_required(Capability.MANAGE_USERS)
def change_role(user_id):
    data = json_body()
    user = _service().change_role(current_user.id, _get_user(user_id), data.get('role'), _context())
    return jsonify({'success': True, 'message': 'Role updated', 'user': user.to_dict()}), 200


@admin_bp.route('/users/<int:user_id>/active', methods=['PUT'])
@login_required
@capability_required(Capability.MANAGE_USERS)
def set_active(user_id):
    data = json_body()
    user = _service().set_active(current_user.id, _get_user(user_id), data.get('is_active'), _context())
    return jsonify({'success': True, 'user': user.to_dict()}), 200


@admin_bp.route('/users/<int:user_id>', methods=['DELETE'])
@login_required
@capability_required(Capability.MANAGE_USERS)
def delete_user(user_id):
    """Delete a user, or deactivate one that still owns data."""
    outcome = _service().delete_user(current_user.id, _get_user(user_id), _context())
    message = 'User deleted' if outcome == 'deleted' else 'User has dependent data and was deactivated'
    return jsonify({'success': True, 'result': outcome, 'message': message}), 200


@admin_bp.route('/stats', methods=['GET'])
@login_required
@capability_required(Capability.VIEW_SYSTEM_STATS)
def system_stats():
    return jsonify({'success': True, 'stats': _service().system_stats()}), 200


@admin_bp.route('/audit-logs', methods=['GET'])
@login_required
@capability_required(Capability.VIEW_AUDIT_LOGS)
def audit_logs():
    """Audit records, newest first. Filters: action, user_id, limit."""
    logs = _service().audit_logs(
        action=request.args.get('action'),
        user_id=request.args.get('user_id', type=int),
        limit=request.args.get('limit', type=int),
    )
    return jsonify({'success': True, 'logs': [log.to_dict() for log in logs]}), 200
